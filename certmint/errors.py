# certmint/errors.py
from typing import Optional


class CertmintError(Exception):
    """Base class for every failure raised by the minting pipeline."""
    retryable = False


class ValidationError(CertmintError):
    """Bad certification input, detected before any external effect."""


# ---------- Storage ----------
class StorageError(CertmintError):
    retryable = True


class UploadError(StorageError):
    def __init__(self, file: str, index: int, reason: str):
        self.file = file
        self.index = index
        self.reason = reason
        super().__init__(f"Upload of file #{index} ({file}) failed: {reason}")


class MetadataNotFound(StorageError):
    retryable = False


class MalformedMetadata(StorageError):
    """A stored metadata document that does not have the expected shape."""
    retryable = False


# ---------- Codec ----------
class CodecError(CertmintError):
    """A CID or address that cannot be mapped between storage and the ledger."""


class UnsupportedDigest(CodecError):
    pass


class InvalidChecksum(CodecError):
    pass


class MalformedCid(CodecError):
    pass


class MalformedAddress(CodecError):
    pass


# ---------- Ledger ----------
class LedgerError(CertmintError):
    retryable = True


class AssetCreateError(LedgerError):
    pass


class AssetLookupError(LedgerError):
    pass


class ReserveUpdateError(LedgerError):
    pass


class ExternalTimeout(CertmintError):
    retryable = True


# ---------- Saga ----------
class InternalMintError(CertmintError):
    """The pipeline produced something it cannot anchor (e.g. a foreign digest)."""


class PartialMintFailure(CertmintError):
    """
    The asset exists on chain but its reserve was not repointed.
    Carries the checkpoint needed to resume at the reserve-update step.
    """

    def __init__(self, checkpoint, cause: Optional[BaseException] = None):
        self.checkpoint = checkpoint
        self.cause = cause
        super().__init__(
            f"Asset {checkpoint.asset_id} was created but its reserve update failed: {cause}"
        )

    @property
    def asset_id(self) -> int:
        return self.checkpoint.asset_id


class VersionConflict(CertmintError):
    def __init__(self, asset_id: int, expected: str, found: str):
        self.asset_id = asset_id
        self.expected = expected
        self.found = found
        super().__init__(
            f"Reserve of asset {asset_id} changed during update (expected {expected}, found {found})"
        )
