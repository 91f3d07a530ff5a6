# certmint/validator.py
import logging
from typing import Optional

from .codec import AddressCodec
from .errors import CodecError
from .external import call_with_timeout
from .metadata import metadata_version, version_info
from .schemas import AssetInfo, ValidationIssue, ValidationResult

log = logging.getLogger("validator")

SOULBOUND_VIOLATION = "SoulboundViolation"
CONVERSION_ERROR = "ConversionError"
CONVERSION_MISMATCH = "ConversionMismatch"
ASSET_LOOKUP_FAILED = "AssetLookupFailed"
MALFORMED_METADATA = "MalformedMetadata"

OPTIONAL_METADATA_FIELDS = ("description", "image", "external_url", "animation_url", "attributes")


def metadata_cid_from_url(url: Optional[str], reserve_cid: Optional[str]) -> Optional[str]:
    """
    Resolve the CID an asset URL points at. ARC-19 template URLs resolve
    through the reserve; plain ipfs:// and gateway URLs carry the CID inline.
    """
    if not url:
        return None
    if url.startswith("template-ipfs://"):
        return reserve_cid
    if url.startswith("ipfs://"):
        rest = url[len("ipfs://"):]
        if rest.startswith("ipfs/"):
            rest = rest[len("ipfs/"):]
    elif "/ipfs/" in url:
        rest = url.split("/ipfs/", 1)[1]
    else:
        return None
    return rest.split("/", 1)[0].split("#", 1)[0].split("?", 1)[0] or None


class CertificationValidator:
    def __init__(self, ledger, uploads, codec: Optional[AddressCodec] = None, call_timeout: float = 30.0):
        self.ledger = ledger
        self.uploads = uploads
        self.codec = codec or AddressCodec()
        self.call_timeout = call_timeout

    def validate_certification(self, asset_id: int) -> ValidationResult:
        result = ValidationResult(is_valid=False)
        try:
            info = call_with_timeout(
                self.ledger.get_asset_info, asset_id,
                timeout=self.call_timeout, what=f"asset {asset_id} lookup",
            )
        except Exception as e:
            log.warning("Validation of asset %s stopped at lookup: %s", asset_id, e)
            result.errors.append(ValidationIssue(code=ASSET_LOOKUP_FAILED, message=str(e)))
            return result

        result.asset_info = info.model_dump(mode="json", by_alias=True)
        self._check_soulbound(info, result)
        reserve_cid = self._check_reserve(info, result)
        self._check_metadata(info, reserve_cid, result)

        result.is_valid = not result.errors
        return result

    def _check_soulbound(self, info: AssetInfo, result: ValidationResult):
        if info.total != 1:
            result.errors.append(ValidationIssue(
                code=SOULBOUND_VIOLATION, message=f"Total supply is {info.total}, expected 1"))
        if info.decimals != 0:
            result.errors.append(ValidationIssue(
                code=SOULBOUND_VIOLATION, message=f"Decimals is {info.decimals}, expected 0"))
        if info.clawback != info.creator:
            result.errors.append(ValidationIssue(
                code=SOULBOUND_VIOLATION,
                message=f"Clawback {info.clawback} differs from creator {info.creator}"))

    def _check_reserve(self, info: AssetInfo, result: ValidationResult) -> Optional[str]:
        reserve = info.reserve
        if not reserve:
            result.errors.append(ValidationIssue(code=CONVERSION_ERROR, message="Asset has no reserve address"))
            return None
        try:
            cid = self.codec.address_to_cid(reserve)
            re_encoded = self.codec.cid_to_address(cid)
        except CodecError as e:
            result.errors.append(ValidationIssue(code=CONVERSION_ERROR, message=str(e)))
            return None

        result.cid_info = {
            "reserveAddress": reserve,
            "cid": cid,
            "reEncodedAddress": re_encoded,
            "roundTrip": re_encoded == reserve,
            "contentCodec": self.codec.content_codec,
        }
        if re_encoded != reserve:
            result.errors.append(ValidationIssue(
                code=CONVERSION_MISMATCH,
                message=f"Reserve {reserve} re-encodes to {re_encoded}"))
        if reserve == info.creator:
            result.warnings.append("Reserve still holds the creator placeholder; reserve update pending")
        return cid

    def _check_metadata(self, info: AssetInfo, reserve_cid: Optional[str], result: ValidationResult):
        cid = metadata_cid_from_url(info.url, reserve_cid)
        if cid is None:
            result.warnings.append(f"Asset URL {info.url!r} does not reference IPFS metadata")
            return
        doc = self.uploads.get_cached_metadata(cid)
        if doc is None:
            result.warnings.append(f"Metadata document {cid} could not be retrieved")
            return

        try:
            details = version_info(doc)
            version = metadata_version(doc)
        except ValueError as e:
            log.warning("Metadata %s of asset %s is malformed: %s", cid, info.asset_id, e)
            result.errors.append(ValidationIssue(code=MALFORMED_METADATA, message=f"Metadata {cid}: {e}"))
            return

        for field in OPTIONAL_METADATA_FIELDS:
            if not doc.get(field):
                result.warnings.append(f"Metadata field '{field}' is missing or empty")

        files = (doc.get("properties") or {}).get("files_metadata")
        result.metadata_info = {
            "cid": cid,
            "url": info.url,
            "name": doc.get("name"),
            "version": version,
            "previousCid": details.get("previous_cid"),
            "fileCount": len(files) if isinstance(files, list) else 0,
        }
