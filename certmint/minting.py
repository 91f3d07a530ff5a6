# certmint/minting.py
"""
Minting saga: validate -> upload -> derive reserve -> create asset -> update reserve.

Steps before the asset exists leave nothing behind and can simply be retried.
Once the asset is created every failure is reported as PartialMintFailure
carrying a MintCheckpoint, and `resume_reserve_update` finishes the job.
"""
import json
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from .codec import AddressCodec
from .errors import (
    AssetCreateError,
    AssetLookupError,
    CertmintError,
    CodecError,
    ExternalTimeout,
    InternalMintError,
    MalformedMetadata,
    PartialMintFailure,
    ValidationError,
    VersionConflict,
)
from .external import call_with_timeout
from .metadata import build_certification_metadata, metadata_version
from .schemas import (
    AssetInfo,
    CertificationFile,
    IpfsHashes,
    MintCheckpoint,
    MintingResult,
    MintStep,
    Organization,
    UpdateResult,
    UploadResult,
    VersionRecord,
    parse_certification_data,
)

log = logging.getLogger("minting")

ARC19_STANDARD = "arc19"


class MintingOrchestrator:
    def __init__(
        self,
        uploads,
        ledger,
        signer,
        codec: Optional[AddressCodec] = None,
        store=None,
        organization: Optional[Organization] = None,
        unit_name: str = "CERT",
        default_frozen: bool = True,
        call_timeout: float = 30.0,
    ):
        self.uploads = uploads
        self.ledger = ledger
        self.signer = signer
        self.codec = codec or AddressCodec()
        self.store = store
        self.organization = organization
        self.unit_name = unit_name
        self.default_frozen = default_frozen
        self.call_timeout = call_timeout

    @property
    def creator(self) -> str:
        return self.signer.address

    def _call(self, fn, *args, what: str, **kwargs):
        return call_with_timeout(fn, *args, timeout=self.call_timeout, what=what, **kwargs)

    # ---------- steps ----------
    def _validate(self, data, files: Sequence[CertificationFile]):
        """S1: returns (certification variant, organization)."""
        if isinstance(data, dict):
            try:
                data = parse_certification_data(data)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid certification data: {e}") from e
        organization = data.organization or self.organization
        if organization is None:
            raise ValidationError("Organization data is required")
        if not files:
            raise ValidationError("At least one file must be certified")
        names = [f.name for f in files]
        if len(set(names)) != len(names):
            raise ValidationError("File names must be unique")
        return data, organization

    def _upload(self, data, organization, files, version=1, previous_cid=None, previous_reserve=None) -> UploadResult:
        """S2"""
        gateway = getattr(self.uploads.storage, "gateway", "")

        def builder(uploaded):
            return build_certification_metadata(
                data, organization, uploaded, gateway,
                version=version, previous_cid=previous_cid,
                previous_reserve=previous_reserve, issuer=self.creator,
            )

        return self.uploads.upload_certification_assets(files, builder)

    def _derive_reserve(self, cid: str) -> str:
        """S3: a failure here means our own upload produced a CID we cannot anchor."""
        try:
            address = self.codec.cid_to_address(cid)
            if self.codec.address_to_cid(address) != cid:
                raise InternalMintError(f"Metadata CID {cid} is not in the {self.codec.content_codec} CIDv1 form")
        except CodecError as e:
            raise InternalMintError(f"Cannot derive reserve address from {cid}: {e}") from e
        return address

    def _adopt_late_asset(self, result, metadata_cid: str, reserve: str):
        """An asset creation that confirmed after its timeout: keep it resumable."""
        asset_id, create_tx_id = result
        checkpoint = MintCheckpoint(
            asset_id=asset_id,
            create_tx_id=create_tx_id,
            metadata_cid=metadata_cid,
            target_reserve=reserve,
        )
        log.error(
            "Asset %s confirmed after its creation timed out (tx %s); saved for reserve resume",
            asset_id, create_tx_id,
        )
        self._save_checkpoint(checkpoint)

    def _create_asset(self, data, upload: UploadResult, reserve: str) -> Tuple[int, str]:
        """S4"""
        note = json.dumps(
            {"standard": ARC19_STANDARD, "kind": data.kind, "version": 1},
            separators=(",", ":"),
        ).encode("utf-8")
        try:
            return self._call(
                self.ledger.create_asset,
                name=data.document_name,
                unit_name=self.unit_name,
                total=1,
                decimals=0,
                default_frozen=self.default_frozen,
                manager=self.creator,
                reserve=self.creator,
                freeze=self.creator,
                clawback=self.creator,
                url=upload.metadata_url,
                note=note,
                signer=self.signer,
                what="asset creation",
                on_late_result=lambda result: self._adopt_late_asset(result, upload.metadata_hash, reserve),
            )
        except ExternalTimeout as e:
            err = AssetCreateError(
                f"Asset creation outcome unknown: {e}; a late confirmation is saved as a pending checkpoint"
            )
            # retrying now could mint a second asset for the same metadata
            err.retryable = False
            raise err from e
        except Exception as e:
            raise AssetCreateError(f"Asset creation failed: {e}") from e

    def _update_reserve(self, checkpoint: MintCheckpoint) -> Tuple[str, int]:
        """S5: any failure keeps the checkpoint attached."""
        try:
            return self._call(
                self.ledger.update_asset_reserve,
                checkpoint.asset_id, checkpoint.target_reserve, self.signer,
                what="reserve update",
            )
        except Exception as e:
            log.exception("Reserve update failed for asset %s; resume with the returned checkpoint", checkpoint.asset_id)
            raise PartialMintFailure(checkpoint, e) from e

    def _read_asset(self, asset_id: int) -> AssetInfo:
        try:
            return self._call(self.ledger.get_asset_info, asset_id, what=f"asset {asset_id} lookup")
        except CertmintError:
            raise
        except Exception as e:
            raise AssetLookupError(f"Asset {asset_id} lookup failed: {e}") from e

    def _save_checkpoint(self, checkpoint: MintCheckpoint):
        if self.store is None:
            return
        try:
            self.store.save_checkpoint(checkpoint, self.creator)
        except Exception:
            # the checkpoint still travels with the result or the failure
            log.exception("Could not persist checkpoint for asset %s", checkpoint.asset_id)

    def _finish(self, checkpoint: MintCheckpoint, tx_id: Optional[str]):
        """Record the version, then mark the checkpoint complete; a failure leaves it pending for resume."""
        if self.store is None:
            return
        record = VersionRecord(
            version=checkpoint.version,
            cid=checkpoint.metadata_cid,
            reserve_address=checkpoint.target_reserve,
            previous_cid=checkpoint.previous_cid,
        )
        try:
            self.store.record_version(checkpoint.asset_id, record, tx_id)
            self.store.mark_reserve_updated(checkpoint.asset_id, tx_id)
        except Exception:
            # the reserve is already on chain; the asset id travels with the result
            log.exception("Asset %s is minted but its store record could not be completed", checkpoint.asset_id)

    # ---------- operations ----------
    def create_certification(self, data, files: List[CertificationFile]) -> MintingResult:
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()

        log.info("[%s] validating certification input", MintStep.VALIDATE.value)
        data, organization = self._validate(data, files)

        log.info("[%s] uploading %d files for %r", MintStep.UPLOAD.value, len(files), data.document_name)
        upload = self._upload(data, organization, files)

        log.info("[%s] metadata %s", MintStep.DERIVE_RESERVE.value, upload.metadata_hash)
        reserve = self._derive_reserve(upload.metadata_hash)

        log.info("[%s] creating asset with placeholder reserve %s", MintStep.CREATE_ASSET.value, self.creator)
        asset_id, create_tx_id = self._create_asset(data, upload, reserve)

        checkpoint = MintCheckpoint(
            asset_id=asset_id,
            create_tx_id=create_tx_id,
            metadata_cid=upload.metadata_hash,
            target_reserve=reserve,
        )
        self._save_checkpoint(checkpoint)

        log.info("[%s] pointing asset %s reserve at %s", MintStep.UPDATE_RESERVE.value, asset_id, reserve)
        update_tx_id, confirmed_round = self._update_reserve(checkpoint)
        self._finish(checkpoint, update_tx_id)

        completed_at = datetime.now(timezone.utc)
        log.info("[%s] asset %s minted in %.2fs", MintStep.DONE.value, asset_id, time.monotonic() - t0)
        return MintingResult(
            asset_id=asset_id,
            create_tx_id=create_tx_id,
            update_tx_id=update_tx_id,
            confirmed_round=confirmed_round,
            metadata_url=upload.metadata_url,
            ipfs_hashes=IpfsHashes(files=upload.file_hashes, metadata=upload.metadata_hash),
            final_reserve_address=reserve,
            version=1,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=int((time.monotonic() - t0) * 1000),
        )

    def resume_reserve_update(self, asset_id: int, reserve_address: Optional[str] = None) -> Tuple[Optional[str], Optional[int]]:
        """
        Retry only the reserve update of an already created asset.
        Returns (tx_id, confirmed_round), both None when the reserve was already correct.
        """
        stored = None
        if self.store is not None:
            stored = next((c for c in self.store.list_pending() if c.asset_id == asset_id), None)
        if reserve_address is None:
            if stored is None:
                raise ValidationError(f"No pending reserve update recorded for asset {asset_id}")
            reserve_address = stored.target_reserve

        if stored is not None and stored.target_reserve == reserve_address:
            checkpoint = stored
        else:
            stored = None
            checkpoint = MintCheckpoint(
                asset_id=asset_id,
                metadata_cid=self.codec.address_to_cid(reserve_address),
                target_reserve=reserve_address,
            )

        info = self._read_asset(asset_id)
        if info.reserve == reserve_address:
            log.info("Asset %s reserve already at %s", asset_id, reserve_address)
            tx_id, confirmed_round = None, None
        else:
            tx_id, confirmed_round = self._update_reserve(checkpoint)

        if stored is not None:
            self._finish(stored, tx_id)
        elif self.store is not None:
            try:
                self.store.mark_reserve_updated(asset_id, tx_id)
            except Exception:
                log.exception("Could not mark asset %s reserve as updated", asset_id)
        return tx_id, confirmed_round

    def update_certification(self, asset_id: int, new_data, new_files: List[CertificationFile]) -> UpdateResult:
        started_at = datetime.now(timezone.utc)
        t0 = time.monotonic()

        info = self._read_asset(asset_id)
        start_reserve = info.reserve
        if not start_reserve or start_reserve == info.creator:
            raise ValidationError(
                f"Asset {asset_id} has no metadata reserve yet; resume its reserve update first"
            )
        previous_cid = self.codec.address_to_cid(start_reserve)

        data, organization = self._validate(new_data, new_files)

        previous_doc = self._call(
            self.uploads.storage.fetch_metadata, previous_cid,
            what=f"metadata fetch {previous_cid}",
        )
        try:
            version = metadata_version(previous_doc) + 1
        except ValueError as e:
            raise MalformedMetadata(f"Metadata {previous_cid} of asset {asset_id} is malformed: {e}") from e

        log.info("Updating asset %s to version %d (previous %s)", asset_id, version, previous_cid)
        upload = self._upload(
            data, organization, new_files,
            version=version, previous_cid=previous_cid, previous_reserve=start_reserve,
        )
        reserve = self._derive_reserve(upload.metadata_hash)

        # no compare-and-swap on chain: re-read right before signing
        current = self._read_asset(asset_id).reserve
        if current != start_reserve:
            raise VersionConflict(asset_id, start_reserve, current)

        checkpoint = MintCheckpoint(
            asset_id=asset_id,
            metadata_cid=upload.metadata_hash,
            target_reserve=reserve,
            version=version,
            previous_cid=previous_cid,
        )
        self._save_checkpoint(checkpoint)
        update_tx_id, confirmed_round = self._update_reserve(checkpoint)
        self._finish(checkpoint, update_tx_id)

        record = VersionRecord(version=version, cid=upload.metadata_hash, reserve_address=reserve, previous_cid=previous_cid)
        return UpdateResult(
            asset_id=asset_id,
            update_tx_id=update_tx_id,
            confirmed_round=confirmed_round,
            metadata_url=upload.metadata_url,
            ipfs_hashes=IpfsHashes(files=upload.file_hashes, metadata=upload.metadata_hash),
            version_record=record,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
            duration_ms=int((time.monotonic() - t0) * 1000),
        )
