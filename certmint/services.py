# certmint/services.py
from functools import lru_cache

from certmint.blockchain import AlgorandLedger, KeySigner
from certmint.codec import AddressCodec
from certmint.crud import CertificationStore
from certmint.minting import MintingOrchestrator
from certmint.pinata import PinataStorage
from certmint.schemas import Organization
from certmint.settings import settings
from certmint.uploads import MetadataCache, TokenBucket, UploadCoordinator
from certmint.validator import CertificationValidator


@lru_cache
def get_store() -> CertificationStore:
    return CertificationStore()


@lru_cache
def get_ledger() -> AlgorandLedger:
    return AlgorandLedger.from_settings()


@lru_cache
def get_uploads() -> UploadCoordinator:
    return UploadCoordinator(
        PinataStorage.from_settings(),
        MetadataCache(ttl=settings.METADATA_CACHE_TTL),
        batch_size=settings.UPLOAD_BATCH_SIZE,
        limiter=TokenBucket(settings.UPLOAD_RATE_PER_SECOND, settings.UPLOAD_BURST),
        upload_timeout=settings.UPLOAD_TIMEOUT,
        fetch_timeout=settings.EXTERNAL_CALL_TIMEOUT,
    )


@lru_cache
def get_orchestrator() -> MintingOrchestrator:
    if not settings.MINTER_MNEMONIC:
        raise RuntimeError("MINTER_MNEMONIC is not configured in .env")
    organization = Organization(name=settings.ORGANIZATION_NAME) if settings.ORGANIZATION_NAME else None
    return MintingOrchestrator(
        get_uploads(),
        get_ledger(),
        KeySigner.from_mnemonic(settings.MINTER_MNEMONIC),
        codec=AddressCodec(),
        store=get_store(),
        organization=organization,
        unit_name=settings.UNIT_NAME,
        default_frozen=settings.DEFAULT_FROZEN,
        call_timeout=settings.EXTERNAL_CALL_TIMEOUT,
    )


@lru_cache
def get_validator() -> CertificationValidator:
    return CertificationValidator(
        get_ledger(), get_uploads(), AddressCodec(), call_timeout=settings.EXTERNAL_CALL_TIMEOUT
    )
