# certmint/settings.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ALGOD_URL: str = "https://testnet-api.algonode.cloud"
    ALGOD_TOKEN: str = ""
    MINTER_MNEMONIC: str | None = None
    CONFIRMATION_ROUNDS: int = 4

    PINATA_JWT: str | None = None
    PINATA_API_KEY: str | None = None
    PINATA_API_SECRET: str | None = None
    IPFS_GATEWAY: str = "https://gateway.pinata.cloud"

    UPLOAD_BATCH_SIZE: int = 3
    UPLOAD_RATE_PER_SECOND: float = 2.0
    UPLOAD_BURST: int = 3
    UPLOAD_TIMEOUT: float = 60.0
    EXTERNAL_CALL_TIMEOUT: float = 30.0
    METADATA_CACHE_TTL: float = 300.0

    UNIT_NAME: str = "CERT"
    ORGANIZATION_NAME: str | None = None
    DEFAULT_FROZEN: bool = True

    DATABASE_URL: str = "sqlite:///./certmint.db"
    RESUME_INTERVAL_MINUTES: int = 10
    LOG_LEVEL: str = "INFO"


settings = Settings()
