# certmint/models.py
from typing import Optional
from sqlalchemy import Column, DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime, timezone

PENDING_RESERVE = "pending_reserve"
COMPLETE = "complete"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _timestamp():
    return Field(default_factory=utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class Certification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(index=True, unique=True)
    creator: str
    metadata_cid: str
    target_reserve: str
    create_tx_id: Optional[str] = None
    update_tx_id: Optional[str] = None
    status: str = PENDING_RESERVE
    version: int = 1
    previous_cid: Optional[str] = None
    created_at: datetime = _timestamp()
    updated_at: datetime = _timestamp()


class CertificationVersion(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(index=True)
    version: int
    cid: str
    reserve_address: str
    previous_cid: Optional[str] = None
    tx_id: Optional[str] = None
    created_at: datetime = _timestamp()
