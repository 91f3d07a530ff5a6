# certmint/crud.py

from typing import List, Optional

from sqlmodel import SQLModel, Session, select, create_engine

from certmint.models import COMPLETE, PENDING_RESERVE, Certification, CertificationVersion, utcnow
from certmint.schemas import MintCheckpoint, VersionRecord
from certmint.settings import settings


def default_engine():
    return create_engine(settings.DATABASE_URL, echo=False)


class CertificationStore:
    """Durable record of mint checkpoints and version history."""

    def __init__(self, engine=None):
        self.engine = engine if engine is not None else default_engine()

    def init_db(self):
        """Initialize all SQLModel tables."""
        SQLModel.metadata.create_all(self.engine)

    # ---------- CHECKPOINTS ----------
    def _get(self, s: Session, asset_id: int) -> Optional[Certification]:
        q = select(Certification).where(Certification.asset_id == asset_id)
        return s.exec(q).first()

    def save_checkpoint(self, checkpoint: MintCheckpoint, creator: str) -> Certification:
        """Store the asset as created but not yet repointed."""
        with Session(self.engine) as s:
            cert = self._get(s, checkpoint.asset_id) or Certification(
                asset_id=checkpoint.asset_id, creator=creator,
                metadata_cid=checkpoint.metadata_cid, target_reserve=checkpoint.target_reserve,
            )
            cert.creator = creator
            cert.metadata_cid = checkpoint.metadata_cid
            cert.target_reserve = checkpoint.target_reserve
            cert.create_tx_id = checkpoint.create_tx_id or cert.create_tx_id
            cert.version = checkpoint.version
            cert.previous_cid = checkpoint.previous_cid
            cert.status = PENDING_RESERVE
            cert.updated_at = utcnow()
            s.add(cert)
            s.commit()
            s.refresh(cert)
            return cert

    def mark_reserve_updated(self, asset_id: int, tx_id: Optional[str]) -> Optional[Certification]:
        with Session(self.engine) as s:
            cert = self._get(s, asset_id)
            if not cert:
                return None
            cert.status = COMPLETE
            cert.update_tx_id = tx_id or cert.update_tx_id
            cert.updated_at = utcnow()
            s.add(cert)
            s.commit()
            s.refresh(cert)
            return cert

    def get_certification(self, asset_id: int) -> Optional[Certification]:
        with Session(self.engine) as s:
            return self._get(s, asset_id)

    def list_pending(self) -> List[MintCheckpoint]:
        """Assets whose reserve still has to be pointed at their metadata."""
        with Session(self.engine) as s:
            q = select(Certification).where(Certification.status == PENDING_RESERVE)
            return [
                MintCheckpoint(
                    asset_id=c.asset_id,
                    create_tx_id=c.create_tx_id,
                    metadata_cid=c.metadata_cid,
                    target_reserve=c.target_reserve,
                    version=c.version,
                    previous_cid=c.previous_cid,
                )
                for c in s.exec(q).all()
            ]

    # ---------- VERSIONS ----------
    def record_version(self, asset_id: int, record: VersionRecord, tx_id: Optional[str] = None) -> CertificationVersion:
        with Session(self.engine) as s:
            q = select(CertificationVersion).where(
                CertificationVersion.asset_id == asset_id,
                CertificationVersion.version == record.version,
            )
            existing = s.exec(q).first()
            if existing:
                return existing
            row = CertificationVersion(
                asset_id=asset_id,
                version=record.version,
                cid=record.cid,
                reserve_address=record.reserve_address,
                previous_cid=record.previous_cid,
                tx_id=tx_id,
            )
            s.add(row)
            s.commit()
            s.refresh(row)
            return row

    def list_versions(self, asset_id: int) -> List[VersionRecord]:
        with Session(self.engine) as s:
            q = (
                select(CertificationVersion)
                .where(CertificationVersion.asset_id == asset_id)
                .order_by(CertificationVersion.version)
            )
            return [
                VersionRecord(
                    version=v.version, cid=v.cid,
                    reserve_address=v.reserve_address, previous_cid=v.previous_cid,
                )
                for v in s.exec(q).all()
            ]
