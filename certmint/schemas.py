# certmint/schemas.py
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    TypeAdapter,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

NonBlank = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------- Certification input ----------
class Organization(CamelModel):
    name: NonBlank
    code: Optional[str] = None
    website: Optional[str] = None


class _CertificationBase(CamelModel):
    document_name: NonBlank
    description: str = ""
    image_url: Optional[str] = None
    external_url: Optional[str] = None
    organization: Optional[Organization] = None
    technical_specs: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("technical_specs")
    @classmethod
    def _scalar_specs(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        for key, item in value.items():
            if not isinstance(item, (str, int, float, bool)):
                raise ValueError(f"technical spec {key!r} must be a scalar value")
        return value


class DocumentCertification(_CertificationBase):
    kind: Literal["document"] = "document"
    document_type: str = "generic"
    issue_date: Optional[str] = None


class ArtifactCertification(_CertificationBase):
    kind: Literal["artifact"] = "artifact"
    artifact_type: NonBlank
    production_date: Optional[str] = None

    @model_validator(mode="after")
    def _needs_specs(self):
        if not self.technical_specs:
            raise ValueError("artifact certifications require technical specs")
        return self


class ProcessCertification(_CertificationBase):
    kind: Literal["process"] = "process"
    process_name: NonBlank
    process_steps: List[str] = Field(default_factory=list)


CertificationData = Annotated[
    Union[DocumentCertification, ArtifactCertification, ProcessCertification],
    Field(discriminator="kind"),
]

_certification_adapter = TypeAdapter(CertificationData)


def parse_certification_data(raw: dict):
    """Validate raw form data into its certification variant; `kind` defaults to document."""
    payload = dict(raw)
    payload.setdefault("kind", "document")
    return _certification_adapter.validate_python(payload)


class CertificationFile(BaseModel):
    name: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


# ---------- Upload ----------
class UploadedFile(CamelModel):
    name: str
    hash: str
    gateway_url: str
    content_type: str
    size: int


class UploadResult(CamelModel):
    files: List[UploadedFile]
    metadata_hash: str
    metadata_url: str

    @property
    def file_hashes(self) -> List[str]:
        return [f.hash for f in self.files]


# ---------- Ledger ----------
class AssetInfo(CamelModel):
    asset_id: int
    name: Optional[str] = None
    unit_name: Optional[str] = None
    total: int
    decimals: int
    default_frozen: bool = False
    creator: str
    manager: Optional[str] = None
    reserve: Optional[str] = None
    freeze: Optional[str] = None
    clawback: Optional[str] = None
    url: Optional[str] = None


# ---------- Saga ----------
class MintStep(str, Enum):
    VALIDATE = "validate"
    UPLOAD = "upload"
    DERIVE_RESERVE = "derive_reserve"
    CREATE_ASSET = "create_asset"
    UPDATE_RESERVE = "update_reserve"
    DONE = "done"


class MintCheckpoint(CamelModel):
    """Where a mint stopped after the asset was committed; enough to resume the reserve update."""
    asset_id: int
    step: MintStep = MintStep.UPDATE_RESERVE
    create_tx_id: Optional[str] = None
    metadata_cid: str
    target_reserve: str
    version: int = 1
    previous_cid: Optional[str] = None


class IpfsHashes(CamelModel):
    files: List[str]
    metadata: str


class VersionRecord(CamelModel):
    version: int
    cid: str
    reserve_address: str
    previous_cid: Optional[str] = None


class MintingResult(CamelModel):
    asset_id: int
    create_tx_id: str
    update_tx_id: str
    confirmed_round: int
    metadata_url: str
    ipfs_hashes: IpfsHashes
    final_reserve_address: str
    version: int = 1
    started_at: datetime
    completed_at: datetime
    duration_ms: int


class UpdateResult(CamelModel):
    asset_id: int
    update_tx_id: str
    confirmed_round: int
    metadata_url: str
    ipfs_hashes: IpfsHashes
    version_record: VersionRecord
    started_at: datetime
    completed_at: datetime
    duration_ms: int


# ---------- Validation ----------
class ValidationIssue(CamelModel):
    code: str
    message: str


class ValidationResult(CamelModel):
    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    asset_info: Optional[Dict[str, Any]] = None
    metadata_info: Optional[Dict[str, Any]] = None
    cid_info: Optional[Dict[str, Any]] = None
