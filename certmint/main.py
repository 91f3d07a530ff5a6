# certmint/main.py
import json
import logging
from typing import List

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse

from .errors import (
    AssetCreateError,
    CertmintError,
    CodecError,
    ExternalTimeout,
    PartialMintFailure,
    StorageError,
    ValidationError,
    VersionConflict,
)
from .schemas import CertificationFile, MintingResult, UpdateResult, ValidationResult, VersionRecord
from .services import get_orchestrator, get_store, get_validator
from .settings import settings
from .tasks import scheduler

log = logging.getLogger("api")

app = FastAPI(title="Soulbound Certification Minting")

STATUS_BY_ERROR = [
    (ValidationError, 422),
    (VersionConflict, 409),
    (CodecError, 400),
    (StorageError, 502),
    (AssetCreateError, 502),
    (ExternalTimeout, 502),
]


@app.on_event("startup")
def startup():
    logging.basicConfig(level=settings.LOG_LEVEL)
    get_store().init_db()
    try:
        scheduler.start()
    except Exception:
        # already running under dev reload
        log.warning("Resume scheduler not started", exc_info=True)


@app.on_event("shutdown")
def shutdown():
    if scheduler.running:
        scheduler.shutdown(wait=False)


@app.exception_handler(PartialMintFailure)
def partial_mint_handler(request, exc: PartialMintFailure):
    return JSONResponse(
        status_code=202,
        content={
            "detail": str(exc),
            "retryable": False,
            "checkpoint": exc.checkpoint.model_dump(mode="json", by_alias=True),
        },
    )


@app.exception_handler(CertmintError)
def certmint_error_handler(request, exc: CertmintError):
    status = next((code for cls, code in STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    return JSONResponse(
        status_code=status,
        content={"detail": str(exc), "error": type(exc).__name__, "retryable": exc.retryable},
    )


def _parse_form(data: str) -> dict:
    try:
        parsed = json.loads(data)
    except json.JSONDecodeError as e:
        raise HTTPException(status_code=422, detail=f"data is not valid JSON: {e}")
    if not isinstance(parsed, dict):
        raise HTTPException(status_code=422, detail="data must be a JSON object")
    return parsed


def _read_files(files: List[UploadFile]) -> List[CertificationFile]:
    return [
        CertificationFile(
            name=f.filename,
            content=f.file.read(),
            content_type=f.content_type or "application/octet-stream",
        )
        for f in files
    ]


@app.post("/certifications", response_model=MintingResult)
def create_certification(
    data: str = Form(...),
    files: List[UploadFile] = File(...),
    orchestrator=Depends(get_orchestrator),
):
    """
    Mint a soulbound certification: pins the files and metadata, creates the
    asset and points its reserve at the metadata CID.
    """
    return orchestrator.create_certification(_parse_form(data), _read_files(files))


@app.put("/certifications/{asset_id}", response_model=UpdateResult)
def update_certification(
    asset_id: int,
    data: str = Form(...),
    files: List[UploadFile] = File(...),
    orchestrator=Depends(get_orchestrator),
):
    return orchestrator.update_certification(asset_id, _parse_form(data), _read_files(files))


@app.post("/certifications/{asset_id}/resume")
def resume_certification(asset_id: int, reserve_address: str | None = None, orchestrator=Depends(get_orchestrator)):
    """
    Retry the reserve update of a partially minted asset.
    """
    tx_id, confirmed_round = orchestrator.resume_reserve_update(asset_id, reserve_address)
    return {"assetId": asset_id, "txId": tx_id, "confirmedRound": confirmed_round}


@app.get("/certifications/{asset_id}/validate", response_model=ValidationResult)
def validate_certification(asset_id: int, validator=Depends(get_validator)):
    return validator.validate_certification(asset_id)


@app.get("/certifications/{asset_id}/versions", response_model=List[VersionRecord])
def list_versions(asset_id: int, store=Depends(get_store)):
    return store.list_versions(asset_id)
