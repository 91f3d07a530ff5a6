# certmint/metadata.py
"""
Certification metadata document. Key order and names are part of the wire
format read by viewers, so the dicts below are built literally.
"""
from datetime import datetime, timezone
from typing import List, Optional

from .schemas import Organization, UploadedFile

ANIMATION_PREFIXES = ("video/", "audio/", "model/")


def _ipfs(cid: str) -> str:
    return f"ipfs://{cid}"


def _first_file(files: List[UploadedFile], prefixes) -> Optional[UploadedFile]:
    for f in files:
        if f.content_type.startswith(prefixes):
            return f
    return None


def build_attributes(data, organization: Organization, version: int, files: List[UploadedFile]) -> list:
    attributes = [
        {"trait_type": "Certification Type", "value": data.kind},
        {"trait_type": "Document Name", "value": data.document_name},
        {"trait_type": "Organization", "value": organization.name},
    ]
    if data.kind == "document":
        attributes.append({"trait_type": "Document Type", "value": data.document_type})
    elif data.kind == "artifact":
        attributes.append({"trait_type": "Artifact Type", "value": data.artifact_type})
    elif data.kind == "process":
        attributes.append({"trait_type": "Process", "value": data.process_name})
    for key, value in data.technical_specs.items():
        attributes.append({"trait_type": key, "value": value})
    attributes.append({"trait_type": "Files", "value": len(files)})
    attributes.append({"trait_type": "Version", "value": version})
    return attributes


def build_certification_metadata(
    data,
    organization: Organization,
    files: List[UploadedFile],
    gateway: str,
    version: int = 1,
    previous_cid: Optional[str] = None,
    previous_reserve: Optional[str] = None,
    issuer: Optional[str] = None,
) -> dict:
    now = datetime.now(timezone.utc).isoformat()

    image = data.image_url
    if not image:
        image_file = _first_file(files, ("image/",))
        image = _ipfs(image_file.hash) if image_file else ""
    animation_file = _first_file(files, ANIMATION_PREFIXES)

    return {
        "name": data.document_name,
        "description": data.description,
        "image": image,
        "external_url": data.external_url or "",
        "animation_url": _ipfs(animation_file.hash) if animation_file else "",
        "attributes": build_attributes(data, organization, version, files),
        "properties": {
            "form_data": data.model_dump(mode="json", by_alias=True, exclude={"organization"}),
            "files_metadata": [f.model_dump(mode="json") for f in files],
            "ipfs_info": {
                "file_hashes": [f.hash for f in files],
                "gateway": gateway,
                "uploaded_at": now,
            },
            "certification_data": {
                "kind": data.kind,
                "organization": organization.model_dump(mode="json", by_alias=True),
                "issuer": issuer,
                "technical_specs": dict(data.technical_specs),
                "issued_at": now,
                "soulbound": True,
            },
            "version_info": {
                "version": version,
                "previous_cid": previous_cid,
                "previous_reserve": previous_reserve,
                "created_at": now,
            },
        },
    }


def version_info(doc) -> dict:
    """The `properties.version_info` block of a metadata document; raises ValueError on a malformed shape."""
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise ValueError(f"metadata document is a {type(doc).__name__}, expected an object")
    properties = doc.get("properties")
    if properties is None:
        return {}
    if not isinstance(properties, dict):
        raise ValueError("metadata 'properties' is not an object")
    info = properties.get("version_info")
    if info is None:
        return {}
    if not isinstance(info, dict):
        raise ValueError("metadata 'version_info' is not an object")
    return info


def metadata_version(doc: Optional[dict]) -> int:
    """Version number recorded in a metadata document; documents without one are version 1."""
    raw = version_info(doc).get("version")
    if raw is None:
        return 1
    if isinstance(raw, bool):
        raise ValueError(f"metadata version {raw!r} is not a number")
    if isinstance(raw, str) and raw.strip().isdigit():
        raw = int(raw)
    if not isinstance(raw, int) or raw < 1:
        raise ValueError(f"metadata version {raw!r} is not a positive integer")
    return raw
