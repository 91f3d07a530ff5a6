import pytest

from certmint.metadata import build_certification_metadata, metadata_version
from certmint.schemas import Organization, UploadedFile, parse_certification_data

ORG = Organization(name="Acme", code="ACM")


def _files():
    return [
        UploadedFile(name="report.pdf", hash="bafkreipdf", gateway_url="g/pdf", content_type="application/pdf", size=10),
        UploadedFile(name="photo.jpg", hash="bafkreijpg", gateway_url="g/jpg", content_type="image/jpeg", size=20),
        UploadedFile(name="tour.mp4", hash="bafkreimp4", gateway_url="g/mp4", content_type="video/mp4", size=30),
    ]


def test_wire_format_key_order():
    data = parse_certification_data({"documentName": "Contratto"})
    doc = build_certification_metadata(data, ORG, _files(), "https://gw")
    assert list(doc) == ["name", "description", "image", "external_url", "animation_url", "attributes", "properties"]
    assert list(doc["properties"]) == ["form_data", "files_metadata", "ipfs_info", "certification_data", "version_info"]


def test_media_references_from_files():
    data = parse_certification_data({"documentName": "Contratto"})
    doc = build_certification_metadata(data, ORG, _files(), "https://gw")
    assert doc["image"] == "ipfs://bafkreijpg"
    assert doc["animation_url"] == "ipfs://bafkreimp4"
    assert doc["properties"]["ipfs_info"]["file_hashes"] == ["bafkreipdf", "bafkreijpg", "bafkreimp4"]


def test_explicit_image_wins():
    data = parse_certification_data({"documentName": "C", "imageUrl": "https://img"})
    doc = build_certification_metadata(data, ORG, _files(), "https://gw")
    assert doc["image"] == "https://img"


def test_artifact_attributes_are_ordered():
    data = parse_certification_data({
        "kind": "artifact",
        "documentName": "Vase",
        "artifactType": "ceramic",
        "technicalSpecs": {"height_cm": 30, "glaze": "blue"},
    })
    doc = build_certification_metadata(data, ORG, _files()[:1], "https://gw", version=4, previous_cid="bafkreiold")
    assert doc["attributes"] == [
        {"trait_type": "Certification Type", "value": "artifact"},
        {"trait_type": "Document Name", "value": "Vase"},
        {"trait_type": "Organization", "value": "Acme"},
        {"trait_type": "Artifact Type", "value": "ceramic"},
        {"trait_type": "height_cm", "value": 30},
        {"trait_type": "glaze", "value": "blue"},
        {"trait_type": "Files", "value": 1},
        {"trait_type": "Version", "value": 4},
    ]
    assert doc["properties"]["version_info"]["previous_cid"] == "bafkreiold"
    assert metadata_version(doc) == 4


def test_metadata_version_defaults_to_one():
    assert metadata_version(None) == 1
    assert metadata_version({"name": "legacy"}) == 1


def test_metadata_version_accepts_numeric_strings():
    assert metadata_version({"properties": {"version_info": {"version": "3"}}}) == 3


@pytest.mark.parametrize(
    "doc",
    [
        ["a", "list"],
        {"properties": "broken"},
        {"properties": {"version_info": 7}},
        {"properties": {"version_info": {"version": "abc"}}},
        {"properties": {"version_info": {"version": 1.5}}},
        {"properties": {"version_info": {"version": False}}},
        {"properties": {"version_info": {"version": -2}}},
    ],
)
def test_metadata_version_rejects_malformed_documents(doc):
    with pytest.raises(ValueError):
        metadata_version(doc)
