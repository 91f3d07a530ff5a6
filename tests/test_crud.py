from certmint.models import COMPLETE, Certification, CertificationVersion
from certmint.schemas import MintCheckpoint, VersionRecord


def _checkpoint(asset_id=5, version=1):
    return MintCheckpoint(
        asset_id=asset_id, create_tx_id="TX1", metadata_cid="bafkreimeta",
        target_reserve="RESERVE", version=version,
    )


def test_pending_until_marked(store):
    store.save_checkpoint(_checkpoint(), creator="CREATOR")
    assert [c.asset_id for c in store.list_pending()] == [5]

    cert = store.mark_reserve_updated(5, "TX2")
    assert cert.status == COMPLETE
    assert cert.update_tx_id == "TX2"
    assert store.list_pending() == []


def test_checkpoint_is_upserted(store):
    store.save_checkpoint(_checkpoint(), creator="CREATOR")
    store.mark_reserve_updated(5, "TX2")
    store.save_checkpoint(_checkpoint(version=2), creator="CREATOR")
    pending = store.list_pending()
    assert len(pending) == 1
    assert pending[0].version == 2
    assert pending[0].create_tx_id == "TX1"


def test_mark_unknown_asset(store):
    assert store.mark_reserve_updated(77, "TX") is None


def test_versions_ordered(store):
    store.record_version(5, VersionRecord(version=2, cid="b2", reserve_address="R2", previous_cid="b1"))
    store.record_version(5, VersionRecord(version=1, cid="b1", reserve_address="R1"))
    store.record_version(6, VersionRecord(version=1, cid="x", reserve_address="X"))
    assert [(v.version, v.previous_cid) for v in store.list_versions(5)] == [(1, None), (2, "b1")]


def test_default_timestamps_are_timezone_aware():
    cert = Certification(asset_id=1, creator="C", metadata_cid="m", target_reserve="R")
    row = CertificationVersion(asset_id=1, version=1, cid="m", reserve_address="R")
    for value in (cert.created_at, cert.updated_at, row.created_at):
        assert value.tzinfo is not None
        assert value.utcoffset().total_seconds() == 0


def test_timestamped_rows_persist(store):
    saved = store.save_checkpoint(_checkpoint(), creator="CREATOR")
    assert saved.created_at is not None
    marked = store.mark_reserve_updated(5, "TX2")
    assert marked.updated_at is not None
    row = store.record_version(5, VersionRecord(version=1, cid="b1", reserve_address="R1"), "TX2")
    assert row.created_at is not None
    assert store.get_certification(5).status == COMPLETE


def test_record_version_is_idempotent(store):
    record = VersionRecord(version=1, cid="b1", reserve_address="R1")
    first = store.record_version(5, record, "TX1")
    again = store.record_version(5, record, "TX1")
    assert again.id == first.id
    assert [v.version for v in store.list_versions(5)] == [1]
