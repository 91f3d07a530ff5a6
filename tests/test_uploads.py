import pytest

from certmint.errors import StorageError, UploadError
from certmint.uploads import MetadataCache, TokenBucket, UploadCoordinator

from conftest import FakeStorage, make_file


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


def _builder(uploaded):
    return {"name": "doc", "files": [f.hash for f in uploaded]}


def _seven_files():
    return [make_file(f"f{i}.pdf") for i in range(1, 8)]


class TestTokenBucket:
    def test_burst_then_waits(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=2.0, capacity=2, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        bucket.acquire()
        assert clock.sleeps == []
        bucket.acquire()
        assert clock.sleeps == [pytest.approx(0.5)]

    def test_refills_over_time(self):
        clock = FakeClock()
        bucket = TokenBucket(rate=1.0, capacity=1, clock=clock, sleep=clock.sleep)
        bucket.acquire()
        clock.now += 5
        bucket.acquire()
        assert clock.sleeps == []

    def test_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            TokenBucket(rate=0)


class TestMetadataCache:
    def test_expires_after_ttl(self):
        clock = FakeClock()
        cache = MetadataCache(ttl=10, clock=clock)
        cache.put("bafy", {"name": "a"})
        clock.now = 9
        assert cache.get("bafy") == {"name": "a"}
        clock.now = 11
        assert cache.get("bafy") is None
        assert len(cache) == 0

    def test_entries_are_copies(self):
        cache = MetadataCache(ttl=10)
        doc = {"name": "a", "attributes": []}
        cache.put("bafy", doc)
        doc["name"] = "changed"
        cache.get("bafy")["attributes"].append(1)
        assert cache.get("bafy") == {"name": "a", "attributes": []}


class TestUploadCoordinator:
    def test_batch_plan(self, uploads):
        assert [len(b) for b in uploads.plan_batches(_seven_files())] == [3, 3, 1]

    def test_uploads_files_then_metadata(self, uploads, storage):
        result = uploads.upload_certification_assets(_seven_files(), _builder)
        assert [f.name for f in result.files] == [f"f{i}.pdf" for i in range(1, 8)]
        assert len(storage.json_calls) == 1
        assert result.metadata_hash == storage.json_calls[0]
        assert result.metadata_url == f"ipfs://{result.metadata_hash}"
        assert storage.docs[result.metadata_hash]["files"] == result.file_hashes
        assert result.files[0].size == len(b"f1.pdf" * 3)
        assert storage.max_active <= 3

    def test_failure_names_file_and_stops(self):
        storage = FakeStorage(fail_on={"f5.pdf"})
        uploads = UploadCoordinator(storage, MetadataCache(ttl=60), batch_size=3)
        with pytest.raises(UploadError) as info:
            uploads.upload_certification_assets(_seven_files(), _builder)
        assert info.value.index == 5
        assert info.value.file == "f5.pdf"
        assert info.value.retryable
        assert "f7.pdf" not in storage.file_calls
        assert storage.json_calls == []

    def test_timeout_is_upload_error(self):
        storage = FakeStorage(delay=0.5)
        uploads = UploadCoordinator(storage, MetadataCache(ttl=60), batch_size=2, upload_timeout=0.05)
        with pytest.raises(UploadError) as info:
            uploads.upload_certification_assets([make_file("slow.pdf")], _builder)
        assert "timed out" in str(info.value)
        assert storage.json_calls == []

    def test_rate_limiter_used_for_every_upload(self, storage):
        clock = FakeClock()
        bucket = TokenBucket(rate=1.0, capacity=10, clock=clock, sleep=clock.sleep)
        uploads = UploadCoordinator(storage, MetadataCache(ttl=60), limiter=bucket)
        uploads.upload_certification_assets(_seven_files(), _builder)
        # 7 files + 1 metadata document
        assert bucket._tokens == pytest.approx(2)

    def test_metadata_upload_failure(self, storage):
        def broken(doc, name=None):
            raise StorageError("pinning service down")

        storage.upload_json = broken
        uploads = UploadCoordinator(storage, MetadataCache(ttl=60))
        with pytest.raises(StorageError):
            uploads.upload_certification_assets([make_file("a.pdf")], _builder)

    def test_cached_metadata_read_through(self, uploads, storage):
        storage.docs["bafkreiabc"] = {"name": "stored"}
        assert uploads.get_cached_metadata("bafkreiabc") == {"name": "stored"}
        assert uploads.get_cached_metadata("bafkreiabc") == {"name": "stored"}
        assert storage.fetch_calls == ["bafkreiabc"]

    def test_cached_metadata_soft_fails(self, uploads, storage):
        assert uploads.get_cached_metadata("bafkreimissing") is None
        assert storage.fetch_calls == ["bafkreimissing"]

    def test_uploaded_metadata_is_cached(self, uploads, storage):
        result = uploads.upload_certification_assets([make_file("a.pdf")], _builder)
        assert uploads.get_cached_metadata(result.metadata_hash)["name"] == "doc"
        assert storage.fetch_calls == []
