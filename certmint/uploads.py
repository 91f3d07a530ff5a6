# certmint/uploads.py
import copy
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence

from .errors import CertmintError, UploadError
from .external import call_with_timeout
from .schemas import CertificationFile, UploadedFile, UploadResult

log = logging.getLogger("uploads")


class TokenBucket:
    """
    Rate limiter shared by all uploads of a coordinator.
    `rate` tokens are added per second up to `capacity`; each upload takes one.
    """

    def __init__(self, rate: float, capacity: int = 1, clock=time.monotonic, sleep=time.sleep):
        if rate <= 0:
            raise ValueError("rate must be positive")
        self.rate = rate
        self.capacity = max(1, capacity)
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(self.capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    def _refill(self):
        now = self._clock()
        self._tokens = min(self.capacity, self._tokens + (now - self._updated) * self.rate)
        self._updated = now

    def acquire(self):
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= 1:
                    self._tokens -= 1
                    return
                wait_for = (1 - self._tokens) / self.rate
            self._sleep(wait_for)


class MetadataCache:
    """CID-keyed metadata cache. Entries never change once written, only expire."""

    def __init__(self, ttl: float, clock=time.monotonic):
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def get(self, cid: str) -> Optional[dict]:
        with self._lock:
            entry = self._entries.get(cid)
            if entry is None:
                return None
            stored_at, doc = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[cid]
                return None
        return copy.deepcopy(doc)

    def put(self, cid: str, doc: dict):
        value = (self._clock(), copy.deepcopy(doc))
        with self._lock:
            self._entries[cid] = value

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __len__(self):
        return len(self._entries)


class UploadCoordinator:
    def __init__(
        self,
        storage,
        cache: MetadataCache,
        batch_size: int = 3,
        limiter: Optional[TokenBucket] = None,
        upload_timeout: float = 60.0,
        fetch_timeout: float = 30.0,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.storage = storage
        self.cache = cache
        self.batch_size = batch_size
        self.limiter = limiter
        self.upload_timeout = upload_timeout
        self.fetch_timeout = fetch_timeout

    def plan_batches(self, files: Sequence) -> List[list]:
        return [list(files[i:i + self.batch_size]) for i in range(0, len(files), self.batch_size)]

    def _throttle(self):
        if self.limiter is not None:
            self.limiter.acquire()

    def _upload_one(self, f: CertificationFile) -> UploadedFile:
        self._throttle()
        res = self.storage.upload_file(f.content, f.name, f.content_type)
        return UploadedFile(
            name=f.name,
            hash=res["hash"],
            gateway_url=res["gateway_url"],
            content_type=f.content_type,
            size=f.size,
        )

    def _run_batch(self, batch: List[CertificationFile], first_index: int) -> List[UploadedFile]:
        pool = ThreadPoolExecutor(max_workers=len(batch), thread_name_prefix="certmint-upload")
        try:
            futures = [pool.submit(self._upload_one, f) for f in batch]
            done, _ = wait(futures, timeout=self.upload_timeout)
            uploaded = []
            for offset, (f, future) in enumerate(zip(batch, futures)):
                index = first_index + offset
                if future not in done:
                    raise UploadError(f.name, index, f"timed out after {self.upload_timeout}s")
                exc = future.exception()
                if exc is not None:
                    raise UploadError(f.name, index, str(exc)) from exc
                uploaded.append(future.result())
            return uploaded
        finally:
            # stragglers of a failed batch finish in the background; their results are dropped
            pool.shutdown(wait=False, cancel_futures=True)

    def upload_certification_assets(
        self,
        files: Sequence[CertificationFile],
        metadata_builder: Callable[[List[UploadedFile]], dict],
    ) -> UploadResult:
        batches = self.plan_batches(files)
        uploaded: List[UploadedFile] = []
        index = 1
        for number, batch in enumerate(batches, start=1):
            log.info("Uploading batch %d/%d (%d files)", number, len(batches), len(batch))
            uploaded.extend(self._run_batch(batch, index))
            index += len(batch)

        doc = metadata_builder(uploaded)
        self._throttle()
        try:
            res = call_with_timeout(
                self.storage.upload_json, doc, doc.get("name"),
                timeout=self.upload_timeout, what="metadata upload",
            )
        except CertmintError:
            raise
        except Exception as e:
            raise UploadError("metadata.json", len(files) + 1, str(e)) from e

        metadata_hash = res["hash"]
        self.cache.put(metadata_hash, doc)
        log.info("Uploaded %d files and metadata %s", len(uploaded), metadata_hash)
        return UploadResult(files=uploaded, metadata_hash=metadata_hash, metadata_url=f"ipfs://{metadata_hash}")

    def get_cached_metadata(self, cid: str) -> Optional[dict]:
        doc = self.cache.get(cid)
        if doc is not None:
            return doc
        try:
            doc = call_with_timeout(
                self.storage.fetch_metadata, cid,
                timeout=self.fetch_timeout, what=f"metadata fetch {cid}",
            )
        except Exception as e:
            log.warning("Metadata %s unavailable: %s", cid, e)
            return None
        self.cache.put(cid, doc)
        return copy.deepcopy(doc)
