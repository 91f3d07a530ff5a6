# certmint/external.py
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout

from .errors import ExternalTimeout

log = logging.getLogger("external")

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="certmint-external")


def _deliver_late(future, what: str, on_late_result):
    if future.cancelled() or future.exception() is not None:
        return
    try:
        on_late_result(future.result())
    except Exception:
        log.exception("Handling the late result of %s failed", what)


def call_with_timeout(fn, *args, timeout: float, what: str = "external call", on_late_result=None, **kwargs):
    """
    Run `fn` on the shared worker pool and wait at most `timeout` seconds.
    A call that overruns keeps running in its thread; when it later succeeds
    its result goes to `on_late_result`, otherwise it is dropped.
    """
    future = _executor.submit(fn, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout as e:
        if not future.cancel() and on_late_result is not None:
            future.add_done_callback(lambda f: _deliver_late(f, what, on_late_result))
        raise ExternalTimeout(f"{what} timed out after {timeout}s") from e
