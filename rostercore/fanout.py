"""
Fan-out / fan-in for independent store lookups.

Each lookup runs on its own worker thread (stores open one session per call),
the batch shares one deadline, and anything that times out or fails with a
data-source error comes back as an `Unavailable` marker instead of raising.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from rostercore.config import settings
from rostercore.errors import DataUnavailable

logger = logging.getLogger(__name__)

# errors that mean "the data source let us down", not "the code is wrong"
SOURCE_ERRORS = (DataUnavailable, SQLAlchemyError, OSError, TimeoutError)


@dataclass(frozen=True)
class Unavailable:
    name: str
    reason: str

    def __bool__(self):
        return False


def is_unavailable(value: Any) -> bool:
    return isinstance(value, Unavailable)


def fan_out(
    lookups: dict[str, Callable[[], Any]],
    timeout: float | None = None,
    max_workers: int | None = None,
) -> dict[str, Any]:
    """
    Run every lookup concurrently and return {name: result | Unavailable}.
    Unexpected exceptions propagate after pending lookups are cancelled.
    """
    if not lookups:
        return {}
    timeout = settings.lookup_timeout_seconds if timeout is None else timeout
    workers = min(len(lookups), max_workers or settings.fanout_max_workers)

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="lookup")
    futures = {name: pool.submit(fn) for name, fn in lookups.items()}
    deadline = time.monotonic() + timeout
    results: dict[str, Any] = {}
    try:
        for name, future in futures.items():
            remaining = max(0.0, deadline - time.monotonic())
            try:
                results[name] = future.result(timeout=remaining)
            except FutureTimeout:
                future.cancel()
                logger.warning("lookup %s timed out after %.1fs", name, timeout)
                results[name] = Unavailable(name, "timeout")
            except SOURCE_ERRORS as e:
                logger.warning("lookup %s unavailable: %s", name, e)
                results[name] = Unavailable(name, type(e).__name__)
    finally:
        # never wait on a hung lookup; queued ones are dropped
        pool.shutdown(wait=False, cancel_futures=True)
    return results
