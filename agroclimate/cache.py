# ABOUTME: In-process caches for provider results and assembled reports.
# ABOUTME: HotCache also collapses concurrent identical fetches onto a single in-flight task.

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any

from agroclimate.models import ComprehensiveAnalysis, Coordinate

logger = logging.getLogger(__name__)


class HotCache:
    """Short-lived TTL cache with in-flight request de-duplication.

    Only used from the event loop thread, so no locking is needed: a second caller
    for a key that is already being fetched awaits the same task. Failed fetches are
    not cached. Expired entries are purged on every write, and once maxsize live
    entries are held the oldest write is evicted.
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        maxsize: int = 1024,
    ):
        self.ttl_seconds = ttl_seconds
        self.maxsize = maxsize
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._in_flight: dict[str, asyncio.Task] = {}

    def get(self, key: str) -> Any | None:
        item = self._entries.get(key)
        if item is None:
            return None
        stored_at, value = item
        if self._clock() - stored_at >= self.ttl_seconds:
            self._entries.pop(key, None)
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        now = self._clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        self._entries.pop(key, None)
        _evict_oldest(self._entries, self.maxsize)
        self._entries[key] = (now, value)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get_or_fetch(self, key: str, fetch: Callable[[], Awaitable[Any]]) -> Any:
        """Return a fresh cached value, join an in-flight fetch, or start a new one."""
        cached = self.get(key)
        if cached is not None:
            logger.debug("Hot cache hit for %s", key)
            return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.ensure_future(fetch())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, key=key: self._settle(key, t))
        else:
            logger.debug("Joining in-flight fetch for %s", key)
        # Shield so one cancelled waiter does not cancel the fetch for the others.
        return await asyncio.shield(task)

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled() or task.exception() is not None:
            return
        self.set(key, task.result())


def report_key(coord: Coordinate, land_id: int | None) -> str:
    return f"report:{coord.cache_key}:{land_id if land_id is not None else '-'}"


class ReportCache:
    """Holds assembled reports until they are older than the TTL.

    Age is measured from the report's generated_at against the injected clock. Writes
    are last-writer-wins. Stale reports are dropped on every write and the oldest
    write is evicted past maxsize.
    """

    def __init__(self, ttl: timedelta, clock: Callable[[], datetime], maxsize: int = 256):
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._reports: dict[str, ComprehensiveAnalysis] = {}

    def get(self, key: str) -> ComprehensiveAnalysis | None:
        report = self._reports.get(key)
        if report is None:
            return None
        if not self.is_fresh(report):
            self._reports.pop(key, None)
            return None
        return report

    def set(self, key: str, report: ComprehensiveAnalysis) -> None:
        stale = [k for k, r in self._reports.items() if not self.is_fresh(r)]
        for k in stale:
            del self._reports[k]
        self._reports.pop(key, None)
        _evict_oldest(self._reports, self.maxsize)
        self._reports[key] = report

    def __len__(self) -> int:
        return len(self._reports)

    def is_fresh(self, report: ComprehensiveAnalysis) -> bool:
        return self._clock() - report.generated_at < self.ttl

    def clear(self) -> None:
        self._reports.clear()


def _evict_oldest(entries: dict, maxsize: int) -> None:
    """Drop the earliest writes until there is room for one more. Dicts keep insertion order."""
    while entries and len(entries) >= maxsize:
        entries.pop(next(iter(entries)))
