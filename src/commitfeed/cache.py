"""In-memory commit cache.

Holds the merged, deduplicated commit records and the watermark of the last
successful merge. Volatile by design: it is created empty at startup, filled
by the refresh scheduler and discarded at shutdown.

Every access goes through ``merge`` (exclusive) or ``snapshot`` (shared), so
a reader never observes a half-merged batch. Neither critical section awaits,
which keeps the lock usable from both the event loop and worker threads.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog

from commitfeed.models.commit import parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator

    from commitfeed.models.commit import CommitRecord

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReaderWriterLock:
    """Reader-writer lock: concurrent readers, exclusive writers."""

    def __init__(self) -> None:
        self._read_ready = threading.Semaphore(1)
        self._readers = 0
        self._read_counter_lock = threading.Lock()
        self._write_lock = threading.Lock()

    def acquire_read(self) -> None:
        self._read_ready.acquire()
        with self._read_counter_lock:
            self._readers += 1
            if self._readers == 1:
                # First reader locks out writers
                self._write_lock.acquire()
        self._read_ready.release()

    def release_read(self) -> None:
        with self._read_counter_lock:
            self._readers -= 1
            if self._readers == 0:
                self._write_lock.release()

    def acquire_write(self) -> None:
        # Holding _read_ready keeps new readers out while the writer waits.
        self._read_ready.acquire()
        self._write_lock.acquire()

    def release_write(self) -> None:
        self._write_lock.release()
        self._read_ready.release()

    @contextmanager
    def read(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


class CommitCache:
    """Identifier-keyed commit store with a last-refresh watermark."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._lock = ReaderWriterLock()
        self._records: dict[str, CommitRecord] = {}
        self._last_refreshed: datetime | None = None

    def merge(self, records: Iterable[CommitRecord]) -> int:
        """Upsert ``records`` by id and advance the watermark.

        Re-merging a known id overwrites it with the newer fetch's version.
        The watermark never moves backwards. Returns the resulting count.
        """
        with self._lock.write():
            merged = 0
            for record in records:
                self._records[record.id] = record
                merged += 1
            now = self._clock()
            if self._last_refreshed is None or now > self._last_refreshed:
                self._last_refreshed = now
            total = len(self._records)

        log.debug("commit_cache_merged", merged=merged, total=total)
        return total

    def snapshot(self) -> tuple[list[CommitRecord], datetime | None]:
        """Return all records newest first, plus the watermark.

        The sort is stable, so equal timestamps keep map order. Records with
        unparseable timestamps sort last.
        """
        with self._lock.read():
            records = list(self._records.values())
            last_refreshed = self._last_refreshed

        records.sort(key=lambda record: parse_timestamp(record.timestamp), reverse=True)
        return records, last_refreshed

    @property
    def last_refreshed(self) -> datetime | None:
        with self._lock.read():
            return self._last_refreshed

    def is_empty(self) -> bool:
        with self._lock.read():
            return not self._records

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._records)
