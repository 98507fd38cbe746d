"""Shared test fixtures for the commitfeed test suite."""

from __future__ import annotations

import random
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from commitfeed.cache import CommitCache
from commitfeed.models.commit import CommitRecord
from commitfeed.obfuscator import Obfuscator

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Manually advanced clock for watermark and staleness tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> CommitCache:
    return CommitCache(clock=clock)


@pytest.fixture()
def obfuscator() -> Obfuscator:
    """Obfuscator with a fixed seed so redactions are reproducible."""
    return Obfuscator(random.Random(1234))


@pytest.fixture()
def make_commit() -> Callable[..., CommitRecord]:
    def _make(
        id: str = "a1b2c3d",
        *,
        repo_name: str = "portfolio",
        message: str = "Initial commit",
        timestamp: str = "2024-05-01T12:00:00Z",
        url: str | None = None,
        is_private: bool = False,
    ) -> CommitRecord:
        return CommitRecord(
            id=id,
            repo_name=repo_name,
            message=message,
            timestamp=timestamp,
            url=url if url is not None else f"https://github.com/octo/{repo_name}/commit/{id}",
            is_private=is_private,
        )

    return _make
