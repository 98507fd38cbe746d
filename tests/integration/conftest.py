"""Integration test fixtures.

Provides a fully wired AppState (real cache, obfuscator, scheduler and feed)
around an in-memory commit source, and an httpx client bound to the Starlette
app through ASGITransport. Commit factories come from tests/conftest.py.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import httpx
import pytest

from commitfeed.config import Settings
from commitfeed.feed import CommitFeed
from commitfeed.schedulers import RefreshScheduler
from commitfeed.server import create_app
from commitfeed.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.applications import Starlette

    from commitfeed.cache import CommitCache
    from commitfeed.models.commit import CommitRecord
    from commitfeed.obfuscator import Obfuscator


class InMemorySource:
    """Commit source serving canned batches; records every call."""

    def __init__(self) -> None:
        self.full: list[CommitRecord] = []
        self.incremental: list[CommitRecord] = []
        self.fetch_all_calls = 0
        self.fetch_since_calls = 0
        self.get_latest_release_tag = AsyncMock(return_value="v1.2.3")

    async def fetch_all(self) -> list[CommitRecord]:
        self.fetch_all_calls += 1
        return list(self.full)

    async def fetch_since(self, watermark) -> list[CommitRecord]:
        self.fetch_since_calls += 1
        return list(self.incremental)


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        server={"allowed_origins": ["https://octo.dev"]},
        github={"version_repo": "octo/site"},
    )


@pytest.fixture()
def source() -> InMemorySource:
    return InMemorySource()


@pytest.fixture()
async def app_state(
    settings: Settings,
    cache: CommitCache,
    clock,
    obfuscator: Obfuscator,
    source: InMemorySource,
) -> AsyncGenerator[AppState, None]:
    scheduler = RefreshScheduler(cache, source, obfuscator, interval_seconds=3600)
    feed = CommitFeed(
        cache,
        scheduler,
        stale_after=timedelta(minutes=settings.refresh.stale_after_minutes),
        clock=clock,
    )
    state = AppState(
        settings=settings,
        cache=cache,
        source=source,  # type: ignore[arg-type]
        scheduler=scheduler,
        feed=feed,
    )
    try:
        yield state
    finally:
        await scheduler.stop()


@pytest.fixture()
def app(settings: Settings, app_state: AppState) -> Starlette:
    # ASGITransport does not run the lifespan; attach the state directly.
    application = create_app(settings)
    application.state.commitfeed = app_state
    return application


@pytest.fixture()
async def client(app: Starlette) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app),
        base_url="http://localhost",
    ) as http_client:
        yield http_client
