"""Application state container.

AppState is created once at server startup (inside the Starlette lifespan
context manager) and attached to the app, so request handlers reach the feed
and the source through it instead of module-level globals.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

    from commitfeed.cache import CommitCache
    from commitfeed.config import Settings
    from commitfeed.feed import CommitFeed
    from commitfeed.github import GitHubSource
    from commitfeed.schedulers import RefreshScheduler


@dataclass
class AppState:
    """Holds all shared runtime state. Passed to every request handler."""

    settings: Settings
    cache: CommitCache
    source: GitHubSource
    scheduler: RefreshScheduler
    feed: CommitFeed
    http_client: httpx.AsyncClient | None = None
