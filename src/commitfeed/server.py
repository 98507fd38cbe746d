"""HTTP server entrypoint.

Responsibilities (and nothing more):
- Configure structlog
- Assemble AppState in the Starlette lifespan and warm the cache
- Map the feed onto /api/commits, plus /health and /api/version
- Start uvicorn
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import TYPE_CHECKING

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse, PlainTextResponse
from starlette.routing import Route

from commitfeed import __version__
from commitfeed.cache import CommitCache
from commitfeed.config import Settings
from commitfeed.errors import CommitFeedError
from commitfeed.feed import CommitFeed
from commitfeed.github import GitHubSource, build_http_client
from commitfeed.obfuscator import Obfuscator
from commitfeed.schedulers import RefreshScheduler
from commitfeed.state import AppState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

log = structlog.get_logger()

DEFAULT_LIMIT = 20
MAX_LIMIT = 100


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------


def _setup_logging(settings: Settings) -> None:
    """Configure structlog. Called once at startup before any log statements."""
    log_level = logging.getLevelNamesMapping()[settings.logging.level]

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.logging.format == "json":
        processors = [*shared_processors, structlog.processors.JSONRenderer()]
    else:
        processors = [*shared_processors, structlog.dev.ConsoleRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Assembly and lifespan
# ---------------------------------------------------------------------------


def build_state(settings: Settings) -> AppState:
    """Wire cache, source, scheduler and feed together. Starts nothing."""
    http_client = None
    if settings.github.token is not None:
        http_client = build_http_client(settings.github)
    else:
        log.warning("github_token_missing", message="Commit refreshes will fail until one is set.")

    cache = CommitCache()
    source = GitHubSource(http_client, settings.github)
    scheduler = RefreshScheduler(
        cache,
        source,
        Obfuscator(),
        interval_seconds=settings.refresh.interval_minutes * 60,
    )
    feed = CommitFeed(
        cache,
        scheduler,
        stale_after=timedelta(minutes=settings.refresh.stale_after_minutes),
    )
    return AppState(
        settings=settings,
        cache=cache,
        source=source,
        scheduler=scheduler,
        feed=feed,
        http_client=http_client,
    )


@asynccontextmanager
async def lifespan(app: Starlette) -> AsyncGenerator[None, None]:
    """Create and tear down all shared resources for the server's lifetime."""
    settings: Settings = app.state.settings
    _setup_logging(settings)
    log.info("server_starting", version=__version__)

    state = build_state(settings)
    app.state.commitfeed = state

    # The first refresh completes (or fails) before the server reports ready.
    await state.scheduler.start()

    log.info("server_started", version=__version__, cached_commits=len(state.cache))
    try:
        yield
    finally:
        await state.scheduler.stop()
        if state.http_client is not None:
            await state.http_client.aclose()
        log.info("server_stopping")


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


def _query_int(
    request: Request, name: str, default: int, *, minimum: int, maximum: int | None = None
) -> int:
    """Read an integer query parameter, falling back to ``default`` when unusable."""
    try:
        value = int(request.query_params[name])
    except (KeyError, ValueError):
        return default
    if value < minimum or (maximum is not None and value > maximum):
        return default
    return value


async def health(request: Request) -> PlainTextResponse:
    return PlainTextResponse("OK")


async def get_commits(request: Request) -> JSONResponse:
    state: AppState = request.app.state.commitfeed
    page = _query_int(request, "page", 1, minimum=1)
    limit = _query_int(request, "limit", DEFAULT_LIMIT, minimum=1, maximum=MAX_LIMIT)
    try:
        result = state.feed.get_page(page, limit)
    except CommitFeedError as exc:
        log.warning("request_error", path="/api/commits", code=exc.code, message=exc.message)
        return JSONResponse(exc.to_dict(), status_code=400)
    return JSONResponse(result.model_dump(mode="json"))


async def get_version(request: Request) -> JSONResponse:
    """Report the latest release tag of the configured repository."""
    state: AppState = request.app.state.commitfeed
    repo = state.settings.github.version_repo
    if not repo or "/" not in repo:
        return JSONResponse({"version": "unknown"})

    owner, name = repo.split("/", 1)
    try:
        version = await state.source.get_latest_release_tag(owner, name)
    except CommitFeedError as exc:
        log.warning("version_lookup_failed", repo=repo, code=exc.code, message=exc.message)
        version = "unknown"
    return JSONResponse({"version": version})


def create_app(settings: Settings | None = None) -> Starlette:
    settings = settings if settings is not None else Settings()
    app = Starlette(
        routes=[
            Route("/health", health),
            Route("/api/commits", get_commits),
            Route("/api/version", get_version),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=settings.server.allowed_origins,
                allow_methods=["GET", "OPTIONS"],
                allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
                allow_credentials=True,
            )
        ],
        lifespan=lifespan,
    )
    app.state.settings = settings
    return app


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------


def main() -> None:
    settings = Settings()
    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_config=None,  # Disable uvicorn's default logging; structlog handles it
    )


if __name__ == "__main__":
    main()
