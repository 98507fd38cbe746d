"""GitHub commit source.

All network I/O against the GitHub REST API goes through a single
GitHubSource instance. It receives an httpx.AsyncClient via constructor
injection; the server lifespan owns the client lifecycle. A source built
without a client (no token configured) fails every call with
CLIENT_NOT_INITIALIZED.

The source never touches the cache: it returns plain, un-redacted records and
leaves obfuscation and merging to the refresh scheduler.
"""

from __future__ import annotations

import asyncio
from contextlib import aclosing
from datetime import UTC
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from commitfeed import __version__
from commitfeed.errors import CommitFeedError, ErrorCode
from commitfeed.models.commit import EPOCH_MIN, CommitRecord, format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from datetime import datetime

    from commitfeed.config import GitHubSettings

log = structlog.get_logger()

GITHUB_API_VERSION = "2022-11-28"
PER_PAGE = 100
MAX_ATTEMPTS = 3
INITIAL_BACKOFF_SECONDS = 1.0


def build_http_client(settings: GitHubSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once at startup."""
    headers = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": f"commitfeed/{__version__}",
    }
    if settings.token is not None:
        headers["Authorization"] = f"Bearer {settings.token.get_secret_value()}"
    return httpx.AsyncClient(
        base_url=settings.api_url,
        follow_redirects=True,
        timeout=httpx.Timeout(settings.request_timeout_seconds),
        headers=headers,
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    # Primary limits report an exhausted quota; secondary limits send Retry-After.
    return (
        response.headers.get("x-ratelimit-remaining") == "0" or "retry-after" in response.headers
    )


def _error_for_response(response: httpx.Response, url: str) -> CommitFeedError:
    """Map a non-2xx GitHub response to a CommitFeedError."""
    status = response.status_code
    if _is_rate_limited(response):
        return CommitFeedError(
            code=ErrorCode.RATE_LIMITED,
            message=f"GitHub rate limit hit fetching {url}",
            suggestion="Wait for the rate limit window to reset.",
            recoverable=True,
        )
    if status == 401:
        return CommitFeedError(
            code=ErrorCode.AUTH_FAILED,
            message=f"GitHub rejected the token fetching {url}",
            suggestion="Check that COMMITFEED__GITHUB__TOKEN is valid and not expired.",
            recoverable=False,
        )
    if status in (404, 409):
        # 409 is what GitHub returns when listing commits of an empty repository.
        return CommitFeedError(
            code=ErrorCode.NOT_FOUND,
            message=f"HTTP {status} fetching {url}",
            suggestion="The resource does not exist or holds no commits.",
            recoverable=False,
        )
    return CommitFeedError(
        code=ErrorCode.SOURCE_UNAVAILABLE,
        message=f"HTTP {status} fetching {url}",
        suggestion="GitHub may be temporarily unavailable.",
        recoverable=status >= 500,
    )


def _normalise_timestamp(raw: Any) -> str:
    """Canonical UTC form of a GitHub date; malformed values are kept verbatim."""
    if not isinstance(raw, str):
        return ""
    parsed = parse_timestamp(raw)
    if parsed == EPOCH_MIN:
        return raw
    return format_timestamp(parsed)


def _record_from_commit(item: dict[str, Any], repo_name: str, is_private: bool) -> CommitRecord:
    """Build a record from a commits-list or commit-search item."""
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    return CommitRecord(
        id=item.get("sha") or "",
        repo_name=repo_name,
        message=commit.get("message") or "",
        timestamp=_normalise_timestamp(author.get("date")),
        url=item.get("html_url") or "",
        is_private=is_private,
    )


class GitHubSource:
    """Commit source backed by the GitHub REST API."""

    def __init__(self, client: httpx.AsyncClient | None, settings: GitHubSettings) -> None:
        self._client = client
        self._settings = settings

    # ------------------------------------------------------------------
    # Commit fetching
    # ------------------------------------------------------------------

    async def fetch_all(self) -> list[CommitRecord]:
        """Fetch the full commit history of every repository the user owns.

        A repository whose commits cannot be fetched is logged and skipped.
        Failing to list repositories at all raises CommitFeedError.
        """
        try:
            async with asyncio.timeout(self._settings.full_fetch_timeout_seconds):
                return await self._fetch_all()
        except TimeoutError as exc:
            raise CommitFeedError(
                code=ErrorCode.SOURCE_TIMEOUT,
                message=(
                    "Full commit fetch exceeded "
                    f"{self._settings.full_fetch_timeout_seconds}s"
                ),
                suggestion="Raise github.full_fetch_timeout_seconds for large accounts.",
                recoverable=True,
            ) from exc

    async def _fetch_all(self) -> list[CommitRecord]:
        self._require_client()

        repos: list[dict[str, Any]] = []
        async for response in self._paginate(
            "/user/repos", {"type": "owner", "per_page": PER_PAGE}
        ):
            repos.extend(response.json())
        log.info("github_repos_listed", count=len(repos))

        commits: list[CommitRecord] = []
        skipped = 0
        for repo in repos:
            owner = (repo.get("owner") or {}).get("login") or ""
            name = repo.get("name") or ""
            try:
                repo_commits = await self._fetch_repo_commits(
                    owner, name, bool(repo.get("private", False))
                )
            except CommitFeedError as exc:
                skipped += 1
                log.warning(
                    "repo_commits_fetch_failed",
                    owner=owner,
                    repo=name,
                    code=exc.code,
                    message=exc.message,
                )
                continue
            commits.extend(repo_commits)

        log.info(
            "github_fetch_all_complete",
            repos=len(repos),
            skipped_repos=skipped,
            commits=len(commits),
        )
        return commits

    async def _fetch_repo_commits(
        self, owner: str, repo: str, is_private: bool
    ) -> list[CommitRecord]:
        commits: list[CommitRecord] = []
        try:
            async for response in self._paginate(
                f"/repos/{owner}/{repo}/commits", {"per_page": PER_PAGE}
            ):
                commits.extend(
                    _record_from_commit(item, repo, is_private) for item in response.json()
                )
        except CommitFeedError as exc:
            if exc.code != ErrorCode.NOT_FOUND:
                raise
            log.debug("repo_has_no_commits", owner=owner, repo=repo)
            return []
        return commits

    async def fetch_since(self, watermark: datetime) -> list[CommitRecord]:
        """Fetch the user's commits authored strictly after ``watermark``.

        Search results come newest first, so consumption stops at the first
        commit at or before the watermark.
        """
        try:
            async with asyncio.timeout(self._settings.fetch_timeout_seconds):
                return await self._fetch_since(watermark)
        except TimeoutError as exc:
            raise CommitFeedError(
                code=ErrorCode.SOURCE_TIMEOUT,
                message=(
                    f"Incremental commit fetch exceeded {self._settings.fetch_timeout_seconds}s"
                ),
                suggestion="GitHub may be slow; the next refresh will retry.",
                recoverable=True,
            ) from exc

    async def _fetch_since(self, watermark: datetime) -> list[CommitRecord]:
        if watermark.tzinfo is None:
            watermark = watermark.replace(tzinfo=UTC)

        login = await self.get_authenticated_login()
        params = {
            "q": f"author:{login}",
            "sort": "author-date",
            "order": "desc",
            "per_page": PER_PAGE,
        }

        commits: list[CommitRecord] = []
        async with aclosing(self._paginate("/search/commits", params)) as pages:
            async for response in pages:
                for item in response.json().get("items", []):
                    author = (item.get("commit") or {}).get("author") or {}
                    if parse_timestamp(author.get("date") or "") <= watermark:
                        log.info("github_fetch_since_complete", login=login, commits=len(commits))
                        return commits
                    repo = item.get("repository") or {}
                    commits.append(
                        _record_from_commit(
                            item, repo.get("name") or "", bool(repo.get("private", False))
                        )
                    )

        log.info("github_fetch_since_complete", login=login, commits=len(commits))
        return commits

    # ------------------------------------------------------------------
    # Account metadata
    # ------------------------------------------------------------------

    async def get_authenticated_login(self) -> str:
        """Return the login name of the token's owner."""
        response = await self._get("/user")
        login = response.json().get("login")
        if not isinstance(login, str) or not login:
            raise CommitFeedError(
                code=ErrorCode.AUTH_FAILED,
                message="GitHub /user response carried no login",
                suggestion="Use a user token rather than an app installation token.",
                recoverable=False,
            )
        return login

    async def get_latest_release_tag(self, owner: str, repo: str) -> str:
        """Return the tag of the latest release of ``owner/repo``, or ``"v0.0"``."""
        response = await self._get(f"/repos/{owner}/{repo}/releases/latest")
        return response.json().get("tag_name") or "v0.0"

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _require_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise CommitFeedError(
                code=ErrorCode.CLIENT_NOT_INITIALIZED,
                message="GitHub client is not initialized",
                suggestion="Set COMMITFEED__GITHUB__TOKEN and restart the server.",
                recoverable=False,
            )
        return self._client

    async def _paginate(
        self, url: str, params: dict[str, Any] | None = None
    ) -> AsyncIterator[httpx.Response]:
        """Yield each page of a listing, following ``Link: rel="next"``."""
        next_url: str | None = url
        next_params = params
        while next_url is not None:
            response = await self._get(next_url, params=next_params)
            yield response
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the full query string.
            next_params = None

    async def _get(self, url: str, params: dict[str, Any] | None = None) -> httpx.Response:
        """GET with bounded exponential backoff on rate limiting.

        Raises CommitFeedError on network errors, non-2xx responses, and
        rate limiting that persists for MAX_ATTEMPTS attempts.
        """
        client = self._require_client()
        backoff_seconds = INITIAL_BACKOFF_SECONDS

        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await client.get(url, params=params)
            except httpx.HTTPError as exc:
                raise CommitFeedError(
                    code=ErrorCode.SOURCE_UNAVAILABLE,
                    message=f"Network error fetching {url}: {exc}",
                    suggestion="GitHub may be temporarily unreachable.",
                    recoverable=True,
                ) from exc

            if response.is_success:
                return response

            error = _error_for_response(response, url)
            if error.code != ErrorCode.RATE_LIMITED or attempt == MAX_ATTEMPTS:
                raise error

            log.warning(
                "github_rate_limited_retrying",
                url=url,
                attempt=attempt,
                backoff_seconds=backoff_seconds,
            )
            await asyncio.sleep(backoff_seconds)
            backoff_seconds *= 2

        # Unreachable but satisfies the type checker
        raise CommitFeedError(
            code=ErrorCode.RATE_LIMITED,
            message=f"GitHub rate limit hit fetching {url}",
            suggestion="Wait for the rate limit window to reset.",
            recoverable=True,
        )
