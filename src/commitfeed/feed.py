"""Read path for the commit feed.

Serves pages from a cache snapshot and, when the snapshot is older than the
staleness threshold, asks the refresh scheduler for a background refresh.
The caller always gets the current (possibly stale) page straight away.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from commitfeed.errors import CommitFeedError, ErrorCode
from commitfeed.models.commit import CommitPage, GetCommitsInput

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import timedelta

    from commitfeed.cache import CommitCache
    from commitfeed.protocols import RefreshTriggerProtocol

log = structlog.get_logger()


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CommitFeed:
    def __init__(
        self,
        cache: CommitCache,
        trigger: RefreshTriggerProtocol,
        *,
        stale_after: timedelta,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._cache = cache
        self._trigger = trigger
        self._stale_after = stale_after
        self._clock = clock

    def get_page(self, page: int = 1, limit: int = 20) -> CommitPage:
        """Return one page of commits, newest first.

        Out-of-range pages come back empty with the true total count. Raises
        CommitFeedError(INVALID_INPUT) only for ``page < 1`` or ``limit``
        outside 1-100.
        """
        try:
            validated = GetCommitsInput(page=page, limit=limit)
        except ValidationError as exc:
            raise CommitFeedError(
                code=ErrorCode.INVALID_INPUT,
                message=str(exc),
                suggestion="Use page >= 1 and limit between 1 and 100.",
                recoverable=False,
            ) from exc

        records, last_refreshed = self._cache.snapshot()

        stale = last_refreshed is None or self._clock() - last_refreshed > self._stale_after
        if stale:
            requested = self._trigger.request_refresh()
            log.info(
                "commit_feed_stale",
                last_refreshed=last_refreshed.isoformat() if last_refreshed else None,
                refresh_requested=requested,
            )

        total = len(records)
        start = (validated.page - 1) * validated.limit
        end = min(start + validated.limit, total)
        commits = records[start:end] if start < total else []

        return CommitPage(
            commits=commits,
            page=validated.page,
            limit=validated.limit,
            total_count=total,
            last_refreshed=last_refreshed,
            stale=stale,
        )
