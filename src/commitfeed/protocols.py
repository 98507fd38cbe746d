"""Protocol interfaces for swappable components.

The scheduler and the feed reference these protocols, not the concrete
implementations. This allows:
- Tests to drive refreshes with in-memory commit sources
- The feed to be tested against a recording refresh trigger
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from datetime import datetime

    from commitfeed.models.commit import CommitRecord


class CommitSourceProtocol(Protocol):
    """Interface for the remote commit source."""

    async def fetch_all(self) -> list[CommitRecord]: ...

    async def fetch_since(self, watermark: datetime) -> list[CommitRecord]: ...


class RefreshTriggerProtocol(Protocol):
    """Non-blocking "refresh soon" capability handed to the read path."""

    def request_refresh(self) -> bool: ...
