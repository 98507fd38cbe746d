from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

# Sort key for timestamps that cannot be parsed: earlier than any real commit.
EPOCH_MIN = datetime.min.replace(tzinfo=UTC)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken as UTC. Anything unparseable maps to ``EPOCH_MIN``
    instead of raising, so a malformed record sorts last rather than breaking
    a snapshot.
    """
    try:
        parsed = datetime.fromisoformat(value.strip())
    except (AttributeError, TypeError, ValueError):
        return EPOCH_MIN
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render ``value`` as second-precision UTC: ``2024-05-01T12:00:00Z``."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class CommitRecord(BaseModel):
    """A single commit as served by the feed.

    Frozen: the cache replaces records by id but never edits one in place.
    """

    model_config = ConfigDict(frozen=True)

    id: str  # Commit SHA, or its redaction for private repositories
    repo_name: str
    message: str
    timestamp: str  # ISO-8601, UTC
    url: str
    is_private: bool = False


class GetCommitsInput(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)


class CommitPage(BaseModel):
    """One page of the feed, computed fresh from a cache snapshot."""

    commits: list[CommitRecord]
    page: int
    limit: int
    total_count: int
    last_refreshed: datetime | None = None
    stale: bool = False  # True when this read requested a background refresh
