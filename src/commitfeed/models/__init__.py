from __future__ import annotations

from commitfeed.models.commit import (
    EPOCH_MIN,
    CommitPage,
    CommitRecord,
    GetCommitsInput,
    format_timestamp,
    parse_timestamp,
)

__all__ = [
    "CommitRecord",
    "CommitPage",
    "GetCommitsInput",
    "EPOCH_MIN",
    "format_timestamp",
    "parse_timestamp",
]
