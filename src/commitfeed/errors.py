from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    RATE_LIMITED = "RATE_LIMITED"
    AUTH_FAILED = "AUTH_FAILED"
    NOT_FOUND = "NOT_FOUND"
    SOURCE_UNAVAILABLE = "SOURCE_UNAVAILABLE"
    SOURCE_TIMEOUT = "SOURCE_TIMEOUT"
    CLIENT_NOT_INITIALIZED = "CLIENT_NOT_INITIALIZED"
    INVALID_INPUT = "INVALID_INPUT"


class CommitFeedError(Exception):
    """Raised for all expected failure conditions.

    The source adapter raises it; the refresh scheduler catches and logs it so
    a failed refresh never reaches feed readers. The HTTP layer serialises the
    only variant a caller can trigger (``INVALID_INPUT``) with ``to_dict``.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
            }
        }
