from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "NotFound"
    EXPIRED = "Expired"
    INVALID_CODE = "InvalidCode"
    TOO_MANY_ATTEMPTS = "TooManyAttempts"
    PROVIDER_MISMATCH = "ProviderMismatch"
    SEND_FAILED = "SendFailed"
    UNAUTHORIZED = "Unauthorized"
    VALIDATION_ERROR = "ValidationError"
    RATE_LIMITED = "RateLimited"


@dataclass(frozen=True)
class Result:
    """
    Outcome of a core identity operation: either a value or an ErrorKind.
    `detail` is a human-readable message safe to surface to the client.
    """
    value: Any = None
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None
    retry_after: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value=None) -> "Result":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ErrorKind, detail: Optional[str] = None, retry_after: Optional[int] = None) -> "Result":
        return cls(error=error, detail=detail, retry_after=retry_after)
