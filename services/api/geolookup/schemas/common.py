"""Error payload schemas shared by every endpoint.

Format: { "error": { "code": ErrorCode, "message": str, "detail": object | null } }
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class ErrorCode(str, Enum):
    """Machine-readable error codes and the HTTP status each maps to."""

    INVALID_QUERY = "INVALID_QUERY"
    LOCK_WAIT_EXHAUSTED = "LOCK_WAIT_EXHAUSTED"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.INVALID_QUERY: 400,
    ErrorCode.LOCK_WAIT_EXHAUSTED: 503,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INTERNAL_ERROR: 500,
}


class ErrorDetail(BaseModel):
    code: ErrorCode
    message: str
    detail: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response."""

    error: ErrorDetail

    @classmethod
    def build(cls, code: ErrorCode, message: str, detail: dict[str, Any] | None = None) -> "ErrorResponse":
        return cls(error=ErrorDetail(code=code, message=message, detail=detail))
