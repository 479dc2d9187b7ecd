"""Standardized success/error envelope returned by every public operation.

Exactly one of `data`/`error` is populated on a Result. Expected failures are
always reported through this envelope, never raised.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Union


class ErrorKind(str, Enum):
    """Error taxonomy. NONE is the success sentinel."""

    NONE = "none"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    INVALID_RESPONSE = "invalid_response"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    HTTP_ERROR = "http_error"
    VALIDATION_ERROR = "validation_error"
    BANNED = "banned"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


_STATUS_KINDS = {
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.CONFLICT,
    429: ErrorKind.RATE_LIMITED,
}


def classify_status(status: int) -> ErrorKind:
    """Maps an HTTP status code onto an ErrorKind. Total over all integers."""
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if status >= 500:
        return ErrorKind.SERVER_ERROR
    if 400 <= status < 500:
        return ErrorKind.HTTP_ERROR
    return ErrorKind.UNKNOWN


@dataclass(frozen=True)
class ApiError:
    """Error details carried by a failed Result.

    `status` is 0 when the failure did not come from an HTTP response.
    """

    kind: ErrorKind
    message: str
    status: int = 0
    details: Optional[Any] = None

    @property
    def http_status(self) -> int:
        return self.status


@dataclass(frozen=True)
class Result:
    ok: bool
    data: Optional[Any] = None
    error: Optional[ApiError] = None
    # HTTP status of the response that produced a successful Result (0 if unknown)
    response_status: int = 0

    def __post_init__(self) -> None:
        if self.ok and self.error is not None:
            raise ValueError("A successful Result cannot carry an error")
        if not self.ok and (self.error is None or self.data is not None):
            raise ValueError("A failed Result must carry an error and no data")

    @classmethod
    def success(cls, data: Any = None, status: int = 0) -> "Result":
        return cls(ok=True, data={} if data is None else data, response_status=status)

    @classmethod
    def failure(
        cls,
        kind: Union[ErrorKind, str],
        message: str,
        status: int = 0,
        details: Optional[Any] = None,
    ) -> "Result":
        return cls(ok=False, error=ApiError(ErrorKind(kind), message, status, details))

    @property
    def kind(self) -> ErrorKind:
        """ErrorKind of the failure, or NONE on success."""
        return self.error.kind if self.error else ErrorKind.NONE

    @property
    def status(self) -> int:
        return self.error.status if self.error else self.response_status


# Factory aliases matching the documented contract: ok(data), error(kind, message, ...)
ok = Result.success
error = Result.failure


def parse_body(body: bytes) -> Any:
    """Decodes a JSON response body. Raises ValueError on malformed payloads."""
    if not body or not body.strip():
        return {}
    return json.loads(body.decode("utf-8"))


def try_parse_body(body: bytes) -> Optional[Any]:
    """Best-effort decode used on error responses; falls back to the raw text."""
    try:
        return parse_body(body)
    except ValueError:  # UnicodeDecodeError and JSONDecodeError both subclass it
        return body.decode("utf-8", errors="replace") if body else None


def extract_error_message(payload: Any, status: int) -> str:
    """Pulls a human-readable message out of an error body.

    Priority: `error.message`, `error` (string), `message`, then "HTTP <status>".
    """
    if isinstance(payload, dict):
        err = payload.get("error")
        if isinstance(err, dict) and isinstance(err.get("message"), str) and err["message"]:
            return err["message"]
        if isinstance(err, str) and err:
            return err
        message = payload.get("message")
        if isinstance(message, str) and message:
            return message
    return f"HTTP {status}"


def is_banned_payload(payload: Any) -> bool:
    """True for bodies shaped like {"error": {"code": "banned", ...}}."""
    if not isinstance(payload, dict):
        return False
    err = payload.get("error")
    return isinstance(err, dict) and err.get("code") == "banned"
