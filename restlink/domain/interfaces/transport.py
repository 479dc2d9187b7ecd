"""Interface for the HTTP transport collaborator.

The transport only moves bytes: it never retries, never interprets status
codes and never parses bodies. Cancelling the awaiting task must abort the
request mid-flight.
"""

import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional


class TransportErrorCategory(str, Enum):
    CANT_CONNECT = "cant_connect"
    CANT_RESOLVE = "cant_resolve"
    CONNECTION_ERROR = "connection_error"
    TLS_HANDSHAKE_ERROR = "tls_handshake_error"
    NO_RESPONSE = "no_response"
    BODY_TOO_LARGE = "body_too_large"
    REQUEST_FAILED = "request_failed"
    REDIRECT_LIMIT = "redirect_limit"
    LOCAL_IO_ERROR = "local_io_error"


# Connection-class failures; everything else is terminal on first occurrence.
RETRYABLE_CATEGORIES = frozenset({
    TransportErrorCategory.CANT_CONNECT,
    TransportErrorCategory.CANT_RESOLVE,
    TransportErrorCategory.CONNECTION_ERROR,
    TransportErrorCategory.TLS_HANDSHAKE_ERROR,
})


class TransportError(Exception):
    """Raised by a Transport when no HTTP response could be obtained."""

    def __init__(self, category: TransportErrorCategory, message: str = ""):
        self.category = TransportErrorCategory(category)
        self.message = message or self.category.value
        super().__init__(f"{self.category.value}: {self.message}")

    @property
    def retryable(self) -> bool:
        return self.category in RETRYABLE_CATEGORIES


@dataclass(frozen=True)
class TransportResponse:
    status: int
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)


class Transport(abc.ABC):
    """Abstract Base Class for sending one HTTP request."""

    @abc.abstractmethod
    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> TransportResponse:
        """Sends a single request and returns the raw response.

        Args:
            method: HTTP method.
            url: Absolute URL.
            headers: Complete header set for this attempt.
            body: Encoded body, if any.

        Returns:
            The status code and raw body of the response (any status).

        Raises:
            TransportError: If no HTTP response could be obtained.
        """
        pass

    async def close(self) -> None:
        """Releases pooled connections. Default: nothing to release."""
        return None
