"""Concrete implementation of the Transport interface using `httpx`.

Hides the specifics of httpx and translates its exception hierarchy into
transport error categories. The adapter never retries and does not apply a
read timeout of its own: the executor's timer governs each attempt.
"""

import logging
import ssl
from typing import Mapping, Optional

import httpx

from restlink.domain.interfaces.transport import (
    Transport,
    TransportError,
    TransportErrorCategory,
    TransportResponse,
)

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT_S = 10.0
DEFAULT_MAX_RESPONSE_BYTES = 10 * 1024 * 1024

# Substrings emitted by the resolver when a host name cannot be looked up
_DNS_FAILURE_MARKERS = (
    "name or service not known",
    "nodename nor servname",
    "temporary failure in name resolution",
    "getaddrinfo failed",
    "no address associated with hostname",
    "name resolution",
)


def _error_chain(exc: BaseException):
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _classify_connect_error(exc: httpx.ConnectError) -> TransportErrorCategory:
    for cause in _error_chain(exc):
        if isinstance(cause, ssl.SSLError):
            return TransportErrorCategory.TLS_HANDSHAKE_ERROR
    text = str(exc).lower()
    if "ssl" in text or "certificate" in text or "handshake" in text:
        return TransportErrorCategory.TLS_HANDSHAKE_ERROR
    if any(marker in text for marker in _DNS_FAILURE_MARKERS):
        return TransportErrorCategory.CANT_RESOLVE
    return TransportErrorCategory.CANT_CONNECT


def classify_exception(exc: Exception) -> TransportErrorCategory:
    """Maps an exception raised by httpx (or the OS) onto a category."""
    if isinstance(exc, httpx.TooManyRedirects):
        return TransportErrorCategory.REDIRECT_LIMIT
    if isinstance(exc, httpx.ConnectError):
        return _classify_connect_error(exc)
    if isinstance(exc, httpx.ConnectTimeout):
        return TransportErrorCategory.CANT_CONNECT
    if isinstance(exc, (httpx.RemoteProtocolError, httpx.ReadTimeout)):
        return TransportErrorCategory.NO_RESPONSE
    if isinstance(exc, (httpx.NetworkError, httpx.TimeoutException)):
        return TransportErrorCategory.CONNECTION_ERROR
    if isinstance(exc, (httpx.HTTPError, httpx.InvalidURL)):
        return TransportErrorCategory.REQUEST_FAILED
    if isinstance(exc, OSError):
        return TransportErrorCategory.LOCAL_IO_ERROR
    return TransportErrorCategory.REQUEST_FAILED


class HttpxTransport(Transport):
    """Transport over a shared `httpx.AsyncClient` connection pool."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
        max_redirects: int = 5,
        connect_timeout_s: float = DEFAULT_CONNECT_TIMEOUT_S,
    ):
        """Initializes the transport.

        Args:
            client: Pre-built AsyncClient (tests inject one wrapping httpx.MockTransport).
            max_response_bytes: Bodies larger than this fail with body_too_large.
            max_redirects: Redirect hops followed before failing with redirect_limit.
            connect_timeout_s: Connect timeout; read/write are bounded by the executor.
        """
        self.max_response_bytes = max_response_bytes
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout_s),
            follow_redirects=True,
            max_redirects=max_redirects,
        )
        logger.debug(
            f"HttpxTransport initialized: max_response_bytes={max_response_bytes}, "
            f"max_redirects={max_redirects}"
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: Optional[bytes] = None,
    ) -> TransportResponse:
        try:
            async with self._client.stream(method, url, headers=dict(headers), content=body) as response:
                declared = response.headers.get("content-length")
                if declared and declared.isdigit() and int(declared) > self.max_response_bytes:
                    raise TransportError(
                        TransportErrorCategory.BODY_TOO_LARGE,
                        f"Declared body of {declared} bytes exceeds {self.max_response_bytes}",
                    )
                chunks = []
                received = 0
                async for chunk in response.aiter_bytes():
                    received += len(chunk)
                    if received > self.max_response_bytes:
                        raise TransportError(
                            TransportErrorCategory.BODY_TOO_LARGE,
                            f"Body exceeds {self.max_response_bytes} bytes",
                        )
                    chunks.append(chunk)
                return TransportResponse(
                    status=response.status_code,
                    body=b"".join(chunks),
                    headers=dict(response.headers),
                )
        except TransportError:
            raise
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            category = classify_exception(e)
            logger.debug(f"{method} {url} failed at transport level ({category.value}): {e}")
            raise TransportError(category, str(e) or type(e).__name__) from e

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
            logger.debug("Closed httpx AsyncClient")
