"""The logical request: one caller-initiated operation.

A logical request may take several transport attempts to resolve. It is
immutable once submitted; retries and replays derive new copies instead.
"""

import dataclasses
import uuid
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .common import RequestId

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "


def _new_request_id() -> RequestId:
    return RequestId(uuid.uuid4().hex[:8])


@dataclass(frozen=True)
class LogicalRequest:
    """Method + path + optional JSON body, with per-request header overrides.

    Attributes:
        method: HTTP method, upper-cased on construction.
        path: Path relative to the client's base URL (placeholders already substituted).
        body: Optional JSON-serialisable body.
        headers: Header overrides applied on top of the client's headers.
        authenticated: Attach the current access token, if any.
        allow_refresh: Whether an UNAUTHORIZED outcome may trigger a token refresh.
        request_id: Correlation id for logs and events.
    """

    method: str
    path: str
    body: Optional[Any] = None
    headers: Mapping[str, str] = field(default_factory=dict)
    authenticated: bool = True
    allow_refresh: bool = True
    request_id: RequestId = field(default_factory=_new_request_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "headers", MappingProxyType(dict(self.headers)))

    def with_headers(self, overrides: Mapping[str, str]) -> "LogicalRequest":
        """Returns a copy whose header overrides are extended with `overrides`."""
        merged: Dict[str, str] = dict(self.headers)
        merged.update(overrides)
        return dataclasses.replace(self, headers=merged)

    def as_replay(self, access_token: str) -> "LogicalRequest":
        """Copy used to replay this request once after a credential refresh."""
        replay = self.with_headers({AUTHORIZATION_HEADER: f"{BEARER_PREFIX}{access_token}"})
        return dataclasses.replace(replay, allow_refresh=False)

    def describe(self) -> str:
        return f"{self.method} {self.path}"
