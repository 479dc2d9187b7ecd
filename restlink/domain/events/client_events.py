"""Domain Events related to request execution and authentication state.

Events are fire-and-forget: the pipeline never consumes a return value from
whoever handles them.
"""

from dataclasses import dataclass, field
import time
from typing import Any, Optional


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Request Lifecycle Events ---

@dataclass
class RequestStarted(DomainEvent):
    """Event triggered when a logical request is submitted."""
    method: str
    path: str
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RequestFinished(DomainEvent):
    """Event triggered once a logical request reaches its final Result."""
    method: str
    path: str
    ok: bool
    status: int
    request_id: Optional[str] = None
    latency_ms: Optional[float] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a transient failure schedules another attempt."""
    method: str
    path: str
    attempt_number: int
    delay_seconds: float
    reason: str = ""
    request_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


# --- Auth Events ---

@dataclass
class TokenRefreshed(DomainEvent):
    """Event triggered when a refresh cycle completes (successfully or not)."""
    ok: bool
    timestamp: float = field(default_factory=time.time)


@dataclass
class AuthStateChanged(DomainEvent):
    """Event triggered when the signed-in user changes. None means no user."""
    user_id: Optional[str]
    timestamp: float = field(default_factory=time.time)


@dataclass
class BannedDetected(DomainEvent):
    """Event triggered when the backend reports the account as banned."""
    details: Any
    timestamp: float = field(default_factory=time.time)
