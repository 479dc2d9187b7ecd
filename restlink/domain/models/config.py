"""Client configuration consumed once at client construction."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional


class DispatchMode(str, Enum):
    """How the dispatcher launches executors."""

    SERIALIZED = "serialized"  # FIFO, one request in flight at a time
    PARALLEL = "parallel"      # every request launches immediately


# Path templates; `{param}` placeholders are substituted by exact string replacement.
DEFAULT_ENDPOINTS: Dict[str, str] = {
    "register": "/auth/register",
    "login": "/auth/login",
    "refresh": "/auth/refresh",
    "logout": "/auth/logout",
    "storage_get": "/storage/{key}",
    "storage_set": "/storage/{key}",
    "storage_delete": "/storage/{key}",
    "storage_list": "/storage",
    "leaderboard_submit": "/leaderboards/{board}/scores",
    "leaderboard_top": "/leaderboards/{board}/top",
    "leaderboard_around": "/leaderboards/{board}/around/{user_id}",
    "config": "/config",
}


@dataclass
class ClientConfig:
    """Configuration for the client and its resilience features."""

    # Connection settings
    base_url: str
    project_id: str = ""
    project_header: str = "X-Project-Id"
    default_headers: Dict[str, str] = field(default_factory=dict)

    # Timeout / retry settings (seconds)
    timeout_s: float = 10.0
    max_retries: int = 3
    backoff_base_s: float = 0.5
    backoff_max_s: float = 8.0
    backoff_multiplier: float = 2.0
    backoff_jitter: float = 0.1

    # Dispatch
    dispatch_mode: DispatchMode = DispatchMode.SERIALIZED

    # Endpoint path overrides, merged over DEFAULT_ENDPOINTS
    endpoints: Dict[str, str] = field(default_factory=dict)

    # Transport limits
    max_response_bytes: int = 10 * 1024 * 1024
    max_redirects: int = 5

    # Token persistence directory (diskcache); None keeps tokens in memory only
    token_store_dir: Optional[str] = None

    def __post_init__(self):
        """Validate configuration."""
        if not self.base_url:
            raise ValueError("base_url is required")
        self.base_url = self.base_url.rstrip("/")
        self.dispatch_mode = DispatchMode(self.dispatch_mode)
        self.endpoints = {**DEFAULT_ENDPOINTS, **(self.endpoints or {})}

        if self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")
        if self.backoff_base_s < 0:
            raise ValueError(f"backoff_base_s must be >= 0, got {self.backoff_base_s}")
        if self.backoff_max_s < self.backoff_base_s:
            raise ValueError(
                f"backoff_max_s ({self.backoff_max_s}) must be >= "
                f"backoff_base_s ({self.backoff_base_s})"
            )
        if self.backoff_multiplier < 1.0:
            raise ValueError(f"backoff_multiplier must be >= 1.0, got {self.backoff_multiplier}")
        if not 0.0 <= self.backoff_jitter <= 1.0:
            raise ValueError(f"backoff_jitter must be within [0, 1], got {self.backoff_jitter}")
        if self.max_response_bytes <= 0:
            raise ValueError(f"max_response_bytes must be > 0, got {self.max_response_bytes}")
