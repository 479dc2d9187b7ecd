"""Exponential backoff with symmetric jitter.

The policy is stateless: `delay(attempt)` depends only on `attempt` and the
policy's fields, so one instance is shared by every executor of a client.
"""

import random
from dataclasses import dataclass, field
from typing import Callable

from restlink.domain.models.config import ClientConfig


@dataclass(frozen=True)
class BackoffPolicy:
    """Value Object describing the wait between retries (seconds)."""

    base_delay: float = 0.5
    max_delay: float = 8.0
    multiplier: float = 2.0
    jitter_fraction: float = 0.10
    uniform: Callable[[float, float], float] = field(default=random.uniform, compare=False, repr=False)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "BackoffPolicy":
        return cls(
            base_delay=config.backoff_base_s,
            max_delay=config.backoff_max_s,
            multiplier=config.backoff_multiplier,
            jitter_fraction=config.backoff_jitter,
        )

    def raw_delay(self, attempt: int) -> float:
        """Capped exponential delay before jitter."""
        if attempt < 0:
            raise ValueError(f"attempt must be >= 0, got {attempt}")
        try:
            grown = self.base_delay * (self.multiplier ** attempt)
        except OverflowError:
            grown = self.max_delay
        return min(grown, self.max_delay)

    def delay(self, attempt: int) -> float:
        """Wait before retry number `attempt + 1` (attempt is 0-indexed)."""
        raw = self.raw_delay(attempt)
        spread = raw * self.jitter_fraction
        return max(0.0, raw + self.uniform(-spread, spread))

    def reset(self) -> None:
        """No-op: the policy carries no per-sequence state."""
        return None
