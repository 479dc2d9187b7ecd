"""Capability interface the executor calls on auth-relevant outcomes."""

import abc
from typing import Any, Optional

from ..models.request import LogicalRequest
from ..models.result import Result


class AuthHandler(abc.ABC):

    @abc.abstractmethod
    async def on_unauthorized(
        self,
        request: LogicalRequest,
        failure: Result,
        attempted_token: Optional[str] = None,
    ) -> Result:
        """Attempts to recover from an UNAUTHORIZED outcome.

        Args:
            request: The logical request that was rejected.
            failure: The UNAUTHORIZED Result the executor would otherwise return.
            attempted_token: Access token the rejected attempt carried.

        Returns:
            The final Result for `request` (the replay's Result, or an UNAUTHORIZED failure).
        """
        pass

    @abc.abstractmethod
    def on_banned(self, details: Any) -> None:
        """Notified when a 403 body carries error.code == "banned"."""
        pass
