"""Interface for the timer collaborator used for timeouts and backoff waits."""

import abc
import asyncio


class Timer(abc.ABC):
    """Abstract Base Class for one-shot, cancellable timers."""

    @abc.abstractmethod
    def after(self, seconds: float) -> "asyncio.Future[None]":
        """Returns a future that resolves once, `seconds` from now.

        Cancelling the returned future before it fires disarms the timer.
        Must be called from inside a running event loop.
        """
        pass
