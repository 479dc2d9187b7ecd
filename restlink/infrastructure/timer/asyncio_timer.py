"""Timer adapter backed by the running event loop's `call_later`."""

import asyncio
import logging

from restlink.domain.interfaces.timer import Timer

logger = logging.getLogger(__name__)


def _fire(future: "asyncio.Future[None]") -> None:
    if not future.done():
        future.set_result(None)


class AsyncioTimer(Timer):
    """One-shot timers scheduled on the current event loop."""

    def after(self, seconds: float) -> "asyncio.Future[None]":
        loop = asyncio.get_running_loop()
        future: "asyncio.Future[None]" = loop.create_future()
        handle = loop.call_later(max(0.0, seconds), _fire, future)

        def _disarm(done: "asyncio.Future[None]") -> None:
            if done.cancelled():
                handle.cancel()

        future.add_done_callback(_disarm)
        return future
