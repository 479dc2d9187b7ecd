"""Request dispatcher: serializes (or, in parallel mode, directly launches) executors.

In serialized mode requests wait in a FIFO queue and exactly one executor runs
at a time; an entry leaves the queue the instant its executor is launched. A
slow early request therefore blocks the ones behind it. That is what keeps
concurrent 401s from racing each other and stops lost updates on the same
storage key.
"""

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass
from functools import partial
from typing import Callable, Deque, Dict, Tuple

from restlink.core.executor import RequestExecutor
from restlink.domain.models.config import DispatchMode
from restlink.domain.models.request import LogicalRequest
from restlink.domain.models.result import ErrorKind, Result

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[LogicalRequest], RequestExecutor]


@dataclass
class _QueueEntry:
    handle: int
    request: LogicalRequest
    future: "asyncio.Future[Result]"


class RequestDispatcher:
    """Launches executors according to the configured DispatchMode."""

    def __init__(self, executor_factory: ExecutorFactory, mode: DispatchMode = DispatchMode.SERIALIZED):
        self.mode = DispatchMode(mode)
        self._executor_factory = executor_factory
        self._queue: Deque[_QueueEntry] = deque()
        # Running executors indexed by handle
        self._running: Dict[int, Tuple[RequestExecutor, "asyncio.Task"]] = {}
        self._handles = itertools.count(1)
        self._closed = False
        logger.debug(f"RequestDispatcher initialized in {self.mode.value} mode")

    @property
    def pending_count(self) -> int:
        return len(self._queue)

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def closed(self) -> bool:
        return self._closed

    async def submit(self, request: LogicalRequest) -> Result:
        """Enqueues/launches `request` and waits for its terminal Result.

        Cancelling the awaiting task drops the entry if it is still queued,
        or cancels its executor if it is already running.
        """
        if self._closed:
            return _cancelled(request, "Dispatcher has been shut down")

        loop = asyncio.get_running_loop()
        entry = _QueueEntry(handle=next(self._handles), request=request, future=loop.create_future())

        if self.mode is DispatchMode.PARALLEL:
            self._launch(entry)
        else:
            self._queue.append(entry)
            logger.debug(
                f"[{request.request_id}] queued {request.describe()} (position {len(self._queue)})"
            )
            self._pump()

        try:
            return await asyncio.shield(entry.future)
        except asyncio.CancelledError:
            self._abandon(entry)
            raise

    async def shutdown(self) -> None:
        """Releases the pending queue and cancels running executors."""
        if self._closed:
            return
        self._closed = True
        released = 0
        while self._queue:
            entry = self._queue.popleft()
            if not entry.future.done():
                entry.future.set_result(_cancelled(entry.request, "Client shut down before the request was sent"))
            released += 1

        tasks = []
        for executor, task in list(self._running.values()):
            executor.cancel()
            tasks.append(task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"RequestDispatcher shut down: released {released} queued, cancelled {len(tasks)} running")

    # --- Internal ---

    def _pump(self) -> None:
        if self._running or not self._queue:
            return
        self._launch(self._queue.popleft())

    def _launch(self, entry: _QueueEntry) -> None:
        executor = self._executor_factory(entry.request)
        task = asyncio.ensure_future(executor.execute())
        self._running[entry.handle] = (executor, task)
        task.add_done_callback(partial(self._on_finished, entry))

    def _on_finished(self, entry: _QueueEntry, task: "asyncio.Task") -> None:
        self._running.pop(entry.handle, None)
        if task.cancelled():
            result = _cancelled(entry.request, "Request was cancelled")
        elif task.exception() is not None:
            exc = task.exception()
            logger.error(
                f"[{entry.request.request_id}] executor crashed: {exc}", exc_info=exc
            )
            result = Result.failure(ErrorKind.UNKNOWN, f"Executor failed: {exc}")
        else:
            result = task.result()

        if not entry.future.done():
            entry.future.set_result(result)
        if self.mode is DispatchMode.SERIALIZED and not self._closed:
            self._pump()

    def _abandon(self, entry: _QueueEntry) -> None:
        if entry in self._queue:
            self._queue.remove(entry)
            logger.debug(f"[{entry.request.request_id}] dropped from queue by caller")
            return
        running = self._running.get(entry.handle)
        if running is not None:
            running[0].cancel()


def _cancelled(request: LogicalRequest, message: str) -> Result:
    return Result.failure(ErrorKind.CANCELLED, message, details={"request_id": request.request_id})
