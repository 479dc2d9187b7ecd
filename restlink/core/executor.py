"""Request executor: drives one logical request to exactly one terminal Result.

State machine::

    IDLE -> ATTEMPTING -> SUCCEEDED | FAILED | RETRYING
    RETRYING -> ATTEMPTING

Each attempt races the transport call against the request timeout timer.
Transient failures (connection-class transport errors, 5xx, timeouts) are
retried with backoff until `max_retries` is spent; everything else is terminal
on first occurrence. An UNAUTHORIZED outcome is handed to the AuthHandler,
whose Result becomes the final one.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from restlink.core.backoff import BackoffPolicy
from restlink.domain.events.client_events import BannedDetected, RetryScheduled
from restlink.domain.interfaces.auth_handler import AuthHandler
from restlink.domain.interfaces.timer import Timer
from restlink.domain.interfaces.transport import Transport, TransportError, TransportResponse
from restlink.domain.models.request import AUTHORIZATION_HEADER, BEARER_PREFIX, LogicalRequest
from restlink.domain.models.result import (
    ErrorKind,
    Result,
    classify_status,
    extract_error_message,
    is_banned_payload,
    parse_body,
    try_parse_body,
)
from restlink.infrastructure.monitoring.event_bus import EventDispatcher

logger = logging.getLogger(__name__)

HeaderProvider = Callable[[LogicalRequest], Dict[str, str]]

JSON_HEADERS = {"Accept": "application/json", "Content-Type": "application/json"}


def default_headers(request: LogicalRequest) -> Dict[str, str]:
    headers = dict(JSON_HEADERS)
    headers.update(request.headers)
    return headers


def bearer_token(headers: Dict[str, str]) -> Optional[str]:
    """Extracts the token from an `Authorization: Bearer <token>` header, if present."""
    value = headers.get(AUTHORIZATION_HEADER, "")
    if value.startswith(BEARER_PREFIX) and len(value) > len(BEARER_PREFIX):
        return value[len(BEARER_PREFIX):]
    return None


class ExecutorPhase(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ExecutorState:
    """Per-request state; allocated at submission, discarded after delivery."""

    request: LogicalRequest
    attempt_count: int = 0
    phase: ExecutorPhase = ExecutorPhase.IDLE
    completed: bool = False
    pending_timer: Optional["asyncio.Future[None]"] = None
    result: Optional[Result] = None
    retry_reason: str = ""


@dataclass(frozen=True)
class _Outcome:
    """What happened to a single attempt. Exactly one field is set."""

    response: Optional[TransportResponse] = None
    transport_error: Optional[TransportError] = None
    unexpected: Optional[BaseException] = None
    timed_out: bool = False
    cancelled: bool = False


class RequestExecutor:
    """Owns the life of one logical request. Never reused across requests."""

    def __init__(
        self,
        request: LogicalRequest,
        transport: Transport,
        timer: Timer,
        backoff: BackoffPolicy,
        *,
        base_url: str = "",
        timeout_s: float = 10.0,
        max_retries: int = 3,
        header_provider: Optional[HeaderProvider] = None,
        auth_handler: Optional[AuthHandler] = None,
        events: Optional[EventDispatcher] = None,
    ):
        self.state = ExecutorState(request=request)
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self._transport = transport
        self._timer = timer
        self._backoff = backoff
        self._header_provider = header_provider or default_headers
        self._auth_handler = auth_handler
        self._events = events
        self._in_flight: Optional[asyncio.Future] = None
        self._cancel_requested = False
        self._attempted_token: Optional[str] = None

    @property
    def request(self) -> LogicalRequest:
        return self.state.request

    @property
    def completed(self) -> bool:
        return self.state.completed

    def _tag(self) -> str:
        return f"[{self.request.request_id}] {self.request.describe()}"

    # --- Public API ---

    async def execute(self) -> Result:
        """Runs the state machine to completion and returns the terminal Result.

        Raises:
            RuntimeError: If this executor has already been run.
            asyncio.CancelledError: If the awaiting task itself is cancelled.
        """
        state = self.state
        if state.phase is not ExecutorPhase.IDLE:
            raise RuntimeError(f"{self._tag()}: executors are single-use")

        try:
            body = self._encode_body()
        except (TypeError, ValueError) as e:
            self._complete(Result.failure(
                ErrorKind.VALIDATION_ERROR, f"Request body is not JSON serialisable: {e}"
            ))
            return state.result

        try:
            while not state.completed:
                if self._cancel_requested:
                    self._complete(self._cancelled_result())
                    break

                state.phase = ExecutorPhase.ATTEMPTING
                outcome = await self._attempt(body)
                result = self._evaluate(outcome)
                if result is None:
                    await self._wait_backoff()
                    continue

                if result.kind is ErrorKind.UNAUTHORIZED and self._should_refresh():
                    logger.info(f"{self._tag()} unauthorized; handing over to auth handler")
                    result = await self._hand_over(result)
                self._complete(result)
        except asyncio.CancelledError:
            self._disarm()
            self._complete(self._cancelled_result())
            raise

        if state.result is None:
            logger.error(f"{self._tag()} finished without producing a result")
            state.result = Result.failure(ErrorKind.UNKNOWN, "Request finished without a result")
            state.phase = ExecutorPhase.FAILED
            state.completed = True
        return state.result

    def cancel(self) -> bool:
        """Requests cancellation; the request completes with a CANCELLED Result.

        Returns:
            False if the request had already reached a terminal state.
        """
        if self.state.completed:
            return False
        self._cancel_requested = True
        self._disarm()
        return True

    # --- Attempt handling ---

    def _encode_body(self) -> Optional[bytes]:
        if self.request.body is None:
            return None
        return json.dumps(self.request.body).encode("utf-8")

    def _url(self) -> str:
        path = self.request.path
        if path.startswith(("http://", "https://")):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    async def _attempt(self, body: Optional[bytes]) -> _Outcome:
        state = self.state
        request = state.request
        headers = self._header_provider(request)
        self._attempted_token = bearer_token(headers)

        logger.debug(
            f"{self._tag()} attempt {state.attempt_count + 1}/{self.max_retries + 1}"
        )
        send = asyncio.ensure_future(self._transport.send(request.method, self._url(), headers, body))
        timeout_timer = self._timer.after(self.timeout_s)
        self._in_flight = send
        state.pending_timer = timeout_timer
        try:
            await asyncio.wait({send, timeout_timer}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            timeout_timer.cancel()
            raise
        finally:
            self._in_flight = None
            state.pending_timer = None

        if send.done():
            timeout_timer.cancel()
            if send.cancelled():
                return _Outcome(cancelled=True)
            exc = send.exception()
            if exc is None:
                return _Outcome(response=send.result())
            if isinstance(exc, TransportError):
                return _Outcome(transport_error=exc)
            return _Outcome(unexpected=exc)

        # Timer fired (or was cancelled by cancel()): abort the in-flight call
        send.cancel()
        await asyncio.gather(send, return_exceptions=True)
        if self._cancel_requested:
            return _Outcome(cancelled=True)
        return _Outcome(timed_out=True)

    def _evaluate(self, outcome: _Outcome) -> Optional[Result]:
        """Turns an attempt outcome into a terminal Result, or None to retry."""
        state = self.state
        can_retry = state.attempt_count < self.max_retries
        attempts = state.attempt_count + 1

        if outcome.cancelled:
            return self._cancelled_result()

        if outcome.timed_out:
            if can_retry:
                return self._schedule_retry("timeout")
            return Result.failure(
                ErrorKind.TIMEOUT,
                f"Request timed out after {self.timeout_s}s",
                details={"attempts": attempts},
            )

        if outcome.transport_error is not None:
            err = outcome.transport_error
            if err.retryable and can_retry:
                return self._schedule_retry(err.category.value)
            return Result.failure(
                ErrorKind.NETWORK_ERROR,
                err.message,
                details={"category": err.category.value, "attempts": attempts},
            )

        if outcome.unexpected is not None:
            exc = outcome.unexpected
            logger.error(f"{self._tag()} transport raised unexpectedly: {exc}", exc_info=exc)
            return Result.failure(
                ErrorKind.UNKNOWN,
                f"Unexpected transport failure: {exc}",
                details={"exception": type(exc).__name__},
            )

        response = outcome.response
        if response.status < 400:
            try:
                data = parse_body(response.body)
            except ValueError as e:
                logger.warning(f"{self._tag()} returned a malformed body: {e}")
                return Result.failure(
                    ErrorKind.INVALID_RESPONSE,
                    f"Malformed response body: {e}",
                    status=response.status,
                    details=response.body.decode("utf-8", errors="replace"),
                )
            return Result.success(data, status=response.status)

        payload = try_parse_body(response.body)
        kind = classify_status(response.status)
        if response.status == 403 and is_banned_payload(payload):
            self._notify_banned(payload)
        if kind is ErrorKind.SERVER_ERROR and can_retry:
            return self._schedule_retry(f"HTTP {response.status}")
        return Result.failure(
            kind,
            extract_error_message(payload, response.status),
            status=response.status,
            details=payload,
        )

    def _schedule_retry(self, reason: str) -> None:
        self.state.phase = ExecutorPhase.RETRYING
        self.state.retry_reason = reason
        return None

    async def _wait_backoff(self) -> None:
        state = self.state
        state.attempt_count += 1
        delay = self._backoff.delay(state.attempt_count - 1)
        logger.info(
            f"{self._tag()} attempt {state.attempt_count}/{self.max_retries + 1} "
            f"failed ({state.retry_reason}). Retrying in {delay:.2f}s..."
        )
        if self._events:
            self._events.dispatch(RetryScheduled(
                method=state.request.method,
                path=state.request.path,
                attempt_number=state.attempt_count,
                delay_seconds=delay,
                reason=state.retry_reason,
                request_id=state.request.request_id,
            ))

        backoff_timer = self._timer.after(delay)
        state.pending_timer = backoff_timer
        try:
            await asyncio.wait({backoff_timer})
        except asyncio.CancelledError:
            backoff_timer.cancel()
            raise
        finally:
            state.pending_timer = None

    async def _hand_over(self, failure: Result) -> Result:
        """Runs the auth handler as a tracked child so cancel() reaches refresh and replay."""
        handoff = asyncio.ensure_future(
            self._auth_handler.on_unauthorized(self.request, failure, self._attempted_token)
        )
        self._in_flight = handoff
        try:
            await asyncio.wait({handoff})
        except asyncio.CancelledError:
            handoff.cancel()
            raise
        finally:
            self._in_flight = None

        if handoff.cancelled() or self._cancel_requested:
            return self._cancelled_result()
        return handoff.result()

    # --- Completion ---

    def _should_refresh(self) -> bool:
        return (
            self._auth_handler is not None
            and self.request.allow_refresh
            and bool(self._attempted_token)
        )

    def _notify_banned(self, payload) -> None:
        logger.warning(f"{self._tag()} rejected: account banned")
        if self._auth_handler is not None:
            self._auth_handler.on_banned(payload)
        elif self._events:
            self._events.dispatch(BannedDetected(details=payload))

    def _cancelled_result(self) -> Result:
        return Result.failure(
            ErrorKind.CANCELLED,
            "Request was cancelled",
            details={"attempts": self.state.attempt_count + 1},
        )

    def _disarm(self) -> None:
        if self._in_flight is not None:
            self._in_flight.cancel()
        if self.state.pending_timer is not None:
            self.state.pending_timer.cancel()

    def _complete(self, result: Result) -> bool:
        """Records the terminal Result. A second completion is ignored."""
        state = self.state
        if state.completed:
            logger.debug(f"{self._tag()} ignoring duplicate completion ({result.kind.value})")
            return False
        state.completed = True
        state.result = result
        state.phase = ExecutorPhase.SUCCEEDED if result.ok else ExecutorPhase.FAILED
        if result.ok:
            logger.debug(f"{self._tag()} succeeded after {state.attempt_count + 1} attempt(s)")
        else:
            logger.debug(
                f"{self._tag()} failed with {result.kind.value} after "
                f"{state.attempt_count + 1} attempt(s): {result.error.message}"
            )
        return True
