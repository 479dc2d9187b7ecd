import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit

import pytest

from restlink.core.backoff import BackoffPolicy
from restlink.core.client import ApiClient
from restlink.domain.events.client_events import DomainEvent
from restlink.domain.interfaces.transport import Transport, TransportError, TransportResponse
from restlink.domain.models.config import ClientConfig
from restlink.domain.models.credentials import CredentialBundle
from restlink.infrastructure.monitoring.event_bus import EventDispatcher
from restlink.infrastructure.storage.memory_token_store import MemoryTokenStore
from restlink.infrastructure.timer.asyncio_timer import AsyncioTimer

BASE_URL = "https://api.example.test"
TIMEOUT_S = 1.0


def json_response(status: int, payload: Any = None) -> TransportResponse:
    body = b"" if payload is None else json.dumps(payload).encode("utf-8")
    return TransportResponse(status=status, body=body)


def raw_response(status: int, body: bytes) -> TransportResponse:
    return TransportResponse(status=status, body=body)


HANG = object()  # reply that never completes (for timeout tests)


@dataclass
class Delayed:
    seconds: float
    reply: Any


@dataclass
class SentRequest:
    method: str
    url: str
    path: str
    headers: Dict[str, str]
    body: Optional[Any]

    @property
    def authorization(self) -> Optional[str]:
        return self.headers.get("Authorization")


Reply = Union[TransportResponse, TransportError, Delayed, Callable[[SentRequest], Any], object]


class FakeTransport(Transport):
    """Scripted transport.

    Replies are queued per path; the last reply of a queue repeats. A reply
    may be a TransportResponse, an exception to raise, a Delayed wrapper,
    HANG, or a callable receiving the SentRequest and returning any of those.
    """

    def __init__(self):
        self.routes: Dict[str, List[Reply]] = {}
        self.calls: List[SentRequest] = []
        self.log: List[tuple] = []
        self.closed = False

    def add(self, path: str, *replies: Reply) -> "FakeTransport":
        self.routes.setdefault(path, []).extend(replies)
        return self

    def calls_to(self, path: str) -> List[SentRequest]:
        return [c for c in self.calls if c.path == path]

    def _next_reply(self, path: str) -> Reply:
        queue = self.routes.get(path)
        if not queue:
            return json_response(200, {})
        return queue.pop(0) if len(queue) > 1 else queue[0]

    async def send(self, method, url, headers, body=None):
        path = urlsplit(url).path
        call = SentRequest(method, url, path, dict(headers), json.loads(body) if body else None)
        self.calls.append(call)
        self.log.append(("start", path))
        try:
            reply = self._next_reply(path)
            if callable(reply) and not isinstance(reply, (TransportResponse, BaseException)):
                reply = reply(call)
            if isinstance(reply, Delayed):
                await asyncio.sleep(reply.seconds)
                reply = reply.reply
                if callable(reply) and not isinstance(reply, (TransportResponse, BaseException)):
                    reply = reply(call)
            if reply is HANG:
                await asyncio.Event().wait()
            if isinstance(reply, BaseException):
                raise reply
            return reply
        finally:
            self.log.append(("end", path))

    async def close(self):
        self.closed = True


class RecordingTimer(AsyncioTimer):
    """Real timer that remembers every duration requested."""

    def __init__(self):
        self.requested: List[float] = []

    def after(self, seconds):
        self.requested.append(seconds)
        return super().after(seconds)

    def backoff_waits(self, timeout_s: float = TIMEOUT_S) -> List[float]:
        return [s for s in self.requested if s != timeout_s]


class StubAuthHandler:
    """AuthHandler double recording its invocations."""

    def __init__(self, result=None):
        self.result = result
        self.unauthorized_calls: List[tuple] = []
        self.banned: List[Any] = []

    async def on_unauthorized(self, request, failure, attempted_token=None):
        self.unauthorized_calls.append((request, failure, attempted_token))
        return self.result or failure

    def on_banned(self, details):
        self.banned.append(details)


@pytest.fixture
def fast_backoff():
    return BackoffPolicy(base_delay=0.001, max_delay=0.004)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def timer():
    return RecordingTimer()


@pytest.fixture
def token_store():
    return MemoryTokenStore()


@pytest.fixture
def events():
    return EventDispatcher()


@pytest.fixture
def recorded_events(events) -> List[DomainEvent]:
    """Every event dispatched on the `events` fixture, in order."""
    seen: List[DomainEvent] = []
    events.subscribe(seen.append)
    return seen


@pytest.fixture
def make_config():
    def _make(**overrides) -> ClientConfig:
        values = dict(
            base_url=BASE_URL,
            project_id="proj-1",
            timeout_s=TIMEOUT_S,
            max_retries=2,
            backoff_base_s=0.001,
            backoff_max_s=0.004,
        )
        values.update(overrides)
        return ClientConfig(**values)
    return _make


@pytest.fixture
def make_client(make_config, transport, timer, token_store, events):
    """Factory for initialized ApiClients wired to the fake collaborators."""
    def _make(credentials: Optional[CredentialBundle] = None, **config_overrides) -> ApiClient:
        if credentials is not None:
            token_store.save(credentials)
        client = ApiClient(
            make_config(**config_overrides),
            transport=transport,
            token_store=token_store,
            timer=timer,
            events=events,
        )
        return client.initialize()
    return _make


@pytest.fixture
def signed_in():
    return CredentialBundle(user_id="u-1", access_token="old-access", refresh_token="refresh-1")
