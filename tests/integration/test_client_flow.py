"""End-to-end flows through ApiClient, the services and the real httpx transport."""

import json

import httpx
import pytest

from restlink.core.client import ApiClient
from restlink.core.services.auth_service import AuthService
from restlink.core.services.storage_service import StorageService
from restlink.domain.models.config import ClientConfig
from restlink.domain.models.result import ErrorKind
from restlink.infrastructure.storage.memory_token_store import MemoryTokenStore
from restlink.infrastructure.transport.httpx_transport import HttpxTransport


class FakeBackend:
    """Minimal in-memory backend speaking the auth and storage endpoints."""

    def __init__(self):
        self.valid_access = set()
        self.refresh_tokens = {"refresh-1": "u-1"}
        self.storage = {}
        self.requests = []
        self.failures_before_success = 0
        self.issued = 0

    def _issue(self, user_id):
        self.issued += 1
        access = f"access-{self.issued}"
        refresh = f"refresh-{self.issued + 1}"
        self.valid_access.add(access)
        self.refresh_tokens[refresh] = user_id
        return {"user_id": user_id, "access_token": access, "refresh_token": refresh}

    def expire_all(self):
        self.valid_access.clear()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, request.url.path))
        body = json.loads(request.content) if request.content else None
        path = request.url.path

        if self.failures_before_success:
            self.failures_before_success -= 1
            return httpx.Response(503, json={"error": {"message": "try later"}})

        if path == "/auth/login":
            if body.get("password") != "secret":
                return httpx.Response(401, json={"error": {"message": "bad credentials"}})
            return httpx.Response(200, json=self._issue("u-1"))
        if path == "/auth/refresh":
            user_id = self.refresh_tokens.pop(body.get("refresh_token"), None)
            if user_id is None:
                return httpx.Response(401, json={"error": "refresh token revoked"})
            return httpx.Response(200, json=self._issue(user_id))
        if path == "/auth/logout":
            self.refresh_tokens.pop(body.get("refresh_token"), None)
            return httpx.Response(204)

        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        if token not in self.valid_access:
            return httpx.Response(401, json={"error": {"message": "token expired"}})
        if request.headers.get("X-Project-Id") != "proj-1":
            return httpx.Response(403, json={"error": {"code": "forbidden"}})

        key = path.rsplit("/", 1)[-1]
        if request.method == "PUT":
            self.storage[key] = body["value"]
            return httpx.Response(200, json={"stored": key})
        if key not in self.storage:
            return httpx.Response(404, json={"error": {"message": f"no key {key}"}})
        return httpx.Response(200, json={"value": self.storage[key]})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    http = httpx.AsyncClient(transport=httpx.MockTransport(backend), follow_redirects=True)
    config = ClientConfig(
        base_url="https://game.example.test",
        project_id="proj-1",
        timeout_s=2.0,
        max_retries=2,
        backoff_base_s=0.001,
        backoff_max_s=0.004,
    )
    return ApiClient(config, transport=HttpxTransport(client=http), token_store=MemoryTokenStore()).initialize()


@pytest.mark.asyncio
async def test_login_store_and_read_back(client, backend):
    auth, storage = AuthService(client), StorageService(client)

    assert (await auth.login("alice", "secret")).ok
    assert (await storage.set("slot-1", {"hp": 10})).ok
    result = await storage.get("slot-1")

    assert result.data == {"value": {"hp": 10}}
    await client.shutdown()


@pytest.mark.asyncio
async def test_expired_session_refreshes_transparently(client, backend):
    auth, storage = AuthService(client), StorageService(client)
    await auth.login("alice", "secret")
    await storage.set("slot-1", 1)
    backend.expire_all()

    result = await storage.get("slot-1")

    assert result.ok
    assert result.data == {"value": 1}
    assert backend.requests[-3:] == [
        ("GET", "/storage/slot-1"),
        ("POST", "/auth/refresh"),
        ("GET", "/storage/slot-1"),
    ]
    assert client.credentials.access_token == "access-2"
    await client.shutdown()


@pytest.mark.asyncio
async def test_revoked_refresh_token_signs_out(client, backend):
    auth, storage = AuthService(client), StorageService(client)
    await auth.login("alice", "secret")
    backend.expire_all()
    backend.refresh_tokens.clear()

    result = await storage.get("slot-1")

    assert result.kind is ErrorKind.UNAUTHORIZED
    assert not auth.is_logged_in()
    await client.shutdown()


@pytest.mark.asyncio
async def test_transient_server_errors_are_retried(client, backend):
    backend.failures_before_success = 2

    result = await AuthService(client).login("alice", "secret")

    assert result.ok
    assert backend.requests.count(("POST", "/auth/login")) == 3
    await client.shutdown()


@pytest.mark.asyncio
async def test_retry_budget_exhausted(client, backend):
    backend.failures_before_success = 10

    result = await AuthService(client).login("alice", "secret")

    assert result.kind is ErrorKind.SERVER_ERROR
    assert result.error.message == "try later"
    assert len(backend.requests) == 3
    await client.shutdown()


@pytest.mark.asyncio
async def test_logout_revokes_refresh_token(client, backend):
    auth = AuthService(client)
    await auth.login("alice", "secret")

    result = await auth.logout()

    assert result.data == {"revoked": True}
    assert "refresh-2" not in backend.refresh_tokens
    assert not auth.is_logged_in()
    await client.shutdown()
