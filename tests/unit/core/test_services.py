import pytest

from conftest import json_response
from restlink.core.services.auth_service import AuthService
from restlink.core.services.config_service import RemoteConfigService
from restlink.core.services.leaderboard_service import LeaderboardService
from restlink.core.services.storage_service import StorageService
from restlink.domain.models.credentials import CredentialBundle
from restlink.domain.models.result import ErrorKind

SESSION = {"user_id": "u-7", "access_token": "acc-7", "refresh_token": "ref-7"}


# --- AuthService ---

@pytest.mark.asyncio
async def test_login_adopts_session(make_client, transport, token_store):
    transport.add("/auth/login", json_response(200, SESSION))
    auth = AuthService(make_client())

    result = await auth.login("alice", "pw")

    assert result.ok
    assert auth.is_logged_in()
    assert auth.current_user_id == "u-7"
    assert token_store.load() == CredentialBundle("u-7", "acc-7", "ref-7")
    [call] = transport.calls
    assert call.method == "POST"
    assert call.body == {"username": "alice", "password": "pw"}
    assert call.authorization is None


@pytest.mark.asyncio
async def test_login_rejected(make_client, transport):
    transport.add("/auth/login", json_response(401, {"error": {"message": "bad credentials"}}))
    auth = AuthService(make_client())

    result = await auth.login("alice", "wrong")

    assert result.kind is ErrorKind.UNAUTHORIZED
    assert result.error.message == "bad credentials"
    assert not auth.is_logged_in()
    assert len(transport.calls_to("/auth/refresh")) == 0


@pytest.mark.asyncio
async def test_login_without_tokens_is_invalid_response(make_client, transport):
    transport.add("/auth/login", json_response(200, {"user_id": "u-7"}))
    auth = AuthService(make_client())

    result = await auth.login("alice", "pw")

    assert result.kind is ErrorKind.INVALID_RESPONSE
    assert result.status == 200
    assert not auth.is_logged_in()


@pytest.mark.parametrize("username, password", [("", "pw"), ("alice", ""), (None, "pw"), ("  ", "pw")])
@pytest.mark.asyncio
async def test_login_validates_arguments(make_client, transport, username, password):
    result = await AuthService(make_client()).login(username, password)
    assert result.kind is ErrorKind.VALIDATION_ERROR
    assert transport.calls == []


@pytest.mark.asyncio
async def test_register_signs_in_when_tokens_returned(make_client, transport):
    transport.add("/auth/register", json_response(201, SESSION))
    auth = AuthService(make_client())

    result = await auth.register("bob", "pw", display_name="Bob")

    assert result.ok
    assert auth.current_user_id == "u-7"
    assert transport.calls[0].body == {"username": "bob", "password": "pw", "display_name": "Bob"}


@pytest.mark.asyncio
async def test_register_without_tokens_leaves_signed_out(make_client, transport):
    transport.add("/auth/register", json_response(201, {"user_id": "u-8"}))
    auth = AuthService(make_client())

    result = await auth.register("bob", "pw")

    assert result.ok
    assert not auth.is_logged_in()


@pytest.mark.asyncio
async def test_register_conflict(make_client, transport):
    transport.add("/auth/register", json_response(409, {"message": "username taken"}))
    result = await AuthService(make_client()).register("bob", "pw")
    assert result.kind is ErrorKind.CONFLICT
    assert result.error.message == "username taken"


@pytest.mark.asyncio
async def test_logout_revokes_and_clears(make_client, transport, token_store, signed_in):
    auth = AuthService(make_client(credentials=signed_in))

    result = await auth.logout()

    assert result.ok
    assert result.data == {"revoked": True}
    [call] = transport.calls_to("/auth/logout")
    assert call.body == {"refresh_token": "refresh-1"}
    assert call.authorization == "Bearer old-access"
    assert not auth.is_logged_in()
    assert token_store.clear_count == 1


@pytest.mark.asyncio
async def test_logout_clears_locally_when_server_fails(make_client, transport, signed_in):
    transport.add("/auth/logout", json_response(401))
    auth = AuthService(make_client(credentials=signed_in))

    result = await auth.logout()

    assert result.ok
    assert result.data == {"revoked": False}
    assert auth.current_user_id is None
    assert transport.calls_to("/auth/refresh") == []


@pytest.mark.asyncio
async def test_logout_when_signed_out_skips_network(make_client, transport):
    result = await AuthService(make_client()).logout()
    assert result.data == {"revoked": False}
    assert transport.calls == []


# --- StorageService ---

@pytest.mark.asyncio
async def test_storage_operations_map_to_endpoints(make_client, transport, signed_in):
    transport.add("/storage/slot-1", json_response(200, {"value": {"hp": 3}}))
    transport.add("/storage", json_response(200, {"keys": ["slot-1"]}))
    storage = StorageService(make_client(credentials=signed_in))

    assert (await storage.get("slot-1")).data == {"value": {"hp": 3}}
    await storage.set("slot-1", {"hp": 4})
    await storage.delete("slot-1")
    listed = await storage.list_keys()

    assert [(c.method, c.path) for c in transport.calls] == [
        ("GET", "/storage/slot-1"),
        ("PUT", "/storage/slot-1"),
        ("DELETE", "/storage/slot-1"),
        ("GET", "/storage"),
    ]
    assert transport.calls[1].body == {"value": {"hp": 4}}
    assert listed.data == {"keys": ["slot-1"]}


@pytest.mark.asyncio
async def test_storage_missing_key(make_client, transport):
    transport.add("/storage/ghost", json_response(404, {"error": {"message": "no such key"}}))
    result = await StorageService(make_client()).get("ghost")
    assert result.kind is ErrorKind.NOT_FOUND
    assert result.status == 404


@pytest.mark.asyncio
async def test_storage_rejects_blank_key(make_client, transport):
    result = await StorageService(make_client()).set("", 1)
    assert result.kind is ErrorKind.VALIDATION_ERROR
    assert transport.calls == []


# --- LeaderboardService ---

@pytest.mark.asyncio
async def test_submit_score(make_client, transport):
    boards = LeaderboardService(make_client())

    await boards.submit_score("weekly", 1200, metadata={"level": 3})
    await boards.submit_score("weekly", 99.5)

    assert [c.path for c in transport.calls] == ["/leaderboards/weekly/scores"] * 2
    assert transport.calls[0].body == {"score": 1200, "metadata": {"level": 3}}
    assert transport.calls[1].body == {"score": 99.5}


@pytest.mark.parametrize("score", ["100", None, True])
@pytest.mark.asyncio
async def test_submit_score_validates(make_client, transport, score):
    result = await LeaderboardService(make_client()).submit_score("weekly", score)
    assert result.kind is ErrorKind.VALIDATION_ERROR
    assert transport.calls == []


@pytest.mark.asyncio
async def test_top_and_around_user(make_client, transport, signed_in):
    boards = LeaderboardService(make_client(credentials=signed_in))

    await boards.top("weekly", limit=3)
    await boards.around_user("weekly", radius=2)
    await boards.around_user("weekly", user_id="u-5")

    assert [c.url.split("api.example.test")[1] for c in transport.calls] == [
        "/leaderboards/weekly/top?limit=3",
        "/leaderboards/weekly/around/u-1?radius=2",
        "/leaderboards/weekly/around/u-5?radius=5",
    ]


@pytest.mark.asyncio
async def test_around_user_requires_a_user(make_client, transport):
    result = await LeaderboardService(make_client()).around_user("weekly")
    assert result.kind is ErrorKind.VALIDATION_ERROR
    assert transport.calls == []


@pytest.mark.asyncio
async def test_top_rejects_non_positive_limit(make_client):
    result = await LeaderboardService(make_client()).top("weekly", limit=0)
    assert result.kind is ErrorKind.VALIDATION_ERROR


# --- RemoteConfigService ---

@pytest.mark.asyncio
async def test_remote_config_fetch_and_lookup(make_client, transport, signed_in):
    transport.add("/config", json_response(200, {"motd": "hello", "max_party": 4}))
    remote = RemoteConfigService(make_client(credentials=signed_in))

    result = await remote.fetch()

    assert result.ok
    assert remote.loaded
    assert remote.get("motd") == "hello"
    assert remote.get("missing", "fallback") == "fallback"
    assert remote.as_dict() == {"motd": "hello", "max_party": 4}
    assert transport.calls[0].authorization is None


@pytest.mark.asyncio
async def test_remote_config_keeps_previous_values_on_failure(make_client, transport):
    transport.add("/config", json_response(200, {"motd": "hello"}), json_response(404))
    remote = RemoteConfigService(make_client())

    await remote.fetch()
    failed = await remote.fetch()

    assert failed.kind is ErrorKind.NOT_FOUND
    assert remote.get("motd") == "hello"
