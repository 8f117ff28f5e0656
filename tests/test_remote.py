# tests/test_remote.py

from __future__ import annotations

import json

import httpx
import pytest

from taskgenie.errors import AuthError, PersistenceError
from taskgenie.tasks.remote import PostgrestTable, SupabaseAuth

BASE = "https://example.supabase.co"


class Recorder:
    """MockTransport handler that records requests and replays canned responses."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            return self.responses.pop(0)
        return httpx.Response(204)


def _table(recorder: Recorder, token: str | None = None) -> PostgrestTable:
    return PostgrestTable(
        BASE,
        "anon-key",
        "tasks",
        token_provider=lambda: token,
        transport=httpx.MockTransport(recorder),
    )


@pytest.mark.asyncio
async def test_select_filters_by_owner() -> None:
    rec = Recorder(httpx.Response(200, json=[{"id": "a", "title": "x"}, "junk"]))
    table = _table(rec, token="user-jwt")

    rows = await table.select("u1")

    req = rec.requests[0]
    assert req.method == "GET"
    assert req.url.path == "/rest/v1/tasks"
    assert req.url.params["user_id"] == "eq.u1"
    assert req.headers["apikey"] == "anon-key"
    assert req.headers["authorization"] == "Bearer user-jwt"
    assert rows == [{"id": "a", "title": "x"}]
    await table.aclose()


@pytest.mark.asyncio
async def test_upsert_merges_on_id() -> None:
    rec = Recorder(httpx.Response(201))
    table = _table(rec)

    await table.upsert([{"id": "a"}, {"id": "b"}])
    await table.upsert([])

    (req,) = rec.requests
    assert req.method == "POST"
    assert req.url.params["on_conflict"] == "id"
    assert "resolution=merge-duplicates" in req.headers["prefer"]
    assert req.headers["authorization"] == "Bearer anon-key"
    assert json.loads(req.content) == [{"id": "a"}, {"id": "b"}]


@pytest.mark.asyncio
async def test_delete_many_is_one_in_filter() -> None:
    rec = Recorder()
    table = _table(rec)

    await table.delete_many(["a", "b"])
    await table.delete("c")
    await table.delete_for_owner("u1")

    assert [r.method for r in rec.requests] == ["DELETE", "DELETE", "DELETE"]
    assert rec.requests[0].url.params["id"] == 'in.("a","b")'
    assert rec.requests[1].url.params["id"] == "eq.c"
    assert rec.requests[2].url.params["user_id"] == "eq.u1"


@pytest.mark.asyncio
async def test_http_errors_become_persistence_errors() -> None:
    table = _table(Recorder(httpx.Response(401, json={"message": "JWT expired"})))
    with pytest.raises(PersistenceError) as exc:
        await table.select("u1")
    assert exc.value.cause == "JWT expired"

    def boom(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("offline", request=request)

    offline = PostgrestTable(BASE, "anon-key", transport=httpx.MockTransport(boom))
    with pytest.raises(PersistenceError):
        await offline.upsert([{"id": "a"}])


def test_table_requires_url_and_key() -> None:
    with pytest.raises(ValueError):
        PostgrestTable("", "key")


def _auth(recorder: Recorder) -> SupabaseAuth:
    return SupabaseAuth(BASE, "anon-key", transport=httpx.MockTransport(recorder))


USER_PAYLOAD = {"id": "u1", "email": "ann@example.com", "user_metadata": {"username": "Ann"}}


@pytest.mark.asyncio
async def test_sign_in_stores_token_and_notifies() -> None:
    rec = Recorder(httpx.Response(200, json={"access_token": "jwt", "user": USER_PAYLOAD}))
    auth = _auth(rec)
    seen = []
    unsubscribe = auth.on_session_change(seen.append)

    user = await auth.sign_in("ann@example.com", "pw")

    assert rec.requests[0].url.path == "/auth/v1/token"
    assert rec.requests[0].url.params["grant_type"] == "password"
    assert (user.id, user.username) == ("u1", "Ann")
    assert auth.access_token == "jwt"
    assert seen == [user]

    unsubscribe()
    await auth.sign_out()
    assert auth.access_token is None
    assert seen == [user]


@pytest.mark.asyncio
async def test_sign_up_without_session_needs_confirmation() -> None:
    rec = Recorder(httpx.Response(200, json={"id": "u2", "email": "bob@example.com", "user_metadata": {}}))
    auth = _auth(rec)

    user, has_session = await auth.sign_up("bob@example.com", "pw", "")

    assert has_session is False
    assert user.username == "bob"
    assert auth.access_token is None


@pytest.mark.asyncio
async def test_auth_failure_raises_auth_error() -> None:
    auth = _auth(Recorder(httpx.Response(400, json={"error_description": "Invalid login credentials"})))
    with pytest.raises(AuthError, match="Invalid login credentials"):
        await auth.sign_in("ann@example.com", "wrong")


@pytest.mark.asyncio
async def test_table_uses_auth_token_when_signed_in() -> None:
    auth = _auth(Recorder(httpx.Response(200, json={"access_token": "jwt", "user": USER_PAYLOAD})))
    await auth.sign_in("ann@example.com", "pw")
    rec = Recorder(httpx.Response(200, json=[]))
    table = PostgrestTable(
        BASE, "anon-key", token_provider=lambda: auth.access_token, transport=httpx.MockTransport(rec)
    )

    await table.select("u1")

    assert rec.requests[0].headers["authorization"] == "Bearer jwt"
