# src/taskgenie/tasks/remote.py

"""
httpx clients for the remote store.

- PostgrestTable: keyed-record table (PostgREST dialect, as served by Supabase)
- SupabaseAuth:   password auth (GoTrue dialect) + session-change notifications

Only the operations the sync core needs are implemented. Row-level access scoping
is enforced server-side; the table sends the signed-in user's access token when
one is available and falls back to the anon key otherwise.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from ..core.ports import Row, SessionCallback, Unsubscribe
from ..errors import AuthError, PersistenceError
from .task_models import User

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], str | None]


def _error_message(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip() or f"HTTP {resp.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error_description", "msg", "error"):
            val = body.get(key)
            if isinstance(val, str) and val.strip():
                return val.strip()
    return f"HTTP {resp.status_code}"


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


class _HttpBase:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not base_url.strip() or not api_key.strip():
            raise ValueError("Remote store URL and key are required")
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class PostgrestTable(_HttpBase):
    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "tasks",
        *,
        owner_column: str = "user_id",
        token_provider: TokenProvider | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, api_key, timeout=timeout, transport=transport)
        self._path = f"/rest/v1/{table}"
        self._owner_column = owner_column
        self._token_provider = token_provider

    def _headers(self, prefer: str | None = None) -> dict[str, str]:
        token = (self._token_provider() if self._token_provider else None) or self._api_key
        headers = {
            "apikey": self._api_key,
            "Authorization": f"Bearer {token}",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _request(
        self,
        method: str,
        *,
        params: dict[str, str],
        json: Any = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        try:
            resp = await self._get_client().request(
                method,
                self._path,
                params=params,
                json=json,
                headers=self._headers(prefer),
            )
        except httpx.HTTPError as e:
            raise PersistenceError(f"Remote {method} failed", cause=e) from e
        if resp.status_code >= 400:
            raise PersistenceError(f"Remote {method} failed", cause=_error_message(resp))
        return resp

    async def select(self, owner_id: str) -> list[Row]:
        resp = await self._request(
            "GET",
            params={"select": "*", self._owner_column: f"eq.{owner_id}"},
        )
        try:
            data = resp.json()
        except ValueError as e:
            raise PersistenceError("Remote select returned invalid JSON", cause=e) from e
        if not isinstance(data, list):
            raise PersistenceError("Remote select returned an unexpected payload")
        return [r for r in data if isinstance(r, dict)]

    async def upsert(self, rows: Sequence[Row], *, conflict_key: str = "id") -> None:
        if not rows:
            return
        await self._request(
            "POST",
            params={"on_conflict": conflict_key},
            json=list(rows),
            prefer="resolution=merge-duplicates,return=minimal",
        )

    async def delete(self, row_id: str) -> None:
        await self._request("DELETE", params={"id": f"eq.{row_id}"}, prefer="return=minimal")

    async def delete_many(self, row_ids: Sequence[str]) -> None:
        if not row_ids:
            return
        values = ",".join(_quote(str(i)) for i in row_ids)
        await self._request("DELETE", params={"id": f"in.({values})"}, prefer="return=minimal")

    async def delete_for_owner(self, owner_id: str) -> None:
        await self._request(
            "DELETE",
            params={self._owner_column: f"eq.{owner_id}"},
            prefer="return=minimal",
        )


def _user_from_payload(payload: dict[str, Any], fallback_email: str = "") -> User:
    meta = payload.get("user_metadata") or {}
    email = str(payload.get("email") or fallback_email)
    username = meta.get("username") if isinstance(meta, dict) else None
    return User(
        id=str(payload["id"]),
        email=email,
        username=str(username or email.split("@")[0] or "User"),
        avatar=(meta.get("avatar") if isinstance(meta, dict) else None),
    )


class SupabaseAuth(_HttpBase):
    """
    Minimal auth client.

    Keeps the current access token in memory and notifies subscribers whenever the
    signed-in user changes (sign in, sign out, profile update).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(base_url, api_key, timeout=timeout, transport=transport)
        self._access_token: str | None = None
        self._user: User | None = None
        self._listeners: list[SessionCallback] = []

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def current_user(self) -> User | None:
        return self._user

    def on_session_change(self, callback: SessionCallback) -> Unsubscribe:
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _unsubscribe

    def _set_session(self, token: str | None, user: User | None) -> None:
        self._access_token = token
        self._user = user
        for cb in list(self._listeners):
            try:
                cb(user)
            except Exception:
                logger.exception("Session-change listener failed")

    async def _post(self, path: str, *, json: Any, params: dict[str, str] | None = None) -> dict[str, Any]:
        headers = {"apikey": self._api_key, "Authorization": f"Bearer {self._access_token or self._api_key}"}
        try:
            resp = await self._get_client().post(path, json=json, params=params, headers=headers)
        except httpx.HTTPError as e:
            raise AuthError(f"Auth request failed: {e}") from e
        if resp.status_code >= 400:
            raise AuthError(_error_message(resp))
        try:
            body = resp.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    async def sign_up(self, email: str, password: str, username: str) -> tuple[User | None, bool]:
        """
        Register a user. Returns (user, has_session).

        When the project requires e-mail confirmation the backend returns the user
        without a session; the caller must not treat that as a login.
        """
        body = await self._post(
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"username": username}},
        )
        token = body.get("access_token")
        payload = body.get("user") if isinstance(body.get("user"), dict) else body
        if not isinstance(payload, dict) or "id" not in payload:
            return None, False
        user = _user_from_payload(payload, email)
        if token:
            self._set_session(str(token), user)
            return user, True
        return user, False

    async def sign_in(self, email: str, password: str) -> User:
        body = await self._post(
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        token = body.get("access_token")
        payload = body.get("user")
        if not token or not isinstance(payload, dict):
            raise AuthError("Login failed. Please check your email verification.")
        user = _user_from_payload(payload, email)
        self._set_session(str(token), user)
        return user

    async def update_user(self, attributes: dict[str, Any]) -> User:
        if self._access_token is None:
            raise AuthError("Not signed in.")
        headers = {"apikey": self._api_key, "Authorization": f"Bearer {self._access_token}"}
        try:
            resp = await self._get_client().put("/auth/v1/user", json=attributes, headers=headers)
        except httpx.HTTPError as e:
            raise AuthError(f"Auth request failed: {e}") from e
        if resp.status_code >= 400:
            raise AuthError(_error_message(resp))
        user = _user_from_payload(resp.json())
        self._set_session(self._access_token, user)
        return user

    async def sign_out(self) -> None:
        if self._access_token is not None:
            try:
                await self._post("/auth/v1/logout", json={})
            except AuthError:
                logger.warning("Remote sign-out failed; clearing local session anyway")
        self._set_session(None, None)
