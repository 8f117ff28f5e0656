# src/taskgenie/accounts/service.py

"""
User accounts and the active session.

Remote mode delegates credentials to the auth backend. Local mode keeps every
registered user in one JSON blob in the key-value store (passwords as salted
PBKDF2 hashes). In both modes the logged-in user is remembered under
CURRENT_USER_KEY so a restart can restore the session.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import os
from dataclasses import asdict, replace
from typing import Any

from ..core.ports import AuthBackend, KeyValueStore, SessionCallback, Unsubscribe
from ..errors import AuthError, ValidationError
from ..tasks.sync import SyncCoordinator
from ..tasks.task_models import User, new_id

logger = logging.getLogger(__name__)

USERS_KEY = "taskgenie-users"
CURRENT_USER_KEY = "taskgenie-current-user"

_PBKDF2_ITERATIONS = 200_000


def hash_password(password: str, salt: bytes | None = None) -> tuple[str, str]:
    salt = salt if salt is not None else os.urandom(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)
    return salt.hex(), digest.hex()


def verify_password(password: str, salt_hex: str, digest_hex: str) -> bool:
    try:
        salt = bytes.fromhex(salt_hex)
    except ValueError:
        return False
    _, digest = hash_password(password, salt)
    return hmac.compare_digest(digest, digest_hex)


def _user_from_dict(data: Any) -> User | None:
    if not isinstance(data, dict) or not data.get("id") or not data.get("email"):
        return None
    email = str(data["email"])
    return User(
        id=str(data["id"]),
        email=email,
        username=str(data.get("username") or email.split("@")[0]),
        avatar=data.get("avatar") or None,
    )


class AccountService:
    def __init__(
        self,
        store: KeyValueStore,
        coordinator: SyncCoordinator,
        *,
        auth: AuthBackend | None = None,
    ) -> None:
        self._store = store
        self._coordinator = coordinator
        self._auth = auth

    @property
    def remote(self) -> bool:
        return self._auth is not None

    @property
    def current_user(self) -> User | None:
        return self._coordinator.user

    # ---- session blob ----

    def _save_session(self, user: User) -> None:
        self._store.set(CURRENT_USER_KEY, json.dumps(asdict(user), ensure_ascii=False))

    def restore_session(self) -> User | None:
        raw = self._store.get(CURRENT_USER_KEY)
        if not raw:
            return None
        try:
            user = _user_from_dict(json.loads(raw))
        except json.JSONDecodeError:
            user = None
        if user is None:
            logger.warning("Stored session is malformed; removing it")
            self._store.remove(CURRENT_USER_KEY)
        return user

    async def _activate(self, user: User) -> User:
        self._save_session(user)
        await self._coordinator.load(user)
        logger.info("Session started user=%s", user.id)
        return user

    # ---- local user registry ----

    def _load_local_users(self) -> list[dict[str, Any]]:
        raw = self._store.get(USERS_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Local user registry is not valid JSON; treating as empty")
            return []
        return [u for u in data if isinstance(u, dict)] if isinstance(data, list) else []

    def _save_local_users(self, users: list[dict[str, Any]]) -> None:
        self._store.set(USERS_KEY, json.dumps(users, ensure_ascii=False))

    def _find_local(self, users: list[dict[str, Any]], *, email: str | None = None, user_id: str | None = None) -> dict[str, Any] | None:
        for u in users:
            if email is not None and str(u.get("email", "")).lower() == email.lower():
                return u
            if user_id is not None and u.get("id") == user_id:
                return u
        return None

    # ---- public API ----

    async def register(self, email: str, password: str, username: str) -> User:
        email = email.strip()
        username = username.strip() or email.split("@")[0]
        if not email or "@" not in email:
            raise ValidationError("A valid e-mail address is required")
        if not password:
            raise ValidationError("Password must not be empty")

        if self._auth is not None:
            user, has_session = await self._auth.sign_up(email, password, username)
            if user is not None and not has_session:
                raise AuthError("Please check your email to confirm your account before logging in.")
            if user is None:
                raise AuthError("Unknown error")
            return await self._activate(user)

        users = self._load_local_users()
        if self._find_local(users, email=email) is not None:
            raise AuthError("User already exists locally")
        salt, digest = hash_password(password)
        user = User(id=new_id(), email=email, username=username)
        users.append({**asdict(user), "salt": salt, "password_hash": digest})
        self._save_local_users(users)
        logger.info("Registered local user=%s", user.id)
        return await self._activate(user)

    async def login(self, email: str, password: str) -> User:
        if self._auth is not None:
            user = await self._auth.sign_in(email.strip(), password)
            return await self._activate(user)

        record = self._find_local(self._load_local_users(), email=email.strip())
        if record is None or not verify_password(
            password, str(record.get("salt", "")), str(record.get("password_hash", ""))
        ):
            raise AuthError("Invalid email or password (Local)")
        user = _user_from_dict(record)
        if user is None:
            raise AuthError("Stored user record is malformed")
        return await self._activate(user)

    async def resume(self) -> User | None:
        """
        Restore the remembered session (if any) and load its tasks.

        Remote access tokens are kept in memory only, so remote mode always asks
        for a fresh login.
        """
        if self._auth is not None:
            return None
        user = self.restore_session()
        if user is None:
            return None
        await self._coordinator.load(user)
        return user

    async def logout(self) -> None:
        if self._auth is not None:
            await self._auth.sign_out()
        self._store.remove(CURRENT_USER_KEY)
        self._coordinator.clear()
        logger.info("Logged out")

    def subscribe(self, callback: SessionCallback) -> Unsubscribe:
        if self._auth is None:
            return lambda: None
        return self._auth.on_session_change(callback)

    async def update_profile(self, user: User, *, username: str | None = None, avatar: str | None = None) -> User:
        if self._auth is not None:
            data: dict[str, Any] = {}
            if username is not None:
                data["username"] = username
            if avatar is not None:
                data["avatar"] = avatar
            updated = await self._auth.update_user({"data": data})
        else:
            users = self._load_local_users()
            record = self._find_local(users, user_id=user.id)
            if record is None:
                raise AuthError("User not found")
            if username is not None:
                record["username"] = username
            if avatar is not None:
                record["avatar"] = avatar
            self._save_local_users(users)
            updated = replace(
                user,
                username=username if username is not None else user.username,
                avatar=avatar if avatar is not None else user.avatar,
            )
        self._save_session(updated)
        return updated

    async def change_password(self, user: User, old_password: str, new_password: str) -> None:
        if not new_password:
            raise ValidationError("Password must not be empty")
        if self._auth is not None:
            await self._auth.update_user({"password": new_password})
            return
        users = self._load_local_users()
        record = self._find_local(users, user_id=user.id)
        if record is None or not verify_password(
            old_password, str(record.get("salt", "")), str(record.get("password_hash", ""))
        ):
            raise AuthError("Current password is incorrect")
        record["salt"], record["password_hash"] = hash_password(new_password)
        self._save_local_users(users)

    async def delete_account(self, user: User) -> None:
        """Cascade: all of the user's tasks, then the user record and the session."""
        await self._coordinator.purge_user(user)
        if self._auth is None:
            users = [u for u in self._load_local_users() if u.get("id") != user.id]
            self._save_local_users(users)
        else:
            await self._auth.sign_out()
        self._store.remove(CURRENT_USER_KEY)
        logger.info("Deleted account user=%s", user.id)
