# src/taskgenie/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The sync core depends on Protocols instead of concrete backends.
This keeps the remote store, the local store, the AI provider and the spreadsheet
codec swappable and makes testing easier.
"""

from collections.abc import Callable, Sequence
from typing import Any, Protocol

from ..ai.enhancement import Enhancement
from ..tasks.task_models import Task, User

Row = dict[str, Any]
SessionCallback = Callable[[User | None], None]
Unsubscribe = Callable[[], None]


class RemoteTable(Protocol):
    """Keyed-record table with row-level ownership (e.g. a PostgREST table)."""

    async def select(self, owner_id: str) -> list[Row]: ...
    async def upsert(self, rows: Sequence[Row], *, conflict_key: str = "id") -> None: ...
    async def delete(self, row_id: str) -> None: ...
    async def delete_many(self, row_ids: Sequence[str]) -> None: ...
    async def delete_for_owner(self, owner_id: str) -> None: ...


class AuthBackend(Protocol):
    """Remote auth subsystem: password sign-in/up plus session-change notifications."""

    async def sign_up(self, email: str, password: str, username: str) -> tuple[User | None, bool]: ...
    async def sign_in(self, email: str, password: str) -> User: ...
    async def update_user(self, attributes: dict[str, Any]) -> User: ...
    async def sign_out(self) -> None: ...
    def on_session_change(self, callback: SessionCallback) -> Unsubscribe: ...


class KeyValueStore(Protocol):
    """String key-value store used for local mode (one JSON blob per key)."""

    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...


class TaskAdapter(Protocol):
    """
    Persistence contract shared by the remote and local variants.

    `incremental` tells the coordinator which write path is real:
    - True  (remote): upsert_one / delete_* hit the backend, replace_all is a no-op
    - False (local):  replace_all persists the snapshot, upsert_one / delete_* are no-ops
    """

    incremental: bool

    async def fetch_all(self, user_id: str) -> list[Task]: ...
    async def upsert_one(self, user_id: str, task: Task) -> None: ...
    async def upsert_many(self, user_id: str, tasks: Sequence[Task]) -> None: ...
    async def replace_all(self, user_id: str, tasks: Sequence[Task]) -> None: ...
    async def delete_one(self, task_id: str) -> None: ...
    async def delete_many(self, task_ids: Sequence[str]) -> None: ...
    async def delete_all_for_user(self, user_id: str) -> None: ...


class TaskEnhancer(Protocol):
    """AI pre-fill for a task draft: title -> description/priority/subtasks/tags."""

    async def enhance(self, title: str) -> Enhancement: ...


class SpreadsheetCodec(Protocol):
    def decode(self, data: bytes, *, filename: str = "") -> list[Row]: ...
    def encode(self, rows: Sequence[Row], *, fmt: str = "csv") -> bytes: ...
