# src/taskgenie/tasks/adapters.py

"""
Persistence adapters.

Two interchangeable variants of the same contract (core.ports.TaskAdapter):
- RemoteTaskAdapter: per-row upsert/delete against a remote table scoped by owner
- LocalTaskAdapter:  whole-collection JSON blob per user in a key-value store

The variant is chosen once per process by create_task_adapter(settings, ...).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence

from ..core.ports import KeyValueStore, RemoteTable
from ..errors import PersistenceError
from .normalize import rows_to_tasks, to_storage
from .task_models import Task

logger = logging.getLogger(__name__)

LOCAL_TASKS_KEY_PREFIX = "taskgenie-tasks-"


def local_tasks_key(user_id: str) -> str:
    return f"{LOCAL_TASKS_KEY_PREFIX}{user_id}"


class RemoteTaskAdapter:
    incremental = True

    def __init__(self, table: RemoteTable) -> None:
        self._table = table

    async def fetch_all(self, user_id: str) -> list[Task]:
        try:
            rows = await self._table.select(user_id)
        except PersistenceError:
            logger.exception("Remote fetch failed user=%s", user_id)
            raise
        tasks = rows_to_tasks(rows, source="remote")
        logger.info("Fetched %d remote tasks user=%s", len(tasks), user_id)
        return tasks

    async def upsert_one(self, user_id: str, task: Task) -> None:
        await self._table.upsert([to_storage(task, owner_id=user_id)], conflict_key="id")
        logger.debug("Remote upsert task=%s", task.id)

    async def upsert_many(self, user_id: str, tasks: Sequence[Task]) -> None:
        """Single multi-row upsert: the backend applies it as one statement."""
        rows = [to_storage(t, owner_id=user_id) for t in tasks]
        await self._table.upsert(rows, conflict_key="id")
        logger.debug("Remote upsert %d tasks user=%s", len(rows), user_id)

    async def replace_all(self, user_id: str, tasks: Sequence[Task]) -> None:
        # Remote mode never overwrites the full collection.
        return None

    async def delete_one(self, task_id: str) -> None:
        await self._table.delete(task_id)
        logger.debug("Remote delete task=%s", task_id)

    async def delete_many(self, task_ids: Sequence[str]) -> None:
        await self._table.delete_many(list(task_ids))
        logger.debug("Remote delete %d tasks", len(task_ids))

    async def delete_all_for_user(self, user_id: str) -> None:
        await self._table.delete_for_owner(user_id)
        logger.info("Remote delete all tasks user=%s", user_id)


class LocalTaskAdapter:
    """
    Local store has no partial-write primitive: upsert/delete calls are no-ops and
    the coordinator follows every mutation with replace_all(snapshot).
    """

    incremental = False

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def fetch_all(self, user_id: str) -> list[Task]:
        raw = self._store.get(local_tasks_key(user_id))
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Local task blob is not valid JSON user=%s; treating as empty", user_id)
            return []
        if not isinstance(data, list):
            logger.warning("Local task blob has unexpected shape user=%s; treating as empty", user_id)
            return []
        return rows_to_tasks(data, source="local")

    async def upsert_one(self, user_id: str, task: Task) -> None:
        return None

    async def upsert_many(self, user_id: str, tasks: Sequence[Task]) -> None:
        return None

    async def replace_all(self, user_id: str, tasks: Sequence[Task]) -> None:
        blob = json.dumps([to_storage(t) for t in tasks], ensure_ascii=False)
        self._store.set(local_tasks_key(user_id), blob)
        logger.debug("Local snapshot saved user=%s tasks=%d", user_id, len(tasks))

    async def delete_one(self, task_id: str) -> None:
        return None

    async def delete_many(self, task_ids: Sequence[str]) -> None:
        return None

    async def delete_all_for_user(self, user_id: str) -> None:
        self._store.remove(local_tasks_key(user_id))
        logger.info("Local tasks removed user=%s", user_id)


def create_task_adapter(
    *,
    cloud_enabled: bool,
    table: RemoteTable | None = None,
    store: KeyValueStore | None = None,
) -> RemoteTaskAdapter | LocalTaskAdapter:
    """Pick the persistence variant once, from injected configuration."""
    if cloud_enabled:
        if table is None:
            raise ValueError("cloud mode requires a remote table")
        logger.info("Persistence mode: remote")
        return RemoteTaskAdapter(table)
    if store is None:
        raise ValueError("local mode requires a key-value store")
    logger.info("Persistence mode: local")
    return LocalTaskAdapter(store)
