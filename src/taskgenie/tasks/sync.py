# src/taskgenie/tasks/sync.py

from __future__ import annotations

"""
Sync coordinator.

Owns the in-memory task collection of the active user and mediates every mutation.
Each operation has the same two phases:
- compute the new collection,
- persist it through the active adapter:
    * remote (incremental) mode -> upsert/delete only the affected rows
    * local mode                -> replace_all(snapshot of the whole collection)

Consistency policy:
- create / update: persist first, then commit to memory. A failed write raises and
  memory is untouched, so a failed cloud write never shows a phantom task.
- delete_one / toggle_status / toggle_subtask: commit to memory first, then persist.
  A failed write is logged and NOT rolled back.
- bulk operations (delete_many, renumber, import): persist first, commit on success.
  Failure raises one PersistenceError and leaves memory as it was.

Concurrency:
- reads (tasks, find) never wait on writes
- writes touching the same task id are serialized with a per-id asyncio.Lock
- local snapshots are serialized so the last write always carries the latest state
- creates and imports that assign serial numbers run one at a time
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable, Mapping, Sequence
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.ports import TaskAdapter
from ..errors import PersistenceError, TaskNotFoundError, ValidationError
from .importer import ImportResult, build_import
from .normalize import ensure_utc
from .renumber import renumber as renumber_tasks
from .task_models import (
    EDITABLE_FIELDS,
    Priority,
    SubTask,
    Task,
    TaskDraft,
    TaskStatus,
    User,
    new_id,
    utc_now,
)
from .views import next_serial

logger = logging.getLogger(__name__)


def _validate_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Task title must not be empty")
    return title.strip()


def _validate_serial(serial: Any) -> int:
    if isinstance(serial, bool) or not isinstance(serial, int) or serial < 1:
        raise ValidationError("Serial number must be a positive integer")
    return serial


def _coerce_patch(patch: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(patch) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    clean: dict[str, Any] = {}
    for key, value in patch.items():
        if key == "title":
            clean[key] = _validate_title(value)
        elif key == "serial_number":
            clean[key] = _validate_serial(value)
        elif key == "priority":
            try:
                clean[key] = Priority(value)
            except ValueError as e:
                raise ValidationError(f"Unknown priority: {value!r}") from e
        elif key == "status":
            try:
                clean[key] = TaskStatus(value)
            except ValueError as e:
                raise ValidationError(f"Unknown status: {value!r}") from e
        elif key == "due_date":
            if not isinstance(value, datetime):
                raise ValidationError("due_date must be a datetime")
            clean[key] = ensure_utc(value)
        elif key in ("description", "progress_notes"):
            clean[key] = "" if value is None else str(value)
        elif not isinstance(value, (list, tuple)):
            raise ValidationError(f"{key} must be a list")
        elif key == "subtasks":
            if not all(isinstance(s, SubTask) for s in value):
                raise ValidationError("subtasks must be SubTask items")
            clean[key] = [replace(s) for s in value]
        else:  # tags / images
            if not all(isinstance(v, str) for v in value):
                raise ValidationError(f"{key} must be a list of strings")
            clean[key] = list(value)
    return clean


class SyncCoordinator:
    def __init__(self, adapter: TaskAdapter) -> None:
        self._adapter = adapter
        self._user: User | None = None
        self._tasks: list[Task] = []
        self._id_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._snapshot_lock = asyncio.Lock()
        self._serial_lock = asyncio.Lock()

    # ---- read side ----

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def incremental(self) -> bool:
        return bool(self._adapter.incremental)

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    def find(self, task_id: str) -> Task | None:
        for t in self._tasks:
            if t.id == task_id:
                return t
        return None

    def _require_user(self) -> User:
        if self._user is None:
            raise ValidationError("No active user session")
        return self._user

    def _require_task(self, task_id: str) -> Task:
        task = self.find(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    @asynccontextmanager
    async def _task_lock(self, task_id: str, *, must_exist: bool = True) -> AsyncIterator[None]:
        """Hold the per-id lock; entries for ids that are gone afterwards are dropped."""
        if must_exist:
            self._require_task(task_id)
        try:
            async with self._id_locks[task_id]:
                yield
        finally:
            if self.find(task_id) is None:
                self._id_locks.pop(task_id, None)

    # ---- session ----

    async def load(self, user: User) -> list[Task]:
        """Fetch the user's collection. Fetch errors propagate; state is unchanged on failure."""
        tasks = await self._adapter.fetch_all(user.id)
        self._user = user
        self._tasks = list(tasks)
        self._id_locks.clear()
        logger.info("Loaded %d tasks for user=%s", len(tasks), user.id)
        return self.tasks

    def clear(self) -> None:
        self._user = None
        self._tasks = []
        self._id_locks.clear()

    # ---- persistence helpers ----

    async def _write_snapshot(self, user: User, tasks: Sequence[Task]) -> None:
        await self._adapter.replace_all(user.id, list(tasks))

    async def _commit_blocking(
        self,
        user: User,
        compute: Callable[[list[Task]], list[Task]],
        remote_write: Callable[[], Awaitable[None]],
    ) -> list[Task]:
        """Persist first, then swap in the new collection (computed from the latest state)."""
        if self.incremental:
            await remote_write()
            self._tasks = compute(self._tasks)
            return self.tasks

        async with self._snapshot_lock:
            candidate = compute(self._tasks)
            await self._write_snapshot(user, candidate)
            self._tasks = candidate
        return self.tasks

    async def _persist_optimistic(
        self,
        user: User,
        what: str,
        remote_write: Callable[[], Awaitable[None]],
    ) -> None:
        """Memory is already updated; persistence failures are logged, not rolled back."""
        try:
            if self.incremental:
                await remote_write()
            else:
                async with self._snapshot_lock:
                    await self._write_snapshot(user, self._tasks)
        except Exception:
            logger.exception("Persisting %s failed; keeping in-memory state", what)

    # ---- single-task operations ----

    async def create(self, draft: TaskDraft) -> list[Task]:
        user = self._require_user()
        title = _validate_title(draft.title)
        if draft.serial_number is not None:
            _validate_serial(draft.serial_number)

        # Auto-assigned serials are computed and committed one create at a time.
        async with self._serial_lock:
            return await self._create_locked(user, title, draft)

    async def _create_locked(self, user: User, title: str, draft: TaskDraft) -> list[Task]:
        serial = next_serial(self._tasks) if draft.serial_number is None else draft.serial_number
        now = utc_now()

        task = Task(
            id=new_id(),
            serial_number=serial,
            title=title,
            description=draft.description or "",
            priority=Priority(draft.priority),
            status=TaskStatus(draft.status),
            due_date=now if draft.due_date is None else ensure_utc(draft.due_date),
            created_at=now,
            subtasks=[replace(s) for s in draft.subtasks],
            tags=list(draft.tags),
            images=list(draft.images),
            progress_notes=draft.progress_notes or "",
        )

        async with self._task_lock(task.id, must_exist=False):
            result = await self._commit_blocking(
                user,
                lambda current: [*current, task],
                lambda: self._adapter.upsert_one(user.id, task),
            )
        logger.info("Created task=%s serial=%s", task.id, task.serial_number)
        return result

    async def update(self, task_id: str, patch: Mapping[str, Any]) -> list[Task]:
        user = self._require_user()
        changes = _coerce_patch(patch)

        async with self._task_lock(task_id):
            updated = replace(self._require_task(task_id), **changes)

            def _apply(current: list[Task]) -> list[Task]:
                return [updated if t.id == task_id else t for t in current]

            result = await self._commit_blocking(
                user,
                _apply,
                lambda: self._adapter.upsert_one(user.id, updated),
            )
        logger.info("Updated task=%s fields=%s", task_id, ",".join(sorted(changes)))
        return result

    async def delete_one(self, task_id: str) -> list[Task]:
        user = self._require_user()
        async with self._task_lock(task_id):
            self._require_task(task_id)
            self._tasks = [t for t in self._tasks if t.id != task_id]
            await self._persist_optimistic(
                user,
                f"delete of task={task_id}",
                lambda: self._adapter.delete_one(task_id),
            )
        logger.info("Deleted task=%s", task_id)
        return self.tasks

    async def toggle_status(self, task_id: str) -> list[Task]:
        user = self._require_user()
        async with self._task_lock(task_id):
            task = self._require_task(task_id)
            new_status = TaskStatus.PENDING if task.status == TaskStatus.COMPLETED else TaskStatus.COMPLETED
            updated = replace(task, status=new_status)
            self._tasks = [updated if t.id == task_id else t for t in self._tasks]
            await self._persist_optimistic(
                user,
                f"status toggle of task={task_id}",
                lambda: self._adapter.upsert_one(user.id, updated),
            )
        logger.info("Task %s -> %s", task_id, new_status.value)
        return self.tasks

    async def toggle_subtask(self, task_id: str, subtask_id: str) -> list[Task]:
        """Flip one subtask; the parent task's status is deliberately left alone."""
        user = self._require_user()
        async with self._task_lock(task_id):
            task = self._require_task(task_id)
            if not any(s.id == subtask_id for s in task.subtasks):
                raise ValidationError(f"Subtask not found: {subtask_id}")
            subtasks = [
                SubTask(id=s.id, title=s.title, is_completed=not s.is_completed) if s.id == subtask_id else s
                for s in task.subtasks
            ]
            updated = replace(task, subtasks=subtasks)
            self._tasks = [updated if t.id == task_id else t for t in self._tasks]
            await self._persist_optimistic(
                user,
                f"subtask toggle of task={task_id}",
                lambda: self._adapter.upsert_one(user.id, updated),
            )
        return self.tasks

    # ---- bulk operations ----

    async def _lock_all(self, stack: AsyncExitStack, task_ids: Iterable[str]) -> None:
        # Sorted acquisition order; single-task ops only ever hold one lock.
        for tid in sorted(set(task_ids)):
            await stack.enter_async_context(self._id_locks[tid])

    async def delete_many(self, task_ids: Iterable[str]) -> list[Task]:
        """Remove exactly the given tasks with one bulk delete call (remote) or one snapshot (local)."""
        user = self._require_user()
        wanted = {t.id for t in self._tasks} & set(task_ids)
        if not wanted:
            return self.tasks

        try:
            async with AsyncExitStack() as stack:
                await self._lock_all(stack, wanted)
                present = [t.id for t in self._tasks if t.id in wanted]
                if not present:
                    return self.tasks
                try:
                    result = await self._commit_blocking(
                        user,
                        lambda current: [t for t in current if t.id not in wanted],
                        lambda: self._adapter.delete_many(present),
                    )
                except PersistenceError:
                    logger.exception("Bulk delete of %d tasks failed", len(present))
                    raise
        finally:
            for tid in wanted:
                if self.find(tid) is None:
                    self._id_locks.pop(tid, None)

        logger.info("Deleted %d tasks", len(present))
        return result

    async def renumber(self) -> list[Task]:
        """Reassign serials 1..N by urgency; all tasks are persisted or none are visible."""
        user = self._require_user()
        async with AsyncExitStack() as stack:
            await self._lock_all(stack, (t.id for t in self._tasks))
            renumbered = renumber_tasks(self._tasks)
            if not renumbered:
                return self.tasks
            by_id = {t.id: t for t in renumbered}

            def _apply(current: list[Task]) -> list[Task]:
                extra = [t for t in current if t.id not in by_id]
                kept = {t.id for t in current}
                return [t for t in renumbered if t.id in kept] + extra

            try:
                result = await self._commit_blocking(
                    user,
                    _apply,
                    lambda: self._adapter.upsert_many(user.id, renumbered),
                )
            except PersistenceError:
                logger.exception("Renumbering %d tasks failed", len(renumbered))
                raise
        logger.info("Renumbered %d tasks", len(renumbered))
        return result

    async def import_rows(self, rows: Iterable[Mapping[str, Any]]) -> ImportResult:
        """Build tasks from spreadsheet rows and append them as one batch."""
        user = self._require_user()
        async with self._serial_lock:
            result = build_import(rows, self._tasks)
            if not result.tasks:
                return result
            new_tasks = list(result.tasks)
            try:
                await self._commit_blocking(
                    user,
                    lambda current: [*current, *new_tasks],
                    lambda: self._adapter.upsert_many(user.id, new_tasks),
                )
            except PersistenceError:
                logger.exception("Import of %d tasks failed", len(new_tasks))
                raise
        return result

    async def purge_user(self, user: User) -> None:
        """Cascade-delete every persisted task of `user` (account deletion)."""
        await self._adapter.delete_all_for_user(user.id)
        if self._user is not None and self._user.id == user.id:
            self.clear()
        logger.info("Purged all tasks for user=%s", user.id)
