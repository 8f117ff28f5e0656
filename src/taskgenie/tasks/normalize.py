# src/taskgenie/tasks/normalize.py

"""
Normalization between backend rows and the canonical Task model.

Backend rows are flat snake_case mappings (the remote table's column names).
Everything crossing this boundary is treated as untrusted: optional fields are
defaulted, only id and title are required.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from ..errors import MalformedRecordError
from .task_models import Priority, SubTask, Task, TaskStatus, utc_now

logger = logging.getLogger(__name__)

StorageRow = dict[str, Any]


# ---- scalar coercion helpers ----


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """
    Parse an absolute timestamp.

    Accepts datetime objects, ISO-8601 strings ("Z" suffix allowed; naive values
    are read as UTC) and epoch milliseconds. Returns None when unparseable.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith(("Z", "z")):
            s = s[:-1] + "+00:00"
        try:
            return ensure_utc(datetime.fromisoformat(s))
        except ValueError:
            return None
    return None


def format_timestamp(dt: datetime) -> str:
    return ensure_utc(dt).isoformat()


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _subtasks(value: Any) -> list[SubTask]:
    if not isinstance(value, list):
        return []
    out: list[SubTask] = []
    for item in value:
        if not isinstance(item, Mapping):
            continue
        sid = item.get("id")
        title = item.get("title")
        if not sid or title is None:
            logger.debug("Dropping subtask without id/title: %r", item)
            continue
        done = item.get("isCompleted", item.get("is_completed", False))
        out.append(SubTask(id=str(sid), title=str(title), is_completed=bool(done)))
    return out


def _subtask_rows(subtasks: Iterable[SubTask]) -> list[dict[str, Any]]:
    return [{"id": s.id, "title": s.title, "isCompleted": s.is_completed} for s in subtasks]


# ---- public API ----


def to_canonical(row: Mapping[str, Any]) -> Task:
    """
    Map a backend row to a Task.

    Raises MalformedRecordError when id or title is missing. Missing collections
    default to empty, missing progress notes to "", missing created_at to now and
    missing due_date to created_at.
    """
    task_id = row.get("id")
    if task_id is None or _as_text(task_id).strip() == "":
        raise MalformedRecordError("id")
    title = row.get("title")
    if title is None or _as_text(title).strip() == "":
        raise MalformedRecordError("title")

    created_at = parse_timestamp(row.get("created_at")) or utc_now()
    due_date = parse_timestamp(row.get("due_date")) or created_at

    return Task(
        id=_as_text(task_id),
        serial_number=_as_int(row.get("serial_number")),
        title=_as_text(title),
        description=_as_text(row.get("description")),
        priority=Priority.parse(row.get("priority")),
        status=TaskStatus.parse(row.get("status")),
        due_date=due_date,
        created_at=created_at,
        subtasks=_subtasks(row.get("subtasks")),
        tags=_str_list(row.get("tags")),
        images=_str_list(row.get("images")),
        progress_notes=_as_text(row.get("progress_notes")),
    )


def to_storage(task: Task, *, owner_id: str | None = None) -> StorageRow:
    """Inverse of to_canonical. owner_id adds the user_id column used by the remote table."""
    row: StorageRow = {
        "id": task.id,
        "serial_number": task.serial_number,
        "title": task.title,
        "description": task.description,
        "priority": task.priority.value,
        "status": task.status.value,
        "due_date": format_timestamp(task.due_date),
        "created_at": format_timestamp(task.created_at),
        "subtasks": _subtask_rows(task.subtasks),
        "tags": list(task.tags),
        "images": list(task.images),
        "progress_notes": task.progress_notes,
    }
    if owner_id is not None:
        row["user_id"] = owner_id
    return row


def rows_to_tasks(rows: Iterable[Any], *, source: str) -> list[Task]:
    """Convert many rows, skipping (and logging) records that cannot be normalized."""
    tasks: list[Task] = []
    for row in rows:
        if not isinstance(row, Mapping):
            logger.warning("Skipping non-mapping task record from %s", source)
            continue
        try:
            tasks.append(to_canonical(row))
        except MalformedRecordError as e:
            logger.warning("Skipping malformed task record from %s (%s)", source, e.field)
    return tasks
