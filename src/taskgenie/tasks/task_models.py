# src/taskgenie/tasks/task_models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum


class Priority(StrEnum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"

    @classmethod
    def parse(cls, raw: object, default: Priority | None = None) -> Priority:
        """Exact value first, then a trimmed case-insensitive match; else default (Medium)."""
        fallback = cls.MEDIUM if default is None else default
        if not isinstance(raw, str) or not raw.strip():
            return fallback
        try:
            return cls(raw)
        except ValueError:
            pass
        wanted = raw.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return fallback


class TaskStatus(StrEnum):
    PENDING = "Pending"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"

    @classmethod
    def parse(cls, raw: object, default: TaskStatus | None = None) -> TaskStatus:
        fallback = cls.PENDING if default is None else default
        if not isinstance(raw, str) or not raw.strip():
            return fallback
        try:
            return cls(raw)
        except ValueError:
            pass
        wanted = raw.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return fallback


_PRIORITY_WEIGHT = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.URGENT: 4,
}


def is_terminal(status: TaskStatus) -> bool:
    return status == TaskStatus.COMPLETED


def weight(priority: Priority) -> int:
    """Ordering rank used by renumbering: Low=1 ... Urgent=4."""
    return _PRIORITY_WEIGHT[priority]


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class SubTask:
    id: str
    title: str
    is_completed: bool = False

    @classmethod
    def create(cls, title: str) -> SubTask:
        return cls(id=new_id(), title=title, is_completed=False)


@dataclass(slots=True)
class Task:
    """
    Canonical in-memory task.

    Notes:
    - id and created_at never change after creation.
    - serial_number is unique within one user's collection but only dense (1..N)
      right after a renumber.
    - subtask completion is independent of the task status.
    """

    id: str
    serial_number: int
    title: str
    priority: Priority
    status: TaskStatus
    due_date: datetime
    created_at: datetime

    description: str = ""
    progress_notes: str = ""
    subtasks: list[SubTask] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)


@dataclass(slots=True)
class TaskDraft:
    """User-supplied task fields before an id and created_at are assigned."""

    title: str
    serial_number: int | None = None
    description: str = ""
    priority: Priority = Priority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: datetime | None = None
    progress_notes: str = ""
    subtasks: list[SubTask] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    images: list[str] = field(default_factory=list)


# Fields that update() may change; id and created_at are immutable.
EDITABLE_FIELDS = frozenset(
    {
        "serial_number",
        "title",
        "description",
        "priority",
        "status",
        "due_date",
        "progress_notes",
        "subtasks",
        "tags",
        "images",
    }
)


@dataclass(slots=True)
class User:
    id: str
    email: str
    username: str
    avatar: str | None = None
