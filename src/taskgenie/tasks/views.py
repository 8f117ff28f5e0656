# src/taskgenie/tasks/views.py

"""Derived read-only views over a task collection (stats, ordering, search)."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .task_models import Priority, Task, TaskStatus, is_terminal


@dataclass(frozen=True, slots=True)
class TaskStats:
    total: int
    pending: int
    completed: int


def task_stats(tasks: Sequence[Task]) -> TaskStats:
    completed = sum(1 for t in tasks if is_terminal(t.status))
    return TaskStats(total=len(tasks), pending=len(tasks) - completed, completed=completed)


def next_serial(tasks: Iterable[Task]) -> int:
    return max((t.serial_number for t in tasks), default=0) + 1


def default_order(tasks: Iterable[Task]) -> list[Task]:
    """Open tasks first, completed last; serial number ascending within each group."""
    return sorted(tasks, key=lambda t: (is_terminal(t.status), t.serial_number))


def filter_tasks(
    tasks: Iterable[Task],
    query: str = "",
    *,
    status: TaskStatus | None = None,
    priority: Priority | None = None,
) -> list[Task]:
    q = query.strip().lower()
    out = []
    for t in tasks:
        if q and not (
            q in t.title.lower() or q in t.description.lower() or q in str(t.serial_number)
        ):
            continue
        if status is not None and t.status != status:
            continue
        if priority is not None and t.priority != priority:
            continue
        out.append(t)
    out.sort(key=lambda t: t.serial_number)
    return out


def find_task(tasks: Sequence[Task], ref: str) -> Task | None:
    """Look a task up by id, or by serial number when ref is numeric."""
    ref = ref.strip()
    by_serial = int(ref) if ref.isdigit() else None
    for t in tasks:
        if t.id == ref:
            return t
    if by_serial is not None:
        for t in tasks:
            if t.serial_number == by_serial:
                return t
    return None
