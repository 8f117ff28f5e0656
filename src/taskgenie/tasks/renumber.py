# src/taskgenie/tasks/renumber.py

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

from .task_models import Task, weight


def renumber(tasks: Sequence[Task]) -> list[Task]:
    """
    Reassign serial numbers 1..N by urgency.

    Order: priority weight descending, then due date ascending. sorted() is stable,
    so tasks equal on both keys keep their original relative order. Returns new Task
    objects; the input is not modified.
    """
    ordered = sorted(tasks, key=lambda t: (-weight(t.priority), t.due_date))
    return [replace(t, serial_number=i) for i, t in enumerate(ordered, start=1)]
