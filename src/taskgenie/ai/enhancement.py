# src/taskgenie/ai/enhancement.py

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any

from ..errors import AIServiceError
from ..tasks.task_models import Priority, SubTask, TaskDraft

MAX_SUBTASKS = 5
MAX_TAGS = 3


@dataclass(frozen=True, slots=True)
class Enhancement:
    description: str
    priority: Priority
    subtasks: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)


FALLBACK_ENHANCEMENT = Enhancement(
    description="Could not generate description. Please try again.",
    priority=Priority.MEDIUM,
    subtasks=["Review task details"],
    tags=["Task"],
)


def _clean_list(value: Any, limit: int) -> list[str]:
    if not isinstance(value, list):
        return []
    out = [str(v).strip() for v in value if v is not None and str(v).strip()]
    return out[:limit]


def parse_enhancement(text: str | None) -> Enhancement:
    """
    Validate a model reply. An empty or non-JSON reply is a transient failure
    (the next attempt usually succeeds).
    """
    if not text or not text.strip():
        raise AIServiceError("No response text from AI", kind="transient")
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise AIServiceError(f"AI returned invalid JSON: {e}", kind="transient") from e
    if not isinstance(data, dict):
        raise AIServiceError("AI returned an unexpected payload", kind="transient")

    description = data.get("description")
    return Enhancement(
        description=str(description).strip() if description is not None else "",
        priority=Priority.parse(data.get("priority")),
        subtasks=_clean_list(data.get("subtasks"), MAX_SUBTASKS),
        tags=_clean_list(data.get("tags"), MAX_TAGS),
    )


def apply_enhancement(draft: TaskDraft, enhancement: Enhancement) -> TaskDraft:
    """Pre-fill a draft: replace description/priority/subtasks, append new tags."""
    tags = list(draft.tags) + [t for t in enhancement.tags if t not in draft.tags]
    return replace(
        draft,
        description=enhancement.description or draft.description,
        priority=enhancement.priority,
        subtasks=[SubTask.create(title) for title in enhancement.subtasks],
        tags=tags,
    )
