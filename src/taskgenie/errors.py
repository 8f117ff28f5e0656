# src/taskgenie/errors.py

"""
Error taxonomy shared by the sync core and its collaborators.

The core only classifies failures; formatting user-facing text is left to the caller.
"""

from __future__ import annotations

from typing import Literal

AIErrorKind = Literal["configuration", "transient"]


class TaskGenieError(Exception):
    """Base class for every error raised by taskgenie."""


class MalformedRecordError(TaskGenieError, ValueError):
    """A persisted or imported row lacks a required field (id, title)."""

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or f"Malformed task record: missing required field '{field}'")


class PersistenceError(TaskGenieError):
    """The active persistence adapter failed to read or write."""

    def __init__(self, message: str, *, cause: BaseException | str | None = None) -> None:
        self.cause = str(cause) if cause is not None else ""
        text = f"{message}: {self.cause}" if self.cause else message
        super().__init__(text)


class ValidationError(TaskGenieError, ValueError):
    """A mutation request violates a task invariant before reaching persistence."""


class TaskNotFoundError(ValidationError):
    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Task not found: {task_id}")


class AIServiceError(TaskGenieError):
    """
    Failure reported by the AI enhancement collaborator.

    kind="configuration" -> missing/invalid key or permissions; never retried.
    kind="transient"     -> busy/unavailable/garbled response; retried by the client.
    """

    def __init__(self, message: str, *, kind: AIErrorKind = "transient") -> None:
        self.kind: AIErrorKind = kind
        super().__init__(message)

    @property
    def retryable(self) -> bool:
        return self.kind == "transient"


class AuthError(TaskGenieError):
    """Account operation failed (bad credentials, duplicate user, unconfirmed e-mail)."""
