# src/taskgenie/core/state.py

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from ..accounts.service import AccountService
from ..tasks.sync import SyncCoordinator
from .ports import SpreadsheetCodec, TaskEnhancer


@dataclass
class AppState:
    # Store Settings on the state for easy access in other modules later.
    settings: Any

    coordinator: SyncCoordinator
    accounts: AccountService
    enhancer: TaskEnhancer
    codec: SpreadsheetCodec

    ai_enabled: bool = False

    # Async shutdown hooks (HTTP clients etc.), run in order by the CLI.
    closers: list[Callable[[], Awaitable[None]]] = field(default_factory=list)
