# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskgenie.accounts.service import AccountService
from taskgenie.ai.offline import OfflineTaskEnhancer
from taskgenie.core.state import AppState
from taskgenie.tasks.adapters import LocalTaskAdapter, RemoteTaskAdapter
from taskgenie.tasks.kv_store import SqliteKeyValueStore
from taskgenie.tasks.spreadsheet import SpreadsheetCodec
from taskgenie.tasks.sync import SyncCoordinator
from taskgenie.tasks.task_models import User

from .fakes import FakeRemoteTable


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the AI client.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskgenie-test",
        data_dir=tmp_path,
        local_db_path=tmp_path / "local_store.sqlite3",
        cloud_enabled=False,
        ai_api_key=None,
        ai_base_url="",
        ai_model="test-model",
        ai_timeout_seconds=5.0,
        ai_max_attempts=3,
        ai_backoff_seconds=1.0,
    )


@pytest.fixture()
def user() -> User:
    return User(id="user-1", email="ann@example.com", username="ann")


@pytest.fixture()
def kv_store(settings: SimpleNamespace) -> SqliteKeyValueStore:
    # Real SQLite: the local store's behavior is part of what we test.
    return SqliteKeyValueStore(settings.local_db_path)


@pytest.fixture()
def remote_table() -> FakeRemoteTable:
    return FakeRemoteTable()


@pytest.fixture()
def remote_coordinator(remote_table: FakeRemoteTable) -> SyncCoordinator:
    return SyncCoordinator(RemoteTaskAdapter(remote_table))


@pytest.fixture()
def local_coordinator(kv_store: SqliteKeyValueStore) -> SyncCoordinator:
    return SyncCoordinator(LocalTaskAdapter(kv_store))


@pytest.fixture()
def state(settings: SimpleNamespace, kv_store: SqliteKeyValueStore, local_coordinator: SyncCoordinator) -> AppState:
    """AppState in local mode wired with deterministic fakes."""
    return AppState(
        settings=settings,
        coordinator=local_coordinator,
        accounts=AccountService(kv_store, local_coordinator),
        enhancer=OfflineTaskEnhancer(),
        codec=SpreadsheetCodec(),
    )
