# tests/test_bootstrap.py

from __future__ import annotations

from types import SimpleNamespace

import pytest

from taskgenie.ai.client import OpenAITaskEnhancer
from taskgenie.ai.offline import OfflineTaskEnhancer
from taskgenie.cli.bootstrap import create_initial_state, shutdown_state


@pytest.mark.asyncio
async def test_local_state_without_ai_key(settings: SimpleNamespace) -> None:
    state = create_initial_state(settings=settings)

    assert not state.coordinator.incremental
    assert not state.accounts.remote
    assert isinstance(state.enhancer, OfflineTaskEnhancer)
    assert state.ai_enabled is False
    assert settings.local_db_path.exists()

    await shutdown_state(state)


@pytest.mark.asyncio
async def test_cloud_state_with_ai_key(settings: SimpleNamespace) -> None:
    settings.cloud_enabled = True
    settings.supabase_url = "https://example.supabase.co"
    settings.supabase_anon_key = "anon"
    settings.remote_table = "tasks"
    settings.remote_timeout_seconds = 5.0
    settings.ai_api_key = "sk-test"

    state = create_initial_state(settings=settings)

    assert state.coordinator.incremental
    assert state.accounts.remote
    assert isinstance(state.enhancer, OpenAITaskEnhancer)
    assert len(state.closers) == 2

    await shutdown_state(state)
