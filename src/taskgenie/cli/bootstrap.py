# src/taskgenie/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- picks the persistence mode once (remote when the remote store is configured),
- wires concrete implementations into AppState (store/adapter/coordinator/accounts/AI).
"""

from __future__ import annotations

import logging

from ..accounts.service import AccountService
from ..ai.client import OpenAITaskEnhancer
from ..ai.offline import OfflineTaskEnhancer
from ..config import get_settings
from ..core.ports import AuthBackend, RemoteTable, TaskEnhancer
from ..core.state import AppState
from ..errors import AIServiceError
from ..tasks.adapters import create_task_adapter
from ..tasks.kv_store import SqliteKeyValueStore
from ..tasks.remote import PostgrestTable, SupabaseAuth
from ..tasks.spreadsheet import SpreadsheetCodec
from ..tasks.sync import SyncCoordinator

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.local_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store = SqliteKeyValueStore(settings.local_db_path)
    closers = []

    auth: AuthBackend | None = None
    table: RemoteTable | None = None
    if settings.cloud_enabled:
        supabase_auth = SupabaseAuth(
            settings.supabase_url,
            settings.supabase_anon_key,
            timeout=settings.remote_timeout_seconds,
        )
        postgrest = PostgrestTable(
            settings.supabase_url,
            settings.supabase_anon_key,
            settings.remote_table,
            token_provider=lambda: supabase_auth.access_token,
            timeout=settings.remote_timeout_seconds,
        )
        closers.extend([postgrest.aclose, supabase_auth.aclose])
        auth, table = supabase_auth, postgrest

    adapter = create_task_adapter(cloud_enabled=settings.cloud_enabled, table=table, store=store)
    coordinator = SyncCoordinator(adapter)

    enhancer: TaskEnhancer
    ai_enabled = False
    try:
        enhancer = OpenAITaskEnhancer(settings)
        ai_enabled = True
    except AIServiceError:
        # Fallback for demos / local runs without an AI key.
        logger.info("AI key not configured; using offline enhancer")
        enhancer = OfflineTaskEnhancer()

    return AppState(
        settings=settings,
        coordinator=coordinator,
        accounts=AccountService(store, coordinator, auth=auth),
        enhancer=enhancer,
        codec=SpreadsheetCodec(),
        ai_enabled=ai_enabled,
        closers=closers,
    )


async def shutdown_state(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    for close in state.closers:
        try:
            await close()
        except Exception:
            logger.debug("Closer failed.", exc_info=True)
