# src/taskgenie/ai/offline.py

from __future__ import annotations

from .enhancement import FALLBACK_ENHANCEMENT, Enhancement


class OfflineTaskEnhancer:
    """
    Offline deterministic enhancer used when no AI key is configured.

    Always returns the safe fallback pre-fill so the draft flow keeps working.
    """

    async def enhance(self, title: str) -> Enhancement:
        return FALLBACK_ENHANCEMENT
