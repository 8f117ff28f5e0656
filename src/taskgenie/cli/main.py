# src/taskgenie/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, restores the remembered session and
runs the console REPL until /exit (or EOF).
"""

from __future__ import annotations

import asyncio
import logging

from ..cli.bootstrap import create_initial_state, shutdown_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..errors import PersistenceError
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _run(state) -> None:
    try:
        try:
            user = await state.accounts.resume()
        except PersistenceError:
            logger.exception("Failed to load tasks for the remembered session.")
            user = None
        if user is not None:
            print(f"Welcome back, {user.username}. {len(state.coordinator.tasks)} tasks loaded.")
        elif state.accounts.remote:
            print("Remote storage is configured. Use /login or /register.")
        else:
            print("Local storage mode. Use /register or /login to get started.")

        await run_console_loop(state)
    finally:
        await shutdown_state(state)


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(_run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
