# src/taskgenie/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState

logger = logging.getLogger(__name__)

# Commands that destroy or rewrite data ask for a y/N confirmation first.
CONFIRM_COMMANDS: dict[str, str] = {
    "delete": "Delete the selected task(s)? This cannot be undone.",
    "renumber": "Re-assign serial numbers for all tasks?",
    "import": "Import tasks from this file?",
    "delete-account": "Permanently delete your account and all tasks?",
}


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _rewrite_prev_line(line: str) -> None:
    """
    Replace the last terminal line with `line`.
    Best-effort: if not a TTY, just print a new line.
    """
    try:
        if sys.stdout.isatty():
            sys.stdout.write("\033[1A\033[2K\r")
            sys.stdout.write(line + "\n")
            sys.stdout.flush()
        else:
            print(line)
    except OSError:
        print(line)


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


async def _confirm(prompt: str, read: Callable[[str], str]) -> bool:
    answer = await asyncio.to_thread(read, f"{prompt} [y/N]: ")
    return answer.strip().lower() in ("y", "yes")


async def run_console_loop(state: AppState, *, read: Callable[[str], str] = input) -> None:
    logger.info("Console connector started (storage=%s).", "remote" if state.coordinator.incremental else "local")
    _print_ts("[CONSOLE] Use /help for commands. Use /exit to quit.\n")

    def emit(text: str) -> None:
        # Immediate feedback for long operations (e.g. AI pre-fill)
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = (await asyncio.to_thread(read, ">>> ")).strip()
            _rewrite_prev_line(f"[{_ts_local()}] >>> {user_input}")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if not user_input.startswith("/"):
            _print_ts("Commands start with '/'. Use /help to list them.")
            continue

        name = command_registry.resolve(user_input)
        if name in CONFIRM_COMMANDS:
            try:
                confirmed = await _confirm(CONFIRM_COMMANDS[name], read)
            except (EOFError, KeyboardInterrupt):
                confirmed = False
            if not confirmed:
                _print_ts("Cancelled.")
                continue

        try:
            cmd_response = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is not None:
            _print_ts(cmd_response)

    logger.info("Console connector finished.")
