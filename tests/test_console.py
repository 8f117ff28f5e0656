# tests/test_console.py

from __future__ import annotations

import pytest

from taskgenie.connectors.console_connector import run_console_loop


def _scripted(*lines: str):
    queue = list(lines)

    def read(prompt: str) -> str:
        if not queue:
            raise EOFError
        return queue.pop(0)

    return read


@pytest.mark.asyncio
async def test_destructive_commands_need_confirmation(state, capsys) -> None:
    read = _scripted(
        "/register ann@example.com pw Ann",
        "/add Keep me",
        "/delete 1",
        "n",
        "/list",
        "/delete 1",
        "yes",
        "/exit",
        "/add never reached",
    )

    await run_console_loop(state, read=read)

    out = capsys.readouterr().out
    assert "Cancelled." in out
    assert "Deleted 1 task(s)." in out
    assert state.coordinator.tasks == []


@pytest.mark.asyncio
async def test_plain_text_gets_a_hint_and_eof_exits(state, capsys) -> None:
    await run_console_loop(state, read=_scripted("hello"))
    assert "Commands start with '/'" in capsys.readouterr().out
