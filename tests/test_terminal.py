from __future__ import annotations

from pathlib import Path

import pytest

from skills_index.events import next_event
from skills_index.terminal import SubprocessTerminal


@pytest.mark.asyncio
async def test_runs_lines_in_order_and_reports_exit_codes(tmp_path: Path) -> None:
    terminal = SubprocessTerminal(cwd=tmp_path)
    ended = []
    terminal.executions.subscribe(ended.append)

    terminal.send_text("echo one > first.txt")
    terminal.send_text("test -f first.txt && exit 3")
    await terminal.drain()

    assert [e.command for e in ended] == ["echo one > first.txt", "test -f first.txt && exit 3"]
    assert [e.exit_code for e in ended] == [0, 3]
    assert all(e.terminal is terminal for e in ended)

    await terminal.close()


@pytest.mark.asyncio
async def test_next_execution_event(tmp_path: Path) -> None:
    terminal = SubprocessTerminal(cwd=tmp_path)

    terminal.send_text("true")
    event = await next_event(terminal.executions)

    assert event.exit_code == 0
    await terminal.close()
