from __future__ import annotations

import asyncio
from typing import List, Optional

import pytest

from skills_index.config import Settings
from skills_index.events import EventChannel
from skills_index.installer import (
    InstallError,
    Installer,
    OperationCompletionDetector,
    install_command,
    uninstall_command,
    update_commands,
)
from skills_index.models import (
    OperationOutcome,
    ShellExecutionEnded,
    UpdateCheckResponse,
    UpdateRecord,
)
from skills_index.updates import UpdateState


class FakeTerminal:
    def __init__(self) -> None:
        self.executions: EventChannel[ShellExecutionEnded] = EventChannel("fake")
        self.sent: List[str] = []
        self.shown = 0

    def show(self) -> None:
        self.shown += 1

    def send_text(self, text: str) -> None:
        self.sent.append(text)

    def finish(self, exit_code: Optional[int] = 0, terminal=None) -> None:
        self.executions.publish(
            ShellExecutionEnded(terminal=terminal or self, command="", exit_code=exit_code)
        )


class RecordingNotifier:
    def __init__(self) -> None:
        self.infos: List[str] = []
        self.warnings: List[str] = []

    def info(self, message: str) -> None:
        self.infos.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)


def detector(terminal: FakeTerminal, **kwargs) -> OperationCompletionDetector:
    defaults = dict(
        operation="install",
        label='Install of "pdf"',
        terminal=terminal,
        install_detected=EventChannel("detected"),
        completed=EventChannel("completed"),
        timeout=1.0,
        min_progress=0,
        notifier=RecordingNotifier(),
    )
    defaults.update(kwargs)
    return OperationCompletionDetector(**defaults)


def test_command_lines() -> None:
    assert (
        install_command("vercel-labs/agent-skills", "claude-code", skill="react", is_global=True)
        == "npx skills add vercel-labs/agent-skills -a claude-code -s react -g -y"
    )
    assert install_command("o/r", "cursor") == "npx skills add o/r -a cursor -y"
    assert update_commands("pdf", "o/r", "claude-code") == [
        "npx skills remove pdf -a claude-code -g -y",
        "npx skills add https://github.com/o/r -s pdf -a claude-code -g -y",
    ]
    assert uninstall_command("pdf", "claude-code") == "npx skills remove pdf -a claude-code -y"
    assert (
        uninstall_command("pdf", "claude-code", is_global=True)
        == "npx skills remove pdf -a claude-code -g -y"
    )


@pytest.mark.asyncio
async def test_shell_signal_completes() -> None:
    terminal = FakeTerminal()
    d = detector(terminal).arm()

    terminal.finish(0)
    outcome = await d.wait()

    assert outcome.signal == "shell-integration"
    assert outcome.exit_codes == (0,)
    assert outcome.warnings == ()


@pytest.mark.asyncio
async def test_other_terminal_is_ignored() -> None:
    terminal = FakeTerminal()
    d = detector(terminal, timeout=0.05).arm()

    terminal.finish(0, terminal=object())
    outcome = await d.wait()

    assert outcome.signal == "timeout"


@pytest.mark.asyncio
async def test_non_zero_exit_warns_but_completes() -> None:
    terminal = FakeTerminal()
    notifier = RecordingNotifier()
    d = detector(terminal, notifier=notifier).arm()

    terminal.finish(2)
    outcome = await d.wait()

    assert outcome.signal == "shell-integration"
    assert outcome.exit_codes == (2,)
    assert notifier.warnings == ['Install of "pdf" failed (exit code 2). Check the terminal.']


@pytest.mark.asyncio
async def test_watcher_signal_requires_matching_name() -> None:
    terminal = FakeTerminal()
    detected: EventChannel[str] = EventChannel("detected")
    d = detector(terminal, install_detected=detected, match_name="pdf").arm()

    async def later() -> None:
        await asyncio.sleep(0.01)
        detected.publish("docx")
        await asyncio.sleep(0.01)
        detected.publish("pdf")

    task = asyncio.ensure_future(later())
    outcome = await d.wait()
    await task

    assert outcome.signal == "watcher"
    assert detected.handler_count == 0
    assert terminal.executions.handler_count == 0


@pytest.mark.asyncio
async def test_timeout_is_a_warning() -> None:
    terminal = FakeTerminal()
    notifier = RecordingNotifier()
    d = detector(terminal, timeout=0.05, notifier=notifier).arm()

    outcome = await d.wait()

    assert outcome.timed_out
    assert notifier.warnings == ['Install of "pdf" may still be running. Check the terminal.']


@pytest.mark.asyncio
async def test_completion_fires_exactly_once() -> None:
    terminal = FakeTerminal()
    detected: EventChannel[str] = EventChannel("detected")
    completed: EventChannel[OperationOutcome] = EventChannel("completed")
    outcomes = []
    completed.subscribe(outcomes.append)
    d = detector(terminal, install_detected=detected, completed=completed).arm()

    terminal.finish(0)
    detected.publish("pdf")
    first = await d.wait()
    second = await d.wait()

    # Late signals after completion are ignored.
    terminal.finish(0)
    detected.publish("pdf")

    assert first is second
    assert first.signal == "shell-integration"
    assert outcomes == [first]


@pytest.mark.asyncio
async def test_batch_waits_for_every_execution() -> None:
    terminal = FakeTerminal()
    d = detector(terminal, expected_executions=4, timeout=0.1).arm()

    for _ in range(3):
        terminal.finish(0)
    outcome = await d.wait()
    assert outcome.signal == "timeout"

    terminal = FakeTerminal()
    d = detector(terminal, expected_executions=4).arm()
    for _ in range(4):
        terminal.finish(0)
    outcome = await d.wait()
    assert outcome.signal == "shell-integration"
    assert outcome.exit_codes == (0, 0, 0, 0)


@pytest.mark.asyncio
async def test_minimum_progress_delay() -> None:
    terminal = FakeTerminal()
    d = detector(terminal, min_progress=0.1).arm()
    loop = asyncio.get_running_loop()
    completed_at = []
    d.completed.subscribe(lambda _: completed_at.append(loop.time()))

    started = loop.time()
    terminal.finish(0)
    await d.wait()
    finished = loop.time()

    assert finished - started >= 0.09
    # The completed event is published before the progress delay ends.
    assert completed_at[0] - started < 0.09


def make_installer(settings: Settings, **kwargs) -> Installer:
    return Installer(
        settings,
        FakeTerminal(),
        notifier=RecordingNotifier(),
        timeout=1.0,
        min_progress=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_install_sends_command_and_completes_on_watcher(settings: Settings) -> None:
    installer = make_installer(settings)
    completed = []
    installer.completed.subscribe(completed.append)

    task = asyncio.ensure_future(
        installer.install("vercel-labs/agent-skills", skill="react", scope="global")
    )
    await asyncio.sleep(0.01)
    installer.notify_install_detected("react")
    outcome = await task

    assert installer.terminal.sent == [
        "npx skills add vercel-labs/agent-skills -a claude-code -s react -g -y"
    ]
    assert installer.terminal.shown == 1
    assert outcome.operation == "install"
    assert outcome.signal == "watcher"
    assert completed == [outcome]


def test_resolve_scope(settings: Settings, home) -> None:
    installer = make_installer(settings)
    assert installer.resolve_scope("pdf", "global") is True
    assert installer.resolve_scope("pdf", "project") is False

    with pytest.raises(InstallError):
        installer.resolve_scope("pdf")  # "ask" without a chooser

    with pytest.raises(InstallError):
        installer.resolve_scope("pdf", "everywhere")

    settings.install_scope = "project"
    assert installer.resolve_scope("pdf") is False

    asked = []

    def chooser(name: str, agent: str) -> Optional[str]:
        asked.append((name, agent))
        return None

    settings.install_scope = "ask"
    installer.scope_chooser = chooser
    assert installer.resolve_scope("pdf") is None
    assert asked == [("pdf", "claude-code")]

    no_project = make_installer(Settings(home=home))
    with pytest.raises(InstallError):
        no_project.resolve_scope("pdf", "project")


@pytest.mark.asyncio
async def test_install_cancelled_by_chooser(settings: Settings) -> None:
    installer = make_installer(settings, scope_chooser=lambda name, agent: None)

    assert await installer.install("o/r", skill="pdf") is None
    assert installer.terminal.sent == []


@pytest.mark.asyncio
async def test_update_sends_two_lines_per_skill_and_prunes_state(settings: Settings) -> None:
    state = UpdateState()
    records = (
        UpdateRecord("a", "o/r", "h1"),
        UpdateRecord("b", "o/r", "h2"),
        UpdateRecord("c", "x/y", "h3"),
    )
    state.replace(UpdateCheckResponse(updates=records))
    installer = make_installer(settings, update_state=state)

    task = asyncio.ensure_future(installer.update(records[:2]))
    await asyncio.sleep(0.01)

    assert state.result.updates == (records[2],)
    assert len(installer.terminal.sent) == 4
    assert installer.terminal.sent[0] == "npx skills remove a -a claude-code -g -y"
    assert installer.terminal.sent[3] == (
        "npx skills add https://github.com/o/r -s b -a claude-code -g -y"
    )

    for _ in range(4):
        installer.terminal.finish(0)
    outcome = await task
    assert outcome.signal == "shell-integration"


@pytest.mark.asyncio
async def test_update_batch_completes_on_any_detection(settings: Settings) -> None:
    installer = make_installer(settings)

    task = asyncio.ensure_future(installer.update([UpdateRecord("a", "o/r", "h")]))
    await asyncio.sleep(0.01)
    installer.notify_install_detected("anything")

    assert (await task).signal == "watcher"


@pytest.mark.asyncio
async def test_update_with_nothing_to_do(settings: Settings) -> None:
    installer = make_installer(settings)
    assert await installer.update([]) is None
    assert installer.terminal.sent == []


@pytest.mark.asyncio
async def test_uninstall_scope_defaults(settings: Settings) -> None:
    installer = make_installer(settings)

    task = asyncio.ensure_future(installer.uninstall("pdf"))
    await asyncio.sleep(0.01)
    installer.terminal.finish(0)
    await task

    settings.install_scope = "global"
    task = asyncio.ensure_future(installer.uninstall("docx"))
    await asyncio.sleep(0.01)
    installer.terminal.finish(0)
    outcome = await task

    assert installer.terminal.sent == [
        "npx skills remove pdf -a claude-code -y",
        "npx skills remove docx -a claude-code -g -y",
    ]
    assert outcome.operation == "uninstall"
