"""Install, update and uninstall through the external ``skills`` CLI.

This package never modifies skill directories itself. Each operation sends
command lines to a terminal, then an :class:`OperationCompletionDetector`
decides when the operation should be treated as finished. It races three
signals:

* the terminal reports its commands finished (``shell-integration``);
* the watcher reports a matching skill appeared or disappeared (``watcher``);
* a fixed timeout elapses (``timeout``).

The first signal wins and a single :class:`OperationOutcome` is published on
:attr:`Installer.completed`. A non-zero exit code or a timeout is surfaced as
a warning, never as an error.
"""

import asyncio
from typing import Callable, List, Optional, Protocol, Sequence

from .config import Settings
from .constants import (
    CONFIRM_FLAG,
    GITHUB_WEB_BASE,
    MIN_PROGRESS_SECONDS,
    OPERATION_TIMEOUT_SECONDS,
    SKILLS_CLI,
)
from .events import EventChannel, Subscription
from .logging import get_logger
from .models import OperationOutcome, ShellExecutionEnded, UpdateRecord
from .terminal import Terminal
from .updates import UpdateState

logger = get_logger(__name__)

# Returns "global", "project", or None when the user cancels.
ScopeChooser = Callable[[str, str], Optional[str]]


class InstallError(RuntimeError):
    """Raised when an operation cannot be dispatched."""


def install_command(
    source: str, agent: str, skill: Optional[str] = None, is_global: bool = False
) -> str:
    cmd = f"{SKILLS_CLI} add {source} -a {agent}"
    if skill:
        cmd += f" -s {skill}"
    if is_global:
        cmd += " -g"
    return f"{cmd} {CONFIRM_FLAG}"


def update_commands(name: str, source: str, agent: str) -> List[str]:
    """Remove then re-add one skill, globally. Two separate lines."""
    return [
        f"{SKILLS_CLI} remove {name} -a {agent} -g {CONFIRM_FLAG}",
        f"{SKILLS_CLI} add {GITHUB_WEB_BASE}/{source} -s {name} -a {agent} -g {CONFIRM_FLAG}",
    ]


def uninstall_command(name: str, agent: str, is_global: bool = False) -> str:
    cmd = f"{SKILLS_CLI} remove {name} -a {agent}"
    if is_global:
        cmd += " -g"
    return f"{cmd} {CONFIRM_FLAG}"


class Notifier(Protocol):
    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...


class LogNotifier:
    """Default notifier, writes user-facing messages to the log."""

    def info(self, message: str) -> None:
        logger.info(message)

    def warning(self, message: str) -> None:
        logger.warning(message)


class OperationCompletionDetector:
    """Decides when one dispatched operation is finished.

    Subscribe with :meth:`arm` before sending commands, then :meth:`wait`.
    The outcome is computed and published exactly once.
    """

    def __init__(
        self,
        operation: str,
        label: str,
        terminal: Terminal,
        install_detected: EventChannel[str],
        completed: EventChannel[OperationOutcome],
        expected_executions: int = 1,
        match_name: Optional[str] = None,
        timeout: float = OPERATION_TIMEOUT_SECONDS,
        min_progress: float = MIN_PROGRESS_SECONDS,
        notifier: Optional[Notifier] = None,
    ):
        self.operation = operation
        self.label = label
        self.terminal = terminal
        self.install_detected = install_detected
        self.completed = completed
        self.expected_executions = expected_executions
        self.match_name = match_name
        self.timeout = timeout
        self.min_progress = min_progress
        self.notifier = notifier or LogNotifier()

        self._subscriptions: List[Subscription] = []
        self._shell_done: Optional[asyncio.Future] = None
        self._watcher_done: Optional[asyncio.Future] = None
        self._seen_executions = 0
        self._exit_codes: List[int] = []
        self._warnings: List[str] = []
        self._outcome: Optional[OperationOutcome] = None

    def arm(self) -> "OperationCompletionDetector":
        loop = asyncio.get_running_loop()
        self._shell_done = loop.create_future()
        self._watcher_done = loop.create_future()
        self._subscriptions = [
            self.terminal.executions.subscribe(self._on_shell_execution),
            self.install_detected.subscribe(self._on_install_detected),
        ]
        return self

    def _on_shell_execution(self, event: ShellExecutionEnded) -> None:
        if event.terminal is not self.terminal or self._shell_done.done():
            return
        self._seen_executions += 1
        logger.info(
            "[installer] %s: shell execution %d/%d (exit: %s)",
            self.operation,
            self._seen_executions,
            self.expected_executions,
            event.exit_code,
        )
        if event.exit_code is not None:
            self._exit_codes.append(event.exit_code)
            if event.exit_code != 0:
                self._warn(
                    f"{self.label} failed (exit code {event.exit_code}). Check the terminal."
                )
        if self._seen_executions >= self.expected_executions:
            self._shell_done.set_result(None)

    def _on_install_detected(self, name: str) -> None:
        logger.info(
            '[installer] %s: install detected for "%s" (waiting for "%s")',
            self.operation,
            name,
            self.match_name or "*",
        )
        if self._watcher_done.done():
            return
        if self.match_name is None or name == self.match_name:
            self._watcher_done.set_result(None)

    def _warn(self, message: str) -> None:
        self._warnings.append(message)
        self.notifier.warning(message)

    def _dispose(self) -> None:
        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []

    async def wait(self) -> OperationOutcome:
        """Wait for the first completion signal, then the minimum progress delay."""
        if self._outcome is not None:
            return self._outcome
        if self._shell_done is None:
            self.arm()

        loop = asyncio.get_running_loop()
        started = loop.time()
        timer = asyncio.ensure_future(asyncio.sleep(self.timeout))
        try:
            await asyncio.wait(
                {self._shell_done, self._watcher_done, timer},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            timer.cancel()
            self._dispose()

        if self._shell_done.done():
            signal = "shell-integration"
        elif self._watcher_done.done():
            signal = "watcher"
        else:
            signal = "timeout"
            self._warn(f"{self.label} may still be running. Check the terminal.")

        logger.info(
            '[installer] %s: detected completion via %s for "%s"',
            self.operation,
            signal,
            self.label,
        )
        self._outcome = OperationOutcome(
            operation=self.operation,
            signal=signal,
            exit_codes=tuple(self._exit_codes),
            warnings=tuple(self._warnings),
        )
        self.completed.publish(self._outcome)

        remaining = self.min_progress - (loop.time() - started)
        if remaining > 0:
            await asyncio.sleep(remaining)
        return self._outcome


class Installer:
    """Dispatches operations to a terminal and waits for their completion."""

    def __init__(
        self,
        settings: Settings,
        terminal: Terminal,
        update_state: Optional[UpdateState] = None,
        notifier: Optional[Notifier] = None,
        scope_chooser: Optional[ScopeChooser] = None,
        timeout: float = OPERATION_TIMEOUT_SECONDS,
        min_progress: float = MIN_PROGRESS_SECONDS,
    ):
        self.settings = settings
        self.terminal = terminal
        self.update_state = update_state or UpdateState()
        self.notifier = notifier or LogNotifier()
        self.scope_chooser = scope_chooser
        self.timeout = timeout
        self.min_progress = min_progress

        self.install_detected: EventChannel[str] = EventChannel("installer.install_detected")
        self.completed: EventChannel[OperationOutcome] = EventChannel(
            "installer.operation_completed"
        )

    def notify_install_detected(self, skill_name: str) -> None:
        self.install_detected.publish(skill_name)

    def resolve_scope(self, skill_name: str, scope: Optional[str] = None) -> Optional[bool]:
        """True for global, False for project, None when the user cancelled."""
        if scope is None:
            scope = self.settings.install_scope
        if scope == "ask":
            if self.scope_chooser is None:
                raise InstallError(
                    f'No install scope for "{skill_name}": set install_scope or pass a scope'
                )
            scope = self.scope_chooser(skill_name, self.settings.default_agent)
            if scope is None:
                return None
        if scope not in ("global", "project"):
            raise InstallError(f"Invalid install scope: {scope!r}")
        if scope == "project" and self.settings.project_root is None:
            raise InstallError("No project open: cannot install in project scope")
        return scope == "global"

    def _detector(
        self,
        operation: str,
        label: str,
        expected_executions: int,
        match_name: Optional[str] = None,
    ) -> OperationCompletionDetector:
        return OperationCompletionDetector(
            operation=operation,
            label=label,
            terminal=self.terminal,
            install_detected=self.install_detected,
            completed=self.completed,
            expected_executions=expected_executions,
            match_name=match_name,
            timeout=self.timeout,
            min_progress=self.min_progress,
            notifier=self.notifier,
        ).arm()

    def _send(self, operation: str, subject: str, commands: Sequence[str]) -> None:
        self.terminal.show()
        for cmd in commands:
            self.terminal.send_text(cmd)
        logger.info(
            '[installer] %s: sent command(s) for "%s": %s',
            operation,
            subject,
            " ; ".join(commands),
        )

    async def install(
        self,
        source: str,
        skill: Optional[str] = None,
        scope: Optional[str] = None,
        agent: Optional[str] = None,
    ) -> Optional[OperationOutcome]:
        """Install ``skill`` (or every skill) from ``source``.

        Returns None when the scope prompt was cancelled.
        """
        agent = agent or self.settings.default_agent
        skill_name = skill or source
        is_global = self.resolve_scope(skill_name, scope)
        if is_global is None:
            logger.info('[installer] install: cancelled for "%s"', skill_name)
            return None

        cmd = install_command(source, agent, skill=skill, is_global=is_global)
        display_source = source.replace(f"{GITHUB_WEB_BASE}/", "")
        self.notifier.info(f'Installing "{skill_name}" ({display_source})...')

        detector = self._detector(
            "install", f'Install of "{skill_name}"', 1, match_name=skill_name
        )
        self._send("install", skill_name, [cmd])
        return await detector.wait()

    async def update(
        self, updates: Sequence[UpdateRecord], agent: Optional[str] = None
    ) -> Optional[OperationOutcome]:
        """Reinstall each skill: a remove and an add line per skill."""
        if not updates:
            return None

        agent = agent or self.settings.default_agent
        names = ", ".join(u.name for u in updates)
        commands: List[str] = []
        for record in updates:
            commands.extend(update_commands(record.name, record.source, agent))

        self.notifier.info(f"Updating {len(updates)} skill(s)...")
        detector = self._detector(
            "update", f"Update of {len(updates)} skill(s)", expected_executions=len(commands)
        )
        self._send("update", names, commands)

        # Optimistic: the requested skills are no longer reported as outdated.
        for record in updates:
            self.update_state.clear_skill(record.name)

        return await detector.wait()

    async def uninstall(
        self, skill_name: str, scope: Optional[str] = None, agent: Optional[str] = None
    ) -> OperationOutcome:
        agent = agent or self.settings.default_agent
        if scope is None:
            is_global = self.settings.install_scope == "global"
        elif scope in ("global", "project"):
            is_global = scope == "global"
        else:
            raise InstallError(f"Invalid install scope: {scope!r}")

        cmd = uninstall_command(skill_name, agent, is_global=is_global)
        detector = self._detector("uninstall", f'Uninstall of "{skill_name}"', 1)
        self._send("uninstall", skill_name, [cmd])
        return await detector.wait()
