"""Terminal collaborators.

Operations are dispatched as single command lines sent to a terminal. A
terminal reports each finished command on its ``executions`` channel; that
report is one of the completion signals the installer waits for.
"""

import asyncio
from pathlib import Path
from typing import Optional, Protocol

from .events import EventChannel
from .logging import get_logger
from .models import ShellExecutionEnded

logger = get_logger(__name__)


class Terminal(Protocol):
    executions: EventChannel[ShellExecutionEnded]

    def send_text(self, text: str) -> None:
        ...

    def show(self) -> None:
        ...


class SubprocessTerminal:
    """Runs each line sent to it as a shell command, one at a time, in order.

    Output goes straight to the inherited stdout/stderr.
    """

    def __init__(self, name: str = "skills", cwd: Optional[Path] = None):
        self.name = name
        self.cwd = cwd
        self.executions: EventChannel[ShellExecutionEnded] = EventChannel(
            f"terminal.{name}.executions"
        )
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None

    def show(self) -> None:
        logger.debug("[terminal] %s: show", self.name)

    def send_text(self, text: str) -> None:
        """Queue a command line. Must be called from a running event loop."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        self._queue.put_nowait(text)
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            line = await self._queue.get()
            try:
                exit_code = await self._execute(line)
            finally:
                self._queue.task_done()
            self.executions.publish(
                ShellExecutionEnded(terminal=self, command=line, exit_code=exit_code)
            )

    async def _execute(self, line: str) -> Optional[int]:
        logger.info("[terminal] %s: $ %s", self.name, line)
        try:
            process = await asyncio.create_subprocess_shell(
                line, cwd=str(self.cwd) if self.cwd else None
            )
        except OSError as e:
            logger.warning("[terminal] %s: could not start %r: %s", self.name, line, e)
            return 127
        return await process.wait()

    async def drain(self) -> None:
        """Wait until every queued line has run."""
        if self._queue is not None:
            await self._queue.join()

    async def close(self) -> None:
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        self.executions.dispose()
