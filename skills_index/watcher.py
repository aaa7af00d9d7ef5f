"""Change watcher - coalesces filesystem events into one "changed" signal.

Watches every scan directory for ``*/SKILL.md`` changes plus the global lock
file, the project lock file and the project ``skills.json``. Each relevant
notification restarts a debounce timer; the :attr:`SkillWatcher.changed`
channel fires once the timer elapses without a further notification.

A directory that does not exist yet is covered by a flat watch on its nearest
existing ancestor; once it appears the watches are re-established.
"""

import asyncio
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Set

from watchfiles import awatch

from .constants import SKILL_MANIFEST_FILENAME, WATCH_DEBOUNCE_SECONDS
from .events import EventChannel
from .logging import get_logger
from .scanners.skills import SkillScanner

logger = get_logger(__name__)

# watchfiles' own batching window (ms); coalescing is done by our debounce.
_RAW_BATCH_MS = 50


def _missing_roots(targets: Iterable[Path]) -> Set[Path]:
    """For each missing target, the topmost missing directory under an existing one."""
    roots: Set[Path] = set()
    for target in targets:
        if target.is_dir():
            continue
        child, parent = target, target.parent
        while parent != child and not parent.is_dir():
            child, parent = parent, parent.parent
        if parent != child:
            roots.add(child)
    return roots


class SkillWatcher:
    """Debounced watcher over the scanner's directories and state files."""

    def __init__(
        self,
        scanner: SkillScanner,
        debounce: float = WATCH_DEBOUNCE_SECONDS,
        watch: Callable = awatch,
    ):
        self.scanner = scanner
        self.debounce = debounce
        self._watch = watch
        self.changed: EventChannel[None] = EventChannel("watcher.changed")

        self._tasks: List[asyncio.Task] = []
        self._stop_event: Optional[asyncio.Event] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._skill_dirs: Set[Path] = set()
        self._state_files: Set[Path] = set()
        # First missing component of each watched path that does not exist yet
        self._pending: Set[Path] = set()

    def watched_files(self) -> List[Path]:
        settings = self.scanner.settings
        files = [settings.global_lock_path, settings.local_lock_path, settings.manifest_path]
        return [path for path in files if path is not None]

    @property
    def is_watching(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def accepts(self, path: Path) -> bool:
        """True for a state file or a manifest one level inside a skill dir."""
        if path in self._state_files:
            return True
        if path.name != SKILL_MANIFEST_FILENAME:
            return False
        return path.parent.parent in self._skill_dirs

    def start(self) -> None:
        """(Re)establish watches against the current directory set.

        Must be called from a running event loop. Safe to call repeatedly.
        """
        self._dispose_watches()

        self._skill_dirs = set(self.scanner.watched_directories())
        self._state_files = set(self.watched_files())
        self._stop_event = asyncio.Event()

        state_dirs = {f.parent for f in self._state_files}
        self._pending = _missing_roots(self._skill_dirs | state_dirs)

        skill_dirs = sorted(str(d) for d in self._skill_dirs if d.is_dir())
        parents = sorted(
            {str(d) for d in state_dirs if d.is_dir()}
            | {str(p.parent) for p in self._pending}
        )

        if skill_dirs:
            self._spawn(skill_dirs, recursive=True)
        if parents:
            self._spawn(parents, recursive=False)

        logger.info(
            "[watcher] watching %d skill dir(s) and %d state file(s)",
            len(skill_dirs),
            len(self._state_files),
        )

    def restart(self) -> None:
        self.start()

    def _spawn(self, paths: List[str], recursive: bool) -> None:
        task = asyncio.get_running_loop().create_task(self._watch_loop(paths, recursive))
        self._tasks.append(task)

    async def _watch_loop(self, paths: List[str], recursive: bool) -> None:
        try:
            async for changes in self._watch(
                *paths,
                stop_event=self._stop_event,
                debounce=_RAW_BATCH_MS,
                recursive=recursive,
            ):
                if any(Path(p) in self._pending for _, p in changes):
                    asyncio.get_running_loop().call_soon(self._on_directory_created)
                    continue
                relevant = [p for _, p in changes if self.accepts(Path(p))]
                if relevant:
                    logger.debug("[watcher] raw change: %s", ", ".join(sorted(relevant)))
                    self.notify_raw_change()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning("[watcher] watch on %s stopped: %s", ", ".join(paths), e)

    def _on_directory_created(self) -> None:
        if self._stop_event is None:
            return
        logger.info("[watcher] watched directory created, re-establishing watches")
        self.start()
        self.notify_raw_change()

    def notify_raw_change(self) -> None:
        """Restart the debounce timer."""
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.debounce, self._fire)

    def _fire(self) -> None:
        self._timer = None
        logger.debug("[watcher] change detected")
        self.changed.publish(None)

    def _dispose_watches(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self._stop_event = None

    async def stop(self) -> None:
        """Stop watching and wait for the watch tasks to exit."""
        tasks = list(self._tasks)
        self._dispose_watches()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def dispose(self) -> None:
        self._dispose_watches()
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self.changed.dispose()
