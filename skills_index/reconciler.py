"""Reconciliation entrypoint.

The :class:`Reconciler` owns the current :class:`ScanResult` and the
last-known update result. Both the watcher's debounced change signal and the
installer's "operation completed" signal lead to :meth:`Reconciler.rescan`.
Consumers subscribe to :attr:`Reconciler.changed` for every new scan.
"""

import asyncio
from typing import List, Optional, Set

from .cache import TTLCache
from .config import Settings
from .constants import CACHE_TTL_DETAIL
from .events import EventChannel, Subscription
from .github import GitHubClient
from .installer import Installer
from .logging import get_logger
from .models import OperationOutcome, ScanResult, SkillManifest, UpdateCheckResponse
from .scanners.skills import SkillScanner, parse_skill_md_content
from .terminal import SubprocessTerminal, Terminal
from .updates import UpdateCheckError, UpdateDetector, UpdateState, update_candidates
from .watcher import SkillWatcher

logger = get_logger(__name__)


class Reconciler:
    def __init__(
        self,
        settings: Settings,
        scanner: Optional[SkillScanner] = None,
        github: Optional[GitHubClient] = None,
        update_state: Optional[UpdateState] = None,
        watcher: Optional[SkillWatcher] = None,
        installer: Optional[Installer] = None,
        terminal: Optional[Terminal] = None,
    ):
        self.settings = settings
        self.scanner = scanner or SkillScanner(settings)
        self.github = github or GitHubClient(settings)
        if update_state is None:
            update_state = installer.update_state if installer else UpdateState()
        self.update_state = update_state
        self.detector = UpdateDetector(self.github, self.update_state)
        self.watcher = watcher or SkillWatcher(self.scanner)
        self.installer = installer or Installer(
            settings,
            terminal or SubprocessTerminal(cwd=settings.project_root),
            update_state=self.update_state,
        )

        self.changed: EventChannel[ScanResult] = EventChannel("reconciler.changed")
        self.notices: EventChannel[str] = EventChannel("reconciler.notices")

        self.detail_cache: TTLCache[SkillManifest] = TTLCache(CACHE_TTL_DETAIL)
        self.current_detail: Optional[SkillManifest] = None
        self._detail_generation = 0

        self._last_scan: Optional[ScanResult] = None
        self._subscriptions: List[Subscription] = []
        self._update_task: Optional[asyncio.Task] = None

    # -- scanning ----------------------------------------------------------

    @property
    def last_scan(self) -> Optional[ScanResult]:
        return self._last_scan

    def rescan(self) -> ScanResult:
        """Run a full scan and replace the current result."""
        result = self.scanner.scan()
        self._last_scan = result
        for error in result.errors:
            logger.warning("[reconciler] %s", error)
        logger.debug(
            "[reconciler] scan: %d global, %d project",
            len(result.global_skills),
            len(result.project_skills),
        )
        self.changed.publish(result)
        return result

    def installed_names(self) -> Set[str]:
        if self._last_scan is None:
            return set()
        return self._last_scan.installed_names()

    def _on_watcher_changed(self, _: None) -> None:
        previous = self._last_scan
        old_names = self.installed_names()
        result = self.rescan()
        new_names = result.installed_names()

        for name in sorted(new_names ^ old_names):
            self.installer.notify_install_detected(name)

        if previous is None:
            return
        old_count = previous.total_count
        new_count = result.total_count
        if old_count > 0 and new_count > old_count:
            self._notice(f"{new_count - old_count} new skill(s) installed.")
        elif old_count > 0 and new_count < old_count:
            self._notice(f"{old_count - new_count} skill(s) removed.")

    def _notice(self, message: str) -> None:
        logger.info("[reconciler] %s", message)
        self.notices.publish(message)

    async def _on_operation_completed(self, outcome: OperationOutcome) -> None:
        logger.info(
            "[reconciler] %s completed via %s, rescanning", outcome.operation, outcome.signal
        )
        self.rescan()
        if self.update_state.result is not None:
            await self._scheduled_check()

    # -- updates -----------------------------------------------------------

    @property
    def last_update_result(self) -> Optional[UpdateCheckResponse]:
        return self.update_state.result

    async def check_updates(self, force_refresh: bool = False) -> UpdateCheckResponse:
        """User-initiated update check. Raises UpdateCheckError on failure."""
        scan = self._last_scan or self.rescan()
        candidates = update_candidates(scan.all_skills)
        try:
            return await self.detector.check(candidates, force_refresh=force_refresh)
        except Exception as e:
            raise UpdateCheckError(f"Update check failed: {e}") from e

    async def _scheduled_check(self) -> None:
        try:
            await self.check_updates()
        except UpdateCheckError as e:
            logger.warning("[reconciler] %s", e)

    async def _update_loop(self) -> None:
        if self.settings.check_updates_on_startup:
            await self._scheduled_check()
        while self.settings.update_check_interval_seconds > 0:
            await asyncio.sleep(self.settings.update_check_interval_seconds)
            await self._scheduled_check()

    # -- detail requests ---------------------------------------------------

    async def fetch_skill_detail(self, source: str, skill: str) -> Optional[SkillManifest]:
        """Fetch and parse a remote `SKILL.md`.

        A newer request supersedes any pending one: a superseded request
        returns None and leaves :attr:`current_detail` untouched.
        """
        self._detail_generation += 1
        generation = self._detail_generation

        key = f"{source}/{skill}"
        detail = self.detail_cache.get(key)
        if detail is None:
            content = await self.github.fetch_skill_md(source, skill)
            detail = parse_skill_md_content(content) if content else None
            if detail is not None:
                self.detail_cache.set(key, detail)

        if generation != self._detail_generation:
            logger.debug("[reconciler] discarding superseded detail for %s", key)
            return None

        self.current_detail = detail
        return detail

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> ScanResult:
        """Initial scan, then watch and (optionally) schedule update checks."""
        result = self.rescan()
        self._subscriptions = [
            self.watcher.changed.subscribe(self._on_watcher_changed),
            self.installer.completed.subscribe(self._on_operation_completed),
        ]
        self.watcher.start()

        if (
            self.settings.check_updates_on_startup
            or self.settings.update_check_interval_seconds > 0
        ):
            self._update_task = asyncio.get_running_loop().create_task(self._update_loop())
        return result

    def restart_watcher(self) -> None:
        self.watcher.restart()

    def apply_settings(self, settings: Settings) -> ScanResult:
        """Swap settings everywhere, re-establish watches and rescan."""
        self.settings = settings
        self.scanner.settings = settings
        self.github.settings = settings
        self.installer.settings = settings
        if self.watcher.is_watching:
            self.restart_watcher()
        return self.rescan()

    async def stop(self) -> None:
        if self._update_task is not None:
            self._update_task.cancel()
            try:
                await self._update_task
            except asyncio.CancelledError:
                pass
            self._update_task = None

        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions = []
        await self.watcher.stop()
        await self.installer.completed.wait_idle()
