from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

import pytest
from watchfiles import Change

from skills_index.config import Settings
from skills_index.scanners import SkillScanner
from skills_index.watcher import SkillWatcher


class FakeWatch:
    """Stands in for ``watchfiles.awatch``; changes are pushed by the test."""

    def __init__(self) -> None:
        self.calls: List[dict] = []
        self.queues: List[asyncio.Queue] = []

    def __call__(self, *paths, stop_event=None, debounce=None, recursive=True):
        queue: asyncio.Queue = asyncio.Queue()
        self.calls.append({"paths": paths, "recursive": recursive, "stop_event": stop_event})
        self.queues.append(queue)
        return self._iterate(queue, stop_event)

    async def _iterate(self, queue: asyncio.Queue, stop_event):
        while not stop_event.is_set():
            yield await queue.get()

    def push(self, *paths: Path, index: int = 0) -> None:
        self.queues[index].put_nowait({(Change.modified, str(p)) for p in paths})


@pytest.fixture
def scanner(settings: Settings) -> SkillScanner:
    settings.global_canonical_dir.mkdir(parents=True)
    settings.project_canonical_dir.mkdir(parents=True)
    return SkillScanner(settings)


def test_accepts_only_manifests_one_level_deep_and_state_files(
    scanner: SkillScanner, settings: Settings
) -> None:
    watcher = SkillWatcher(scanner, watch=FakeWatch())
    watcher._skill_dirs = set(scanner.watched_directories())
    watcher._state_files = set(watcher.watched_files())

    canonical = settings.global_canonical_dir
    assert watcher.accepts(canonical / "pdf" / "SKILL.md")
    assert watcher.accepts(settings.project_tool_dir / "docx" / "SKILL.md")
    assert watcher.accepts(settings.global_lock_path)
    assert watcher.accepts(settings.local_lock_path)
    assert watcher.accepts(settings.manifest_path)

    assert not watcher.accepts(canonical / "pdf" / "notes.md")
    assert not watcher.accepts(canonical / "pdf" / "nested" / "SKILL.md")
    assert not watcher.accepts(canonical / "SKILL.md")
    assert not watcher.accepts(settings.project_root / "package.json")


@pytest.mark.asyncio
async def test_bursts_are_coalesced_into_one_event(scanner: SkillScanner) -> None:
    watcher = SkillWatcher(scanner, debounce=0.05, watch=FakeWatch())
    fired = []
    watcher.changed.subscribe(fired.append)

    for _ in range(5):
        watcher.notify_raw_change()
        await asyncio.sleep(0.01)
    assert fired == []

    await asyncio.sleep(0.15)
    assert fired == [None]

    watcher.notify_raw_change()
    await asyncio.sleep(0.15)
    assert len(fired) == 2
    watcher.dispose()


@pytest.mark.asyncio
async def test_relevant_filesystem_change_fires_changed(
    scanner: SkillScanner, settings: Settings
) -> None:
    fake = FakeWatch()
    watcher = SkillWatcher(scanner, debounce=0.02, watch=fake)
    fired = []
    watcher.changed.subscribe(fired.append)

    watcher.start()
    await asyncio.sleep(0)

    # One recursive watch over existing skill dirs, one flat watch over state-file parents.
    assert [call["recursive"] for call in fake.calls] == [True, False]
    assert str(settings.global_canonical_dir) in fake.calls[0]["paths"]
    assert str(settings.global_tool_dir) not in fake.calls[0]["paths"]

    fake.push(settings.global_canonical_dir / "pdf" / "README.md")
    await asyncio.sleep(0.08)
    assert fired == []

    fake.push(settings.global_canonical_dir / "pdf" / "SKILL.md")
    await asyncio.sleep(0.08)
    assert fired == [None]

    fake.push(settings.global_lock_path, index=1)
    await asyncio.sleep(0.08)
    assert len(fired) == 2

    await watcher.stop()
    assert not watcher.is_watching


@pytest.mark.asyncio
async def test_restart_replaces_watches(scanner: SkillScanner, settings: Settings) -> None:
    fake = FakeWatch()
    watcher = SkillWatcher(scanner, watch=fake)

    watcher.start()
    await asyncio.sleep(0)
    first_stop = fake.calls[0]["stop_event"]

    settings.global_tool_dir.mkdir(parents=True)
    watcher.restart()
    await asyncio.sleep(0)
    watcher.restart()
    await asyncio.sleep(0)

    assert first_stop.is_set()
    assert len(fake.calls) == 6
    assert str(settings.global_tool_dir) in fake.calls[-2]["paths"]
    assert sum(1 for t in watcher._tasks if not t.done()) == 2

    await watcher.stop()


@pytest.mark.asyncio
async def test_stop_cancels_pending_debounce(scanner: SkillScanner) -> None:
    watcher = SkillWatcher(scanner, debounce=0.05, watch=FakeWatch())
    fired = []
    watcher.changed.subscribe(fired.append)

    watcher.start()
    watcher.notify_raw_change()
    await watcher.stop()
    await asyncio.sleep(0.1)

    assert fired == []


@pytest.mark.asyncio
async def test_missing_directory_is_picked_up_once_created(
    settings: Settings, home: Path
) -> None:
    fake = FakeWatch()
    watcher = SkillWatcher(SkillScanner(settings), debounce=0.02, watch=fake)
    fired = []
    watcher.changed.subscribe(fired.append)

    watcher.start()
    await asyncio.sleep(0)

    # Nothing under ~/.agents exists yet, so only the flat watch runs and it covers home.
    assert [call["recursive"] for call in fake.calls] == [False]
    assert str(home) in fake.calls[0]["paths"]

    settings.global_canonical_dir.mkdir(parents=True)
    fake.push(home / ".agents")
    await asyncio.sleep(0.08)

    assert fired == [None]
    assert fake.calls[0]["stop_event"].is_set()
    assert fake.calls[-2]["recursive"] is True
    assert str(settings.global_canonical_dir) in fake.calls[-2]["paths"]

    await watcher.stop()
