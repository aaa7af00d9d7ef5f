"""Lock stores - provenance records for installed skills.

Two JSON files record where installed skills came from:

* the global store (``~/.agents/.skill-lock.json``), keyed by skill id, whose
  keys do not always equal folder names, so lookups fall back to matching the
  folder portion of ``skillPath``;
* the project-local store (``<project>/skills-lock.json``), always keyed by
  folder name.

A missing or malformed file reads as an absent store.
"""

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Tuple

from .logging import get_logger

logger = get_logger(__name__)

_SKILL_MD_SUFFIX = re.compile(r"/?SKILL\.md$", re.IGNORECASE)


@dataclass(frozen=True)
class LockEntry:
    """One lock record, normalized across both store formats."""

    key: str
    source: str
    origin: str  # "global" | "local"
    source_type: Optional[str] = None
    hash: Optional[str] = None  # skillFolderHash (global) or computedHash (local)
    skill_path: Optional[str] = None
    source_url: Optional[str] = None
    installed_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def folder(self) -> Optional[str]:
        """Repository-relative folder of the skill, from ``skill_path``."""
        if not self.skill_path:
            return None
        return _SKILL_MD_SUFFIX.sub("", self.skill_path)


def folder_of_skill_path(skill_path: str) -> str:
    """Strip the trailing manifest filename from a repository path."""
    return _SKILL_MD_SUFFIX.sub("", skill_path)


class LockResolver(Protocol):
    """Resolves a folder name to its lock entry."""

    def find_entry(self, folder_name: str) -> Optional[LockEntry]:
        ...

    def find_key(self, folder_name: str) -> Optional[str]:
        ...


class LockStore:
    """A lock file on disk, read lazily and cached until :meth:`reload`."""

    origin = ""
    hash_field = ""
    path_fallback = False

    def __init__(self, path: Optional[Path]):
        self.path = path
        self._data: Optional[Dict] = None
        self._loaded = False

    def reload(self) -> None:
        self._data = self._read()
        self._loaded = True

    def _read(self) -> Optional[Dict]:
        if self.path is None or not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
            logger.debug("[lock-file] unreadable lock file %s: %s", self.path, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("skills"), dict):
            return None
        return data

    @property
    def data(self) -> Optional[Dict]:
        if not self._loaded:
            self.reload()
        return self._data

    @property
    def exists(self) -> bool:
        return self.data is not None

    def keys(self) -> List[str]:
        return list(self._skills())

    def _skills(self) -> Dict[str, Dict]:
        data = self.data
        return data["skills"] if data else {}

    def _entry(self, key: str, raw: Dict) -> LockEntry:
        return LockEntry(
            key=key,
            source=raw.get("source", ""),
            origin=self.origin,
            source_type=raw.get("sourceType"),
            hash=raw.get(self.hash_field),
            skill_path=raw.get("skillPath"),
            source_url=raw.get("sourceUrl"),
            installed_at=raw.get("installedAt"),
            updated_at=raw.get("updatedAt"),
        )

    def find_key(self, folder_name: str) -> Optional[str]:
        """Direct key match first, then (if enabled) the skillPath fallback.

        The fallback walks entries in file order and returns the first whose
        ``skillPath`` folder ends in a segment equal to ``folder_name``.
        """
        skills = self._skills()
        if not skills:
            return None

        if isinstance(skills.get(folder_name), dict):
            return folder_name

        if not self.path_fallback:
            return None

        for key, raw in skills.items():
            if not isinstance(raw, dict):
                continue
            skill_path = raw.get("skillPath")
            if not skill_path:
                continue
            parts = folder_of_skill_path(skill_path).split("/")
            if parts[-1] == folder_name:
                return key

        return None

    def find_entry(self, folder_name: str) -> Optional[LockEntry]:
        key = self.find_key(folder_name)
        if key is None:
            return None
        return self._entry(key, self._skills()[key])

    def entries(self) -> List[LockEntry]:
        return [
            self._entry(key, raw)
            for key, raw in self._skills().items()
            if isinstance(raw, dict)
        ]

    def remove_entry(self, folder_name: str) -> bool:
        """Remove the entry resolved for ``folder_name`` and persist the file.

        Re-reads the file first so concurrent external writes are not lost.
        Returns False when nothing was removed or the file could not be
        read or written.
        """
        self.reload()
        key = self.find_key(folder_name)
        if key is None or self._data is None:
            return False

        del self._data["skills"][key]
        try:
            with open(self.path, "w") as f:
                f.write(json.dumps(self._data, indent=2))
        except OSError as e:
            logger.warning("[lock-file] failed to write %s: %s", self.path, e)
            self.reload()
            return False

        logger.info('[lock-file] removed lock entry "%s"', key)
        return True


class GlobalLockStore(LockStore):
    """User-wide store; keys are skill ids, resolved with path fallback."""

    origin = "global"
    hash_field = "skillFolderHash"
    path_fallback = True


class LocalLockStore(LockStore):
    """Per-project store; keys are always folder names."""

    origin = "local"
    hash_field = "computedHash"
    path_fallback = False


class ChainedLockResolver:
    """Consult several resolvers in order; the first match wins."""

    def __init__(self, resolvers: Iterable[LockResolver]):
        self.resolvers: Tuple[LockResolver, ...] = tuple(resolvers)

    def find_entry(self, folder_name: str) -> Optional[LockEntry]:
        for resolver in self.resolvers:
            entry = resolver.find_entry(folder_name)
            if entry is not None:
                return entry
        return None

    def find_key(self, folder_name: str) -> Optional[str]:
        for resolver in self.resolvers:
            key = resolver.find_key(folder_name)
            if key is not None:
                return key
        return None
