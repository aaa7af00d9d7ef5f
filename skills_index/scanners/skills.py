"""Skill scanner - discovers installed skills from `SKILL.md` directories."""

import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..config import Settings
from ..constants import SKILL_MANIFEST_FILENAME
from ..lock_file import (
    ChainedLockResolver,
    GlobalLockStore,
    LocalLockStore,
    LockResolver,
)
from ..logging import get_logger
from ..models import (
    DirectoryDiagnostic,
    InstalledSkill,
    ScanDiagnostic,
    ScanResult,
    SkillManifest,
)

logger = get_logger(__name__)

_FRONTMATTER = re.compile(r"^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)(.*)", re.DOTALL)


def _extract_frontmatter(content: str) -> Tuple[Dict, str]:
    """Split `SKILL.md` content into (frontmatter, body)."""
    match = _FRONTMATTER.match(content.lstrip("\ufeff"))
    if not match:
        return {}, content

    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, content

    if not isinstance(data, dict):
        return {}, content
    return data, match.group(2)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def parse_skill_md_content(content: str) -> Optional[SkillManifest]:
    """Parse `SKILL.md` text. Returns None unless the frontmatter has a name."""
    frontmatter, body = _extract_frontmatter(content)

    name = frontmatter.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    description = frontmatter.get("description")
    return SkillManifest(
        name=name,
        description=description if isinstance(description, str) else "",
        metadata=dict(frontmatter),
        license=_optional_str(frontmatter.get("license")),
        compatibility=_optional_str(frontmatter.get("compatibility")),
        allowed_tools=_optional_str(frontmatter.get("allowed-tools")),
        body=body,
    )


def parse_skill_md(path: Path) -> Optional[SkillManifest]:
    """Parse a `SKILL.md` file; unreadable or invalid files yield None."""
    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    return parse_skill_md_content(content)


def _is_directory_entry(entry: Path) -> bool:
    """True for directories and for symlinks that resolve to one."""
    try:
        return entry.is_dir()
    except OSError:
        return False


class SkillScanner:
    """Scan the global and project skill directories.

    Each location has a canonical directory (``.agents/skills``) and a
    tool-specific directory (``.claude/skills``). Canonical entries win when
    the same folder name appears in both.
    """

    def __init__(
        self,
        settings: Settings,
        global_lock: Optional[GlobalLockStore] = None,
        local_lock: Optional[LocalLockStore] = None,
    ):
        self.settings = settings
        self.global_lock = global_lock or GlobalLockStore(settings.global_lock_path)
        self.local_lock = local_lock or LocalLockStore(settings.local_lock_path)

    def resolver_for(self, scope: str) -> LockResolver:
        """Lock resolution chain for a scope.

        Global skills consult the global store (key, then skillPath fallback)
        and then the local store by key. Project skills consult only the
        local store.
        """
        if scope == "global":
            return ChainedLockResolver([self.global_lock, self.local_lock])
        return ChainedLockResolver([self.local_lock])

    def scan(self) -> ScanResult:
        """Produce a fresh ScanResult. Never raises for missing state."""
        errors: List[str] = []

        # Best-effort: absent stores resolve nothing.
        self.global_lock.path = self.settings.global_lock_path
        self.local_lock.path = self.settings.local_lock_path
        self.global_lock.reload()
        self.local_lock.reload()

        global_skills = self.scan_location(
            [path for _, path in self.settings.global_dirs()], "global", errors
        )
        project_skills = self.scan_location(
            [path for _, path in self.settings.project_dirs()], "project", errors
        )

        return ScanResult(
            global_skills=global_skills,
            project_skills=project_skills,
            scan_time=datetime.now(),
            errors=errors,
        )

    def scan_location(
        self, directories: List[Path], scope: str, errors: Optional[List[str]] = None
    ) -> List[InstalledSkill]:
        """Scan directories in precedence order, keeping the first folder name."""
        resolver = self.resolver_for(scope)
        seen = set()
        skills: List[InstalledSkill] = []

        for directory in directories:
            for skill in self._scan_directory(directory, scope, resolver, errors):
                if skill.folder_name in seen:
                    continue
                seen.add(skill.folder_name)
                skills.append(skill)

        return skills

    def _iter_entries(self, directory: Path, errors: Optional[List[str]]) -> List[Path]:
        if not directory.exists():
            return []
        try:
            return sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as e:
            if errors is not None:
                errors.append(f"Cannot read skills directory {directory}: {e}")
            return []

    def _scan_directory(
        self,
        directory: Path,
        scope: str,
        resolver: LockResolver,
        errors: Optional[List[str]] = None,
    ) -> List[InstalledSkill]:
        skills: List[InstalledSkill] = []

        for entry in self._iter_entries(directory, errors):
            # Skip hidden directories (.git, .disabled, ...)
            if entry.name.startswith("."):
                continue
            if not _is_directory_entry(entry):
                continue

            manifest = parse_skill_md(entry / SKILL_MANIFEST_FILENAME)
            if manifest is None:
                continue

            skills.append(self._build_skill(entry, manifest, scope, resolver))

        return skills

    def _build_skill(
        self,
        entry: Path,
        manifest: SkillManifest,
        scope: str,
        resolver: LockResolver,
    ) -> InstalledSkill:
        folder_name = entry.name
        is_symlink = entry.is_symlink()
        lock_entry = resolver.find_entry(folder_name)

        skill = InstalledSkill(
            name=manifest.name,
            folder_name=folder_name,
            description=manifest.description,
            path=entry.absolute(),
            scope=scope,
            metadata=dict(manifest.metadata),
            is_symlink=is_symlink,
        )

        if lock_entry is not None:
            skill.source = lock_entry.source or None
            skill.hash = lock_entry.hash or None
            skill.skill_path = lock_entry.skill_path
            skill.lock_origin = lock_entry.origin
        elif not is_symlink:
            skill.is_custom = True

        return skill

    def watched_directories(self) -> List[Path]:
        """Every directory a scan reads, in scan order."""
        return [path for _, path in self.settings.global_dirs()] + [
            path for _, path in self.settings.project_dirs()
        ]

    def diagnose(self) -> ScanDiagnostic:
        """Report per-directory state to guide the user. Never changes results."""
        diagnostic = ScanDiagnostic()
        any_exists = False

        for label, directory in self.settings.global_dirs() + self.settings.project_dirs():
            exists = directory.exists()
            item = DirectoryDiagnostic(label=label, path=directory, exists=exists)

            if exists:
                any_exists = True
                try:
                    subdirs = [
                        e
                        for e in directory.iterdir()
                        if not e.name.startswith(".") and _is_directory_entry(e)
                    ]
                except OSError:
                    diagnostic.issues.append(
                        f"Cannot read {label} skills directory: {directory}"
                    )
                    subdirs = []

                item.subdir_count = len(subdirs)
                item.valid_skill_count = sum(
                    1
                    for e in subdirs
                    if parse_skill_md(e / SKILL_MANIFEST_FILENAME) is not None
                )
                if item.subdir_count > 0 and item.valid_skill_count == 0:
                    diagnostic.issues.append(
                        f"{label}: found {item.subdir_count} folder(s) in {directory} "
                        f"but none contain a valid {SKILL_MANIFEST_FILENAME}"
                    )

            diagnostic.directories.append(item)

        if not any_exists:
            diagnostic.issues.append(
                "No skill directories found. Install skills with `npx skills add`."
            )

        if self.settings.project_root is None:
            diagnostic.issues.append("No project open: project skills not scanned")
        else:
            diagnostic.project_paths = [path for _, path in self.settings.project_dirs()]

        return diagnostic
