"""Data models for installed skills, lock provenance and update status
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple


@dataclass(frozen=True)
class SkillManifest:
    """Parsed `SKILL.md` frontmatter"""

    name: str
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    license: Optional[str] = None
    compatibility: Optional[str] = None
    allowed_tools: Optional[str] = None
    body: str = ""


@dataclass
class InstalledSkill:
    """One skill directory discovered by a scan pass"""

    name: str
    folder_name: str
    description: str
    path: Path
    scope: str  # "global" | "project"
    metadata: Dict[str, Any] = field(default_factory=dict)

    # Provenance, populated from a lock entry
    source: Optional[str] = None
    hash: Optional[str] = None
    skill_path: Optional[str] = None  # e.g. "skills/react-email/SKILL.md"
    lock_origin: Optional[str] = None  # "global" | "local"

    is_custom: bool = False
    is_symlink: bool = False

    @property
    def classification(self) -> str:
        """One of "tracked", "custom" or "untracked"."""
        if self.lock_origin is not None:
            return "tracked"
        if self.is_custom:
            return "custom"
        return "untracked"


@dataclass
class ScanResult:
    """Result of one full scan of every skill directory"""

    global_skills: List[InstalledSkill] = field(default_factory=list)
    project_skills: List[InstalledSkill] = field(default_factory=list)

    scan_time: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    @property
    def all_skills(self) -> List[InstalledSkill]:
        return self.global_skills + self.project_skills

    @property
    def total_count(self) -> int:
        return len(self.global_skills) + len(self.project_skills)

    def installed_names(self) -> Set[str]:
        """Display names and folder names, either may be used as a lookup key."""
        names: Set[str] = set()
        for skill in self.all_skills:
            names.add(skill.name)
            names.add(skill.folder_name)
        return names


@dataclass(frozen=True)
class UpdateCandidate:
    """A tracked skill eligible for a remote hash comparison"""

    name: str
    source: str
    skill_folder_hash: str
    skill_path: Optional[str] = None


@dataclass(frozen=True)
class UpdateRecord:
    name: str
    source: str
    new_hash: str


@dataclass(frozen=True)
class UpdateCheckResponse:
    updates: Tuple[UpdateRecord, ...] = ()
    errors: Tuple[str, ...] = ()


@dataclass
class DirectoryDiagnostic:
    """Diagnostic summary for one scanned directory"""

    label: str
    path: Path
    exists: bool
    subdir_count: int = 0
    valid_skill_count: int = 0


@dataclass
class ScanDiagnostic:
    directories: List[DirectoryDiagnostic] = field(default_factory=list)
    project_paths: List[Path] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)


@dataclass
class ManifestEntry:
    """One source repository listed in a project `skills.json`"""

    source: str  # GitHub owner/repo
    skills: List[str] = field(default_factory=list)  # folder names


@dataclass
class ProjectManifest:
    skills: List[ManifestEntry] = field(default_factory=list)


@dataclass(frozen=True)
class MissingSkill:
    source: str
    skill_name: str


@dataclass(frozen=True)
class ShellExecutionEnded:
    """A terminal reported that one shell command finished"""

    terminal: Any
    command: str = ""
    exit_code: Optional[int] = None


@dataclass(frozen=True)
class OperationOutcome:
    """How a dispatched install/update/uninstall was declared complete"""

    operation: str  # "install" | "update" | "uninstall"
    signal: str  # "shell-integration" | "watcher" | "timeout"
    exit_codes: Tuple[int, ...] = ()
    warnings: Tuple[str, ...] = ()

    @property
    def timed_out(self) -> bool:
        return self.signal == "timeout"
