"""
Configuration for skills-index.

Settings can be constructed programmatically, loaded from a YAML file, or
resolved with :meth:`Settings.load`, which reads ``~/.agents/skills-index.yaml``
when it exists and then applies environment overrides.

Example YAML::

    global_skills_dir: ~/work/claude-skills
    default_agent: claude-code
    install_scope: global
    cache_ttl_seconds: 1800
    check_updates_on_startup: true
    update_check_interval_seconds: 21600
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .constants import (
    AGENTS_DIRNAME,
    CACHE_TTL_GITHUB,
    CLAUDE_DIRNAME,
    CONFIG_FILENAME,
    GLOBAL_LOCK_FILENAME,
    INSTALL_SCOPES,
    LOCAL_LOCK_FILENAME,
    PROJECT_MANIFEST_FILENAME,
    SKILLS_DIRNAME,
)


def _expand(path: str, home: Path) -> Path:
    if path == "~" or path.startswith("~/"):
        return home / path[2:]
    return Path(path)


@dataclass
class Settings:
    """Runtime settings. Mutable so TTL and path changes apply live."""

    home: Path = field(default_factory=Path.home)
    project_root: Optional[Path] = None

    # Overrides the tool-specific global directory (~/.claude/skills)
    global_skills_dir: Optional[Path] = None

    default_agent: str = "claude-code"
    install_scope: str = "ask"  # "ask" | "global" | "project"

    cache_ttl_seconds: float = CACHE_TTL_GITHUB
    check_updates_on_startup: bool = False
    update_check_interval_seconds: float = 0  # 0 disables scheduled checks

    github_token: Optional[str] = None
    http_timeout_seconds: float = 15.0

    def __post_init__(self) -> None:
        if self.install_scope not in INSTALL_SCOPES:
            raise ValueError(
                f"install_scope must be one of: {', '.join(INSTALL_SCOPES)} "
                f"(got {self.install_scope!r})"
            )

    # -- paths -------------------------------------------------------------

    @property
    def global_canonical_dir(self) -> Path:
        return self.home / AGENTS_DIRNAME / SKILLS_DIRNAME

    @property
    def global_tool_dir(self) -> Path:
        if self.global_skills_dir:
            return self.global_skills_dir
        env_dir = os.environ.get("CLAUDE_CONFIG_DIR")
        if env_dir:
            return Path(env_dir) / SKILLS_DIRNAME
        return self.home / CLAUDE_DIRNAME / SKILLS_DIRNAME

    @property
    def project_canonical_dir(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / AGENTS_DIRNAME / SKILLS_DIRNAME

    @property
    def project_tool_dir(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / CLAUDE_DIRNAME / SKILLS_DIRNAME

    @property
    def global_lock_path(self) -> Path:
        return self.home / AGENTS_DIRNAME / GLOBAL_LOCK_FILENAME

    @property
    def local_lock_path(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / LOCAL_LOCK_FILENAME

    @property
    def manifest_path(self) -> Optional[Path]:
        if self.project_root is None:
            return None
        return self.project_root / PROJECT_MANIFEST_FILENAME

    def global_dirs(self) -> List[Tuple[str, Path]]:
        """(label, path) pairs for the global location, canonical first."""
        return [
            ("global canonical", self.global_canonical_dir),
            ("global tool", self.global_tool_dir),
        ]

    def project_dirs(self) -> List[Tuple[str, Path]]:
        """(label, path) pairs for the project location, canonical first."""
        if self.project_root is None:
            return []
        return [
            ("project canonical", self.project_canonical_dir),
            ("project tool", self.project_tool_dir),
        ]

    # -- loading -----------------------------------------------------------

    @classmethod
    def from_dict(cls, data: Dict[str, Any], home: Optional[Path] = None) -> Settings:
        """Create settings from a dictionary (e.g. parsed YAML)."""
        if home is None:
            home = Path(data["home"]).expanduser() if data.get("home") else Path.home()

        def path_or_none(key: str) -> Optional[Path]:
            value = data.get(key)
            return _expand(str(value), home) if value else None

        return cls(
            home=home,
            project_root=path_or_none("project_root"),
            global_skills_dir=path_or_none("global_skills_dir"),
            default_agent=data.get("default_agent", "claude-code"),
            install_scope=data.get("install_scope", "ask"),
            cache_ttl_seconds=float(data.get("cache_ttl_seconds", CACHE_TTL_GITHUB)),
            check_updates_on_startup=bool(data.get("check_updates_on_startup", False)),
            update_check_interval_seconds=float(
                data.get("update_check_interval_seconds", 0)
            ),
            github_token=data.get("github_token"),
            http_timeout_seconds=float(data.get("http_timeout_seconds", 15.0)),
        )

    @classmethod
    def from_yaml(cls, path: Path, home: Optional[Path] = None) -> Settings:
        """Load settings from a YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping")
        return cls.from_dict(data or {}, home=home)

    @classmethod
    def load(
        cls,
        config_path: Optional[Path] = None,
        project_root: Optional[Path] = None,
        home: Optional[Path] = None,
    ) -> Settings:
        """Resolve settings from the config file and the environment."""
        home = home or Path.home()
        path = config_path or (home / AGENTS_DIRNAME / CONFIG_FILENAME)

        if path.exists():
            settings = cls.from_yaml(path, home=home)
        else:
            settings = cls(home=home)

        if project_root is not None:
            settings.project_root = project_root

        settings.apply_env(os.environ)
        return settings

    def apply_env(self, env: Dict[str, str]) -> None:
        """Apply environment variable overrides in place."""
        token = env.get("GITHUB_TOKEN")
        if token:
            self.github_token = token

        agent = env.get("SKILLS_INDEX_DEFAULT_AGENT")
        if agent:
            self.default_agent = agent

        scope = env.get("SKILLS_INDEX_INSTALL_SCOPE")
        if scope:
            if scope not in INSTALL_SCOPES:
                raise ValueError(f"SKILLS_INDEX_INSTALL_SCOPE: invalid scope {scope!r}")
            self.install_scope = scope

        ttl = env.get("SKILLS_INDEX_CACHE_TTL")
        if ttl:
            try:
                self.cache_ttl_seconds = float(ttl)
            except ValueError:
                raise ValueError(f"SKILLS_INDEX_CACHE_TTL: not a number: {ttl!r}") from None
