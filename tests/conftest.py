"""Shared pytest fixtures for skills-index tests."""

import json
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from skills_index.config import Settings

ENV_VARS = (
    "CLAUDE_CONFIG_DIR",
    "GITHUB_TOKEN",
    "SKILLS_INDEX_DEFAULT_AGENT",
    "SKILLS_INDEX_INSTALL_SCOPE",
    "SKILLS_INDEX_CACHE_TTL",
)


@pytest.fixture
def home(tmp_path: Path, monkeypatch) -> Path:
    """Create a fake home directory and isolate the environment."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    root = tmp_path / "project"
    root.mkdir()
    return root


@pytest.fixture
def settings(home: Path, project_root: Path) -> Settings:
    return Settings(home=home, project_root=project_root)


@pytest.fixture
def make_skill() -> Callable[..., Path]:
    """Create ``<directory>/<folder>/SKILL.md`` and return the skill directory."""

    def _make(
        directory: Path,
        folder: str,
        name: Optional[str] = None,
        description: str = "A skill for testing",
        extra: str = "",
    ) -> Path:
        skill_dir = directory / folder
        skill_dir.mkdir(parents=True, exist_ok=True)
        (skill_dir / "SKILL.md").write_text(
            f"""---
name: {name or folder}
description: {description}
{extra}---

# {name or folder}
"""
        )
        return skill_dir

    return _make


@pytest.fixture
def write_lock() -> Callable[[Path, Dict[str, Dict]], Path]:
    """Write a lock file with the given ``skills`` mapping."""

    def _write(path: Path, skills: Dict[str, Dict], version: int = 3) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"version": version, "skills": skills}, indent=2))
        return path

    return _write
