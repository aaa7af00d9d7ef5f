"""Project `skills.json` - the skills a project wants installed.

Format::

    {
      "skills": [
        {"source": "owner/repo", "skills": ["folder-a", "folder-b"]}
      ]
    }

A missing or malformed file reads as None. Writes use 2-space indentation
and a trailing newline; entries are kept sorted by source and skill lists
sorted alphabetically.
"""

import json
from pathlib import Path
from typing import Iterable, List, Optional, Set

from .logging import get_logger
from .models import InstalledSkill, ManifestEntry, MissingSkill, ProjectManifest

logger = get_logger(__name__)


class ManifestError(RuntimeError):
    """Raised when `skills.json` cannot be written."""


def read_manifest(path: Optional[Path]) -> Optional[ProjectManifest]:
    if path is None or not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        logger.debug("[manifest] unreadable %s: %s", path, e)
        return None

    if not isinstance(data, dict) or not isinstance(data.get("skills"), list):
        return None

    entries = []
    for raw in data["skills"]:
        if not isinstance(raw, dict) or not isinstance(raw.get("source"), str):
            continue
        skills = [s for s in raw.get("skills") or [] if isinstance(s, str)]
        entries.append(ManifestEntry(source=raw["source"], skills=skills))
    return ProjectManifest(skills=entries)


def _to_dict(manifest: ProjectManifest) -> dict:
    return {
        "skills": [
            {"source": entry.source, "skills": list(entry.skills)}
            for entry in manifest.skills
        ]
    }


def write_manifest(path: Optional[Path], manifest: ProjectManifest) -> None:
    if path is None:
        raise ManifestError("No project open: cannot write skills.json")
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(json.dumps(_to_dict(manifest), indent=2) + "\n")
    except OSError as e:
        raise ManifestError(f"Failed to write {path}: {e}") from e


def add_skill(path: Optional[Path], source: str, skill_name: str) -> ProjectManifest:
    """Add a skill, creating the file when needed."""
    manifest = read_manifest(path) or ProjectManifest()

    entry = next((e for e in manifest.skills if e.source == source), None)
    if entry is None:
        entry = ManifestEntry(source=source)
        manifest.skills.append(entry)

    if skill_name not in entry.skills:
        entry.skills.append(skill_name)
        entry.skills.sort()

    manifest.skills.sort(key=lambda e: e.source.lower())

    write_manifest(path, manifest)
    logger.info('[manifest] added "%s" from %s', skill_name, source)
    return manifest


def remove_skill(path: Optional[Path], skill_name: str) -> Optional[ProjectManifest]:
    """Remove a skill by folder name; sources left empty are dropped."""
    manifest = read_manifest(path)
    if manifest is None:
        return None

    for entry in manifest.skills:
        if skill_name in entry.skills:
            entry.skills.remove(skill_name)
    manifest.skills = [e for e in manifest.skills if e.skills]

    write_manifest(path, manifest)
    logger.info('[manifest] removed "%s"', skill_name)
    return manifest


def is_skill_in_manifest(path: Optional[Path], skill_name: str) -> bool:
    manifest = read_manifest(path)
    if manifest is None:
        return False
    return any(skill_name in entry.skills for entry in manifest.skills)


def manifest_skill_names(path: Optional[Path]) -> Set[str]:
    manifest = read_manifest(path)
    if manifest is None:
        return set()
    return {skill for entry in manifest.skills for skill in entry.skills}


def missing_skills(
    manifest: ProjectManifest, installed: Iterable[InstalledSkill]
) -> List[MissingSkill]:
    """Skills listed in the manifest that are not installed.

    A listed name counts as installed when it matches either the folder name
    or the display name of an installed skill.
    """
    installed_names: Set[str] = set()
    for skill in installed:
        installed_names.add(skill.folder_name)
        installed_names.add(skill.name)

    return [
        MissingSkill(source=entry.source, skill_name=skill_name)
        for entry in manifest.skills
        for skill_name in entry.skills
        if skill_name not in installed_names
    ]
