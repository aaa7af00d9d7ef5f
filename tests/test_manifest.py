from __future__ import annotations

import json
from pathlib import Path

import pytest

from skills_index.manifest import (
    ManifestError,
    add_skill,
    is_skill_in_manifest,
    manifest_skill_names,
    missing_skills,
    read_manifest,
    remove_skill,
    write_manifest,
)
from skills_index.models import InstalledSkill, ManifestEntry, MissingSkill, ProjectManifest


def installed(folder: str, name: str = "") -> InstalledSkill:
    return InstalledSkill(
        name=name or folder,
        folder_name=folder,
        description="",
        path=Path("/x") / folder,
        scope="project",
    )


def test_add_skill_creates_sorted_file(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"

    add_skill(path, "vercel-labs/agent-skills", "react")
    add_skill(path, "anthropics/skills", "pdf")
    add_skill(path, "anthropics/skills", "docx")
    add_skill(path, "anthropics/skills", "pdf")

    raw = path.read_text()
    assert raw.endswith("}\n")
    assert json.loads(raw) == {
        "skills": [
            {"source": "anthropics/skills", "skills": ["docx", "pdf"]},
            {"source": "vercel-labs/agent-skills", "skills": ["react"]},
        ]
    }
    assert '\n  "skills": [\n' in raw


def test_remove_skill_drops_empty_entries(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"
    add_skill(path, "a/b", "one")
    add_skill(path, "c/d", "two")
    add_skill(path, "c/d", "three")

    remove_skill(path, "one")
    remove_skill(path, "two")

    manifest = read_manifest(path)
    assert manifest == ProjectManifest(skills=[ManifestEntry("c/d", ["three"])])
    assert remove_skill(tmp_path / "absent.json", "x") is None


def test_lookup_helpers(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"
    add_skill(path, "a/b", "one")
    add_skill(path, "c/d", "two")

    assert is_skill_in_manifest(path, "two")
    assert not is_skill_in_manifest(path, "three")
    assert manifest_skill_names(path) == {"one", "two"}
    assert manifest_skill_names(tmp_path / "absent.json") == set()
    assert not is_skill_in_manifest(None, "one")


def test_invalid_manifest_reads_as_absent(tmp_path: Path) -> None:
    path = tmp_path / "skills.json"
    path.write_text("{broken")
    assert read_manifest(path) is None

    path.write_text(json.dumps({"skills": {"not": "a list"}}))
    assert read_manifest(path) is None

    path.write_text(json.dumps({"skills": [{"source": "a/b", "skills": ["x", 3]}, "junk"]}))
    assert read_manifest(path) == ProjectManifest(skills=[ManifestEntry("a/b", ["x"])])


def test_missing_skills_matches_folder_or_display_name() -> None:
    manifest = ProjectManifest(
        skills=[
            ManifestEntry("a/b", ["by-folder", "by-name", "absent"]),
            ManifestEntry("c/d", ["also-absent"]),
        ]
    )

    missing = missing_skills(
        manifest, [installed("by-folder"), installed("folder-x", name="by-name")]
    )

    assert missing == [MissingSkill("a/b", "absent"), MissingSkill("c/d", "also-absent")]


def test_write_without_project_raises() -> None:
    with pytest.raises(ManifestError):
        write_manifest(None, ProjectManifest())


def test_write_failure_raises(tmp_path: Path) -> None:
    with pytest.raises(ManifestError):
        add_skill(tmp_path / "no-such-dir" / "skills.json", "a/b", "x")
