"""JSON Exporter - Structured export for skill scans and update checks"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Union

from ..models import InstalledSkill, ScanDiagnostic, ScanResult, UpdateCheckResponse


class JSONExporter:
    """Export scan results and update status as structured JSON"""

    def __init__(self, pretty: bool = True, include_metadata: bool = False):
        self.pretty = pretty
        self.include_metadata = include_metadata

    def export_scan_result(self, result: ScanResult) -> str:
        """Export full scan result to JSON"""
        all_skills = result.all_skills
        data = {
            "version": "1.0.0",
            "generated_at": datetime.now().isoformat(),
            "summary": {
                "total_skills": result.total_count,
                "global": len(result.global_skills),
                "project": len(result.project_skills),
                "tracked": sum(1 for s in all_skills if s.classification == "tracked"),
                "custom": sum(1 for s in all_skills if s.classification == "custom"),
                "untracked": sum(1 for s in all_skills if s.classification == "untracked"),
            },
            "skills": {
                "global": [self._serialize_skill(s) for s in result.global_skills],
                "project": [self._serialize_skill(s) for s in result.project_skills],
            },
            "errors": result.errors,
        }

        return self._to_json(data)

    def export_update_response(self, response: UpdateCheckResponse) -> str:
        """Export an update check result to JSON"""
        data = {
            "version": "1.0.0",
            "generated_at": datetime.now().isoformat(),
            "count": len(response.updates),
            "updates": [
                {"name": u.name, "source": u.source, "new_hash": u.new_hash}
                for u in response.updates
            ],
            "errors": list(response.errors),
        }

        return self._to_json(data)

    def export_diagnostic(self, diagnostic: ScanDiagnostic) -> str:
        data = {
            "directories": [
                {
                    "label": d.label,
                    "path": str(d.path),
                    "exists": d.exists,
                    "subdir_count": d.subdir_count,
                    "valid_skill_count": d.valid_skill_count,
                }
                for d in diagnostic.directories
            ],
            "project_paths": [str(p) for p in diagnostic.project_paths],
            "issues": diagnostic.issues,
        }

        return self._to_json(data)

    def export_to_file(
        self, result: Union[ScanResult, UpdateCheckResponse], output_path: Path
    ):
        """Export to a JSON file"""
        if isinstance(result, ScanResult):
            json_str = self.export_scan_result(result)
        else:
            json_str = self.export_update_response(result)

        with open(output_path, "w") as f:
            f.write(json_str)

    def _serialize_skill(self, skill: InstalledSkill) -> Dict[str, Any]:
        """Serialize a skill to a dictionary"""
        data = {
            "name": skill.name,
            "folder_name": skill.folder_name,
            "scope": skill.scope,
            "classification": skill.classification,
            "path": str(skill.path),
            "is_symlink": skill.is_symlink,
        }

        if skill.description:
            data["description"] = skill.description

        # Provenance fields only exist for tracked skills
        if skill.source:
            data["source"] = skill.source

        if skill.hash:
            data["hash"] = skill.hash

        if skill.skill_path:
            data["skill_path"] = skill.skill_path

        if skill.lock_origin:
            data["lock_origin"] = skill.lock_origin

        if self.include_metadata and skill.metadata:
            data["metadata"] = skill.metadata

        return data

    def _to_json(self, data: Dict[str, Any]) -> str:
        """Convert to JSON string"""
        if self.pretty:
            return json.dumps(data, indent=2, default=str)
        return json.dumps(data, default=str)
