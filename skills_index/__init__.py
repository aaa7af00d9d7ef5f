"""Skills Index.

Track agent skills installed on disk, reconcile them with lock files and
their source repositories, and coordinate install/update/uninstall runs of
the external ``skills`` CLI.
"""

__version__ = "1.0.0"

from .config import Settings
from .models import (
    InstalledSkill,
    OperationOutcome,
    ScanResult,
    SkillManifest,
    UpdateCheckResponse,
    UpdateRecord,
)
from .reconciler import Reconciler
from .scanners import SkillScanner

__all__ = [
    "Settings",
    "SkillScanner",
    "Reconciler",
    "InstalledSkill",
    "SkillManifest",
    "ScanResult",
    "UpdateRecord",
    "UpdateCheckResponse",
    "OperationOutcome",
]
