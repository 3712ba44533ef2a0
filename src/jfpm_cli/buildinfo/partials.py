"""Partial build-info records on disk.

Each module gets one JSON file under
``<jfpm home>/builds/<buildName>_<buildNumber>/partials/``. Writing the same
module again merges into the existing record, so an install and a publish
of one package end up in the same module.
"""

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from .. import config
from ..models.build import BuildArtifact, BuildConfiguration, BuildDependency

logger = logging.getLogger(__name__)

NPM_MODULE_TYPE = "npm"
TERRAFORM_MODULE_TYPE = "terraform"


def _safe_file_name(module_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]", "_", module_id)


class BuildInfoRecorder:
    """Writes partial build-info modules for one build.

    Args:
        build_config: Build coordinates; must have a name and number.
        builds_dir: Root directory of all builds; defaults to the jfpm home.
    """

    def __init__(self, build_config: BuildConfiguration, builds_dir: Optional[Path] = None):
        self.build_config = build_config
        self.builds_dir = Path(builds_dir or config.get_builds_dir())

    @property
    def build_dir(self) -> Path:
        name = f"{self.build_config.build_name}_{self.build_config.build_number}"
        if self.build_config.project:
            name = f"{name}_{self.build_config.project}"
        return self.builds_dir / _safe_file_name(name)

    @property
    def partials_dir(self) -> Path:
        return self.build_dir / "partials"

    def partial_path(self, module_id: str) -> Path:
        return self.partials_dir / f"{_safe_file_name(module_id)}.json"

    def _write(self, module_id: str, module_type: str, updates: Dict[str, Any]) -> Path:
        path = self.partial_path(module_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        record: Dict[str, Any] = {}
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        record.update(
            {
                "buildName": self.build_config.build_name,
                "buildNumber": self.build_config.build_number,
                "moduleId": module_id,
                "moduleType": module_type,
                "timestamp": int(time.time() * 1000),
            }
        )
        if self.build_config.project:
            record["project"] = self.build_config.project
        for key, value in updates.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = value
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, indent=2)
        logger.debug("Saved build-info partial %s", path)
        return path

    def save_dependencies(
        self,
        module_id: str,
        dependencies: List[BuildDependency],
        missing: Optional[List[BuildDependency]] = None,
        module_type: str = NPM_MODULE_TYPE,
    ) -> Path:
        updates: Dict[str, Any] = {
            "dependencies": [d.to_dict() for d in dependencies],
            "missingDependencies": [d.to_dict() for d in missing] if missing else None,
        }
        return self._write(module_id, module_type, updates)

    def save_artifacts(
        self,
        module_id: str,
        artifacts: List[BuildArtifact],
        module_type: str = NPM_MODULE_TYPE,
    ) -> Path:
        path = self.partial_path(module_id)
        existing: List[Dict[str, Any]] = []
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                existing = json.load(f).get("artifacts", [])
        paths = {a.path for a in artifacts}
        merged = [a for a in existing if a.get("path") not in paths]
        merged.extend(a.to_dict() for a in artifacts)
        return self._write(module_id, module_type, {"artifacts": merged})

    def load_partials(self) -> List[Dict[str, Any]]:
        """Return every partial record of the build, sorted by module id."""
        if not self.partials_dir.is_dir():
            return []
        records = []
        for path in sorted(self.partials_dir.glob("*.json")):
            with open(path, "r", encoding="utf-8") as f:
                records.append(json.load(f))
        return records
