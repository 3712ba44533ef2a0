"""Per-project repository configuration (``.jfrog/projects/<tool>.yaml``).

Example ``npm.yaml``::

    version: 1
    type: npm
    resolver:
      serverId: acme
      repo: npm-virtual
    deployer:
      serverId: acme
      repo: npm-local
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .. import config
from ..errors import ConfigInvalidError
from ..models.server import ServerDetails

logger = logging.getLogger(__name__)

PROJECT_CONFIG_DIR = ".jfrog"
RESOLVER_PREFIX = "resolver"
DEPLOYER_PREFIX = "deployer"


@dataclass
class RepositoryReference:
    """A resolver or deployer entry of a project config file."""

    server_id: str
    repo: str = ""
    release_repo: str = ""
    snapshot_repo: str = ""

    @property
    def target_repo(self) -> str:
        return self.repo or self.release_repo


@dataclass
class RepositoryConfig:
    """A repository reference resolved against the stored server details."""

    target_repo: str
    server_details: ServerDetails


def find_project_config(tool: str, start_dir: Optional[Path] = None) -> Optional[Path]:
    """Find ``.jfrog/projects/<tool>.yaml`` in start_dir or one of its parents.

    Falls back to ``<jfpm home>/projects/<tool>.yaml``.
    """
    file_name = Path("projects") / f"{tool}.yaml"
    current = Path(start_dir or Path.cwd()).resolve()
    for directory in [current, *current.parents]:
        candidate = directory / PROJECT_CONFIG_DIR / file_name
        if candidate.is_file():
            return candidate
    home_candidate = Path(config.get_jfpm_home()) / file_name
    if home_candidate.is_file():
        return home_candidate
    return None


def load_project_config(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigInvalidError(f"Failed to parse {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigInvalidError(f"{path} must contain a YAML mapping")
    return data


def parse_repository_reference(data: Dict[str, Any], prefix: str, path: Path) -> RepositoryReference:
    """Read the resolver or deployer section of a loaded project config.

    Raises:
        ConfigInvalidError: If the section, its repository or its server id is
            missing, or if only one of releaseRepo/snapshotRepo is set.
    """
    section = data.get(prefix)
    if not isinstance(section, dict):
        raise ConfigInvalidError(f"{prefix} information is missing within {path}")

    reference = RepositoryReference(
        server_id=str(section.get("serverId") or ""),
        repo=str(section.get("repo") or ""),
        release_repo=str(section.get("releaseRepo") or ""),
        snapshot_repo=str(section.get("snapshotRepo") or ""),
    )
    if bool(reference.release_repo) != bool(reference.snapshot_repo):
        raise ConfigInvalidError(
            f"Both releaseRepo and snapshotRepo must be set for {prefix} within {path}"
        )
    if not reference.target_repo:
        raise ConfigInvalidError(f"Missing repository for {prefix} within {path}")
    if not reference.server_id:
        raise ConfigInvalidError(f"Missing server ID for {prefix} within {path}")
    return reference


def get_repository_config(tool: str, prefix: str, start_dir: Optional[Path] = None) -> RepositoryConfig:
    """Resolve the repository and server a tool should use for prefix.

    Raises:
        ConfigInvalidError: If no project config exists or it is incomplete.
    """
    path = find_project_config(tool, start_dir)
    if path is None:
        raise ConfigInvalidError(
            f"{tool} project configuration does not exist. "
            f"Create {PROJECT_CONFIG_DIR}/projects/{tool}.yaml with a {prefix} section."
        )
    logger.debug("Using project config %s", path)
    reference = parse_repository_reference(load_project_config(path), prefix, path)
    server = config.get_server(reference.server_id)
    return RepositoryConfig(target_repo=reference.target_repo, server_details=server)
