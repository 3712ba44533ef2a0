"""npm dependency graph entries and package identity."""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..errors import ConfigInvalidError
from .build import BuildDependency, Checksum


class TypeRestriction(Enum):
    """Which dependency types npm installs, derived from its config."""

    DEFAULT = "default"
    ALL = "all"
    DEV_ONLY = "dev-only"
    PROD_ONLY = "prod-only"


@dataclass
class Dependency:
    """A resolved npm dependency.

    Attributes:
        name: Package name, including the scope for scoped packages
        version: Exact resolved version
        scopes: Dependency scopes it was seen in ("dev", "prod")
        path_to_root: Every chain of parent keys leading to the build module,
            innermost parent first. The same chain may appear more than once.
        file_type: Tarball extension once the checksum is known
        checksum: Checksums once reconciled against Artifactory
    """

    name: str
    version: str
    scopes: List[str] = field(default_factory=list)
    path_to_root: List[List[str]] = field(default_factory=list)
    file_type: str = ""
    checksum: Optional[Checksum] = None

    @property
    def key(self) -> str:
        return f"{self.name}:{self.version}"

    def add_scope(self, scope: str) -> None:
        if scope not in self.scopes:
            self.scopes.append(scope)

    def to_build_dependency(self) -> BuildDependency:
        return BuildDependency(
            id=self.key,
            type=self.file_type,
            scopes=list(self.scopes),
            checksum=self.checksum,
            requested_by=[list(path) for path in self.path_to_root],
        )


@dataclass
class PackageInfo:
    """Package identity read from package.json."""

    name: str
    version: str
    scope: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any], strip_version_prefix: bool = True) -> "PackageInfo":
        """Build identity from parsed package.json content.

        A scoped name "@scope/name" is split into scope and name. Older npm
        versions accept a leading "v" or "=" on the version, which is removed
        when strip_version_prefix is set.
        """
        full_name = data.get("name")
        version = data.get("version")
        if not full_name or not version:
            raise ConfigInvalidError("package.json must define both 'name' and 'version'")
        scope = ""
        name = full_name
        if full_name.startswith("@") and "/" in full_name:
            scope, name = full_name.split("/", 1)
        if strip_version_prefix:
            if version.startswith("v"):
                version = version[1:]
            if version.startswith("="):
                version = version[1:]
        return cls(name=name, version=version, scope=scope)

    @classmethod
    def from_json_bytes(cls, content: bytes, strip_version_prefix: bool = True) -> "PackageInfo":
        try:
            data = json.loads(content)
        except ValueError as e:
            raise ConfigInvalidError(f"Invalid package.json: {e}")
        if not isinstance(data, dict):
            raise ConfigInvalidError("Invalid package.json: expected a JSON object")
        return cls.from_dict(data, strip_version_prefix)

    @classmethod
    def from_directory(cls, directory: Path, strip_version_prefix: bool = True) -> "PackageInfo":
        package_json = Path(directory) / "package.json"
        if not package_json.exists():
            raise ConfigInvalidError(f"package.json not found in {directory}")
        return cls.from_json_bytes(package_json.read_bytes(), strip_version_prefix)

    @property
    def full_name(self) -> str:
        if self.scope:
            return f"{self.scope}/{self.name}"
        return self.name

    def module_id(self) -> str:
        """Build-info module id: [scope/]name:version."""
        return f"{self.full_name}:{self.version}"

    def deploy_path(self) -> str:
        """Path of the tarball inside an npm repository."""
        return f"{self.full_name}/-/{self.name}-{self.version}.tgz"

    def expected_tarball_name(self) -> str:
        """File name `npm pack` produces, e.g. "jfrog-pkg-1.0.0.tgz" for "@jfrog/pkg"."""
        prefix = f"{self.scope[1:]}-" if self.scope else ""
        return f"{prefix}{self.name}-{self.version}.tgz"
