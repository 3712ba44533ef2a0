"""Build-info data: build coordinates, dependencies and artifacts."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..errors import ConfigInvalidError


@dataclass
class BuildConfiguration:
    """Build coordinates taken from --build-name/--build-number/--project/--module."""

    build_name: str = ""
    build_number: str = ""
    project: str = ""
    module: str = ""

    def validate(self) -> None:
        if bool(self.build_name) != bool(self.build_number):
            raise ConfigInvalidError(
                "The build-name and build-number options cannot be provided separately."
            )

    def is_collect_build_info(self) -> bool:
        return bool(self.build_name and self.build_number)

    def build_properties(self, timestamp_ms: int) -> Dict[str, str]:
        """Properties attached to uploaded artifacts so they link back to the build."""
        props = {
            "build.name": self.build_name,
            "build.number": self.build_number,
            "build.timestamp": str(timestamp_ms),
        }
        if self.project:
            props["build.project"] = self.project
        return props


@dataclass
class Checksum:
    sha1: str = ""
    md5: str = ""
    sha256: str = ""

    def is_empty(self) -> bool:
        return not (self.sha1 or self.md5 or self.sha256)

    def to_dict(self) -> Dict[str, str]:
        result = {}
        if self.sha1:
            result["sha1"] = self.sha1
        if self.sha256:
            result["sha256"] = self.sha256
        if self.md5:
            result["md5"] = self.md5
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Checksum":
        return cls(
            sha1=data.get("sha1", ""),
            md5=data.get("md5", ""),
            sha256=data.get("sha256", ""),
        )


@dataclass
class BuildDependency:
    """A dependency as it appears in a build-info module."""

    id: str
    type: str = ""
    scopes: List[str] = field(default_factory=list)
    checksum: Optional[Checksum] = None
    requested_by: List[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"id": self.id}
        if self.type:
            result["type"] = self.type
        if self.scopes:
            result["scopes"] = list(self.scopes)
        if self.checksum is not None:
            result.update(self.checksum.to_dict())
        if self.requested_by:
            result["requestedBy"] = [list(path) for path in self.requested_by]
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildDependency":
        checksum = Checksum.from_dict(data)
        return cls(
            id=data["id"],
            type=data.get("type", ""),
            scopes=list(data.get("scopes", [])),
            checksum=None if checksum.is_empty() else checksum,
            requested_by=[list(path) for path in data.get("requestedBy", [])],
        )


@dataclass
class BuildArtifact:
    """A file deployed by the build."""

    name: str
    path: str
    type: str = ""
    checksum: Checksum = field(default_factory=Checksum)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name, "path": self.path}
        if self.type:
            result["type"] = self.type
        result.update(self.checksum.to_dict())
        return result
