"""Data models for jfpm."""

from .build import BuildArtifact, BuildConfiguration, BuildDependency, Checksum
from .dependency import Dependency, PackageInfo, TypeRestriction
from .server import ServerDetails

__all__ = [
    "BuildArtifact",
    "BuildConfiguration",
    "BuildDependency",
    "Checksum",
    "Dependency",
    "PackageInfo",
    "ServerDetails",
    "TypeRestriction",
]
