"""Artifactory REST access."""

from .client import ArtifactoryClient

__all__ = ["ArtifactoryClient"]
