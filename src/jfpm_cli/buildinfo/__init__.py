"""Build-info recording."""

from .partials import BuildInfoRecorder

__all__ = ["BuildInfoRecorder"]
