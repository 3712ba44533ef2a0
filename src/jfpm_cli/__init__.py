"""jfpm - run package managers against Artifactory and record build-info."""

__version__ = "0.4.0"
