"""Version parsing and minimum-version gates."""

import re
from typing import Optional, Tuple

from ..errors import UnsupportedToolError, UnsupportedVersionError

MIN_NPM_VERSION = "5.4.0"
MIN_ARTIFACTORY_VERSION_FOR_NPM = "5.5.2"
NPM_PACK_DESTINATION_MIN_VERSION = "7.18.0"
NPM_SCOPED_AUTH_ENV_MIN_VERSION = "9.3.1"
NPM_STRICT_VERSION_MIN_VERSION = "7.0.0"
MIN_ARTIFACTORY_VERSION_FOR_MERGE = "7.0.0"
MIN_ARTIFACTORY_VERSION_FOR_PROJECTS = "7.0.0"

_VERSION_RE = re.compile(r"^v?(\d+)(?:\.(\d+))?(?:\.(\d+))?(?:[-+.]?(.*))?$")


def parse_version(version: str) -> Optional[Tuple[int, int, int, str]]:
    """Parse a dotted version string.

    Missing minor or patch parts count as zero, so "7" parses like "7.0.0".

    Args:
        version: Version such as "9.8.1", "v7.18.0" or "7.0.0-rc.1".

    Returns:
        Tuple (major, minor, patch, suffix) or None if the string is not a version.
    """
    if not version:
        return None
    match = _VERSION_RE.match(version.strip())
    if not match:
        return None
    major, minor, patch, suffix = match.groups()
    return int(major), int(minor or 0), int(patch or 0), suffix or ""


def compare_versions(first: str, second: str) -> int:
    """Return -1, 0 or 1 as first is lower than, equal to or higher than second.

    A release sorts after any of its pre-releases. Unparseable versions sort
    lowest.
    """
    a = parse_version(first)
    b = parse_version(second)
    if a is None or b is None:
        if a is None and b is None:
            return 0
        return -1 if a is None else 1
    if a[:3] != b[:3]:
        return -1 if a[:3] < b[:3] else 1
    if a[3] == b[3]:
        return 0
    if not a[3]:
        return 1
    if not b[3]:
        return -1
    return -1 if a[3] < b[3] else 1


def is_version_at_least(version: str, minimum: str) -> bool:
    return compare_versions(version, minimum) >= 0


def validate_npm_version(npm_version: str, command: str) -> None:
    if not is_version_at_least(npm_version, MIN_NPM_VERSION):
        raise UnsupportedToolError(
            f"jfpm npm {command} requires npm client version {MIN_NPM_VERSION} or higher "
            f"(found {npm_version})"
        )


def validate_server_version(product: str, server_version: str, minimum: str) -> None:
    if not is_version_at_least(server_version, minimum):
        raise UnsupportedVersionError(
            f"This operation requires {product} version {minimum} or higher "
            f"(found {server_version})"
        )
