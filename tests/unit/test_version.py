"""Tests for version parsing and gating."""

import pytest

from jfpm_cli.errors import UnsupportedToolError, UnsupportedVersionError
from jfpm_cli.utils.version import (
    compare_versions,
    is_version_at_least,
    parse_version,
    validate_npm_version,
    validate_server_version,
)


class TestParseVersion:
    """Test parse_version."""

    def test_full_version(self):
        assert parse_version("9.8.1") == (9, 8, 1, "")

    def test_leading_v_and_missing_parts(self):
        assert parse_version("v7") == (7, 0, 0, "")

    def test_prerelease(self):
        assert parse_version("7.0.0-rc.1") == (7, 0, 0, "rc.1")

    def test_invalid(self):
        assert parse_version("") is None
        assert parse_version("latest") is None


class TestCompareVersions:
    """Test numeric comparison."""

    @pytest.mark.parametrize(
        "first,second,expected",
        [
            ("7.18.0", "7.9.0", 1),
            ("5.4.0", "5.4", 0),
            ("9.3.0", "9.3.1", -1),
            ("7.0.0-rc.1", "7.0.0", -1),
            ("garbage", "1.0.0", -1),
        ],
    )
    def test_compare(self, first, second, expected):
        assert compare_versions(first, second) == expected

    def test_at_least(self):
        assert is_version_at_least("9.3.1", "9.3.1")
        assert not is_version_at_least("5.3.9", "5.4.0")


class TestValidation:
    """Test the minimum version gates."""

    def test_old_npm_is_rejected(self):
        with pytest.raises(UnsupportedToolError, match="5.4.0"):
            validate_npm_version("5.3.0", "install")

    def test_supported_npm(self):
        validate_npm_version("10.2.4", "install")

    def test_old_server_is_rejected(self):
        with pytest.raises(UnsupportedVersionError, match="Artifactory version 7.0.0"):
            validate_server_version("Artifactory", "6.23.21", "7.0.0")
