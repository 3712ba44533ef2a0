"""Tests for the temporary project .npmrc."""

import os
from unittest.mock import MagicMock

import pytest

from jfpm_cli.errors import CompoundError, ConfigInvalidError, ToolFailedError
from jfpm_cli.models.dependency import TypeRestriction
from jfpm_cli.models.server import ServerDetails
from jfpm_cli.npm.temprc import (
    NPMRC_BACKUP_FILE_NAME,
    NPMRC_FILE_NAME,
    TempRcOrchestrator,
    auth_env_vars,
    is_valid_key,
)

REGISTRY = "http://goodRegistry"
SCOPED_TOKEN_ENV = "npm_config_//goodRegistry:_authToken"

CONFIG_LIST = "\n".join(
    [
        "json=true",
        "user-agent=npm/9.8.1 node/v20.5.0 linux x64",
        "metrics-registry=http://bad",
        "@jfrog:registry=http://bad",
        "registry=http://bad",
        "email=x@y",
        "allow-same-version=false",
        "cache-lock-retries=10",
        "//bad/:_authToken=secret",
        "; userconfig /home/u/.npmrc",
    ]
)


def make_driver(config_text=CONFIG_LIST, version="9.8.1"):
    driver = MagicMock()
    driver.config_list.return_value = config_text
    driver.version.return_value = version
    return driver


def make_orchestrator(tmp_path, server, driver=None, **kwargs):
    return TempRcOrchestrator(driver or make_driver(), tmp_path, REGISTRY, server, **kwargs)


class TestPrepareConfigData:
    """Test the filtering of `npm config list` output."""

    def test_rewrite(self, tmp_path, token_server):
        data = make_orchestrator(tmp_path, token_server).prepare_config_data(CONFIG_LIST)
        lines = data.splitlines()
        assert "registry = http://goodRegistry" in lines
        assert "@jfrog:registry = http://goodRegistry" in lines
        assert "json = true" in lines
        assert "user-agent=npm/9.8.1 node/v20.5.0 linux x64" in lines
        assert "email=x@y" in lines
        assert "allow-same-version=false" in lines
        assert "cache-lock-retries=10" in lines
        assert not any(line.startswith("metrics-registry") for line in lines)
        assert not any(line.startswith("//") for line in lines)
        assert not any("http://bad" in line for line in lines)
        assert not any(line.startswith(";") for line in lines)
        assert data.endswith("\n")

    def test_json_false(self, tmp_path, token_server):
        data = make_orchestrator(tmp_path, token_server, json_output=False).prepare_config_data("")
        assert data.splitlines() == ["json = false", "registry = http://goodRegistry"]

    def test_array_values_are_expanded(self, tmp_path, token_server):
        data = make_orchestrator(tmp_path, token_server).prepare_config_data(
            'omit=["dev","optional"]\nca=[]'
        )
        lines = data.splitlines()
        assert 'omit[] = "dev"' in lines
        assert 'omit[] = "optional"' in lines
        assert not any(line.startswith("ca") for line in lines)

    def test_package_scope_registry_added(self, tmp_path, token_server):
        data = make_orchestrator(tmp_path, token_server, package_scope="@acme").prepare_config_data("")
        assert "@acme:registry = http://goodRegistry" in data.splitlines()

    def test_package_scope_not_duplicated(self, tmp_path, token_server):
        data = make_orchestrator(tmp_path, token_server, package_scope="@jfrog").prepare_config_data(
            CONFIG_LIST
        )
        assert data.count("@jfrog:registry") == 1

    @pytest.mark.parametrize(
        "config_text,expected",
        [
            ("omit=dev", TypeRestriction.PROD_ONLY),
            ("omit=optional", TypeRestriction.ALL),
            ("only=prod", TypeRestriction.PROD_ONLY),
            ("only=dev", TypeRestriction.DEV_ONLY),
            ("production=true", TypeRestriction.PROD_ONLY),
            ("only=dev\nomit=dev", TypeRestriction.PROD_ONLY),
            ("production=true\nonly=dev", TypeRestriction.PROD_ONLY),
            ("email=x@y", TypeRestriction.DEFAULT),
        ],
    )
    def test_type_restriction(self, tmp_path, token_server, config_text, expected):
        orchestrator = make_orchestrator(tmp_path, token_server)
        orchestrator.prepare_config_data(config_text)
        assert orchestrator.type_restriction is expected

    def test_reserved_keys(self):
        assert not is_valid_key("registry")
        assert not is_valid_key("json")
        assert not is_valid_key("//host/:_auth")
        assert is_valid_key("registry-retries")


class TestAuthEnv:
    """Test how credentials reach npm."""

    def test_scoped_token_for_new_npm(self, token_server):
        assert auth_env_vars(token_server, REGISTRY, "9.3.1") == {SCOPED_TOKEN_ENV: "test-token"}

    def test_legacy_token_for_old_npm(self, token_server):
        assert auth_env_vars(token_server, REGISTRY, "8.19.0") == {"npm_config__authToken": "test-token"}

    def test_basic(self, basic_server):
        assert auth_env_vars(basic_server, REGISTRY, "10.0.0") == {
            "npm_config_//goodRegistry:_auth": "bXlVc2VyOm15UGFzc3dvcmQ="
        }

    def test_anonymous(self):
        assert auth_env_vars(ServerDetails("s", "https://x/artifactory"), REGISTRY, "10.0.0") == {}


class TestLifecycle:
    """Test backup, rewrite and restore around a command."""

    def test_restores_existing_rc_bytes(self, tmp_path, token_server, monkeypatch):
        monkeypatch.delenv(SCOPED_TOKEN_ENV, raising=False)
        original = b"registry=https://registry.npmjs.org/\r\n# keep me\nemail=me@x\n"
        npmrc = tmp_path / NPMRC_FILE_NAME
        npmrc.write_bytes(original)

        with make_orchestrator(tmp_path, token_server):
            assert "registry = http://goodRegistry" in npmrc.read_text()
            assert (tmp_path / NPMRC_BACKUP_FILE_NAME).exists()
            assert os.environ[SCOPED_TOKEN_ENV] == "test-token"

        assert npmrc.read_bytes() == original
        assert not (tmp_path / NPMRC_BACKUP_FILE_NAME).exists()
        assert SCOPED_TOKEN_ENV not in os.environ

    def test_removes_rc_when_none_existed(self, tmp_path, token_server):
        with make_orchestrator(tmp_path, token_server):
            assert (tmp_path / NPMRC_FILE_NAME).exists()
        assert not (tmp_path / NPMRC_FILE_NAME).exists()

    def test_stale_backup_without_rc_is_discarded(self, tmp_path, token_server):
        (tmp_path / NPMRC_BACKUP_FILE_NAME).write_text("stale=1\n")
        with make_orchestrator(tmp_path, token_server):
            assert not (tmp_path / NPMRC_BACKUP_FILE_NAME).exists()
        assert not (tmp_path / NPMRC_FILE_NAME).exists()
        assert not (tmp_path / NPMRC_BACKUP_FILE_NAME).exists()

    def test_stale_backup_is_overwritten_by_current_rc(self, tmp_path, token_server):
        (tmp_path / NPMRC_BACKUP_FILE_NAME).write_text("stale=1\n")
        (tmp_path / NPMRC_FILE_NAME).write_text("email=me@x\n")
        with make_orchestrator(tmp_path, token_server):
            pass
        assert (tmp_path / NPMRC_FILE_NAME).read_text() == "email=me@x\n"
        assert not (tmp_path / NPMRC_BACKUP_FILE_NAME).exists()

    def test_rc_is_private(self, tmp_path, token_server):
        with make_orchestrator(tmp_path, token_server):
            mode = os.stat(tmp_path / NPMRC_FILE_NAME).st_mode & 0o777
        assert mode == 0o600

    def test_secret_not_written_to_disk(self, tmp_path, token_server):
        with make_orchestrator(tmp_path, token_server):
            assert "test-token" not in (tmp_path / NPMRC_FILE_NAME).read_text()

    def test_restores_previous_env_value(self, tmp_path, token_server, monkeypatch):
        monkeypatch.setenv(SCOPED_TOKEN_ENV, "outer")
        with make_orchestrator(tmp_path, token_server):
            assert os.environ[SCOPED_TOKEN_ENV] == "test-token"
        assert os.environ[SCOPED_TOKEN_ENV] == "outer"

    def test_restores_after_command_failure(self, tmp_path, token_server):
        npmrc = tmp_path / NPMRC_FILE_NAME
        npmrc.write_text("email=me@x\n")
        with pytest.raises(ToolFailedError):
            with make_orchestrator(tmp_path, token_server):
                raise ToolFailedError("npm install", 1)
        assert npmrc.read_text() == "email=me@x\n"
        assert SCOPED_TOKEN_ENV not in os.environ

    def test_restore_failure_after_success(self, tmp_path, token_server, monkeypatch):
        orchestrator = make_orchestrator(tmp_path, token_server)

        def broken_replace(src, dst):
            raise OSError("disk full")

        (tmp_path / NPMRC_FILE_NAME).write_text("email=me@x\n")
        with pytest.raises(ConfigInvalidError, match="Error occurred while restoring project .npmrc file"):
            with orchestrator:
                monkeypatch.setattr("jfpm_cli.npm.temprc.os.replace", broken_replace)

    def test_restore_failure_after_command_failure(self, tmp_path, token_server, monkeypatch):
        orchestrator = make_orchestrator(tmp_path, token_server)

        def broken_replace(src, dst):
            raise OSError("disk full")

        (tmp_path / NPMRC_FILE_NAME).write_text("email=me@x\n")
        with pytest.raises(CompoundError) as exc_info:
            with orchestrator:
                monkeypatch.setattr("jfpm_cli.npm.temprc.os.replace", broken_replace)
                raise ToolFailedError("npm ci", 2)
        assert isinstance(exc_info.value.errors[0], ToolFailedError)
        assert isinstance(exc_info.value.errors[1], ConfigInvalidError)
        assert exc_info.value.exit_code == 2
