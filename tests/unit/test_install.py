"""Tests for `jfpm npm install` / `ci` and passthrough commands."""

import json
from unittest.mock import MagicMock

import pytest

from jfpm_cli.errors import RepoNotFoundError, ToolFailedError, UnsupportedToolError
from jfpm_cli.npm.install import NpmInstallOrCiCommand, NpmNativeCommand, split_flags
from jfpm_cli.npm.temprc import NPMRC_FILE_NAME
from jfpm_cli.utils.project_config import RepositoryConfig

LS_OUTPUT = {
    "dev": {"dependencies": {"jest": {"version": "29.0.0"}}},
    "prod": {"dependencies": {"lodash": {"version": "4.17.21"}}},
}


def make_driver(npm_version="9.8.1"):
    driver = MagicMock()
    driver.version.return_value = npm_version
    driver.config_get.return_value = "true"
    driver.config_list.return_value = "email=me@x"

    def capture_lenient(args, cwd=None):
        scope = "dev" if "--dev" in args else "prod"
        return json.dumps(LS_OUTPUT[scope]), "", 0

    driver.capture_lenient.side_effect = capture_lenient
    return driver


def make_client():
    client = MagicMock()
    client.get_version.return_value = "7.55.0"
    client.repository_exists.return_value = True
    client.get_build_info.return_value = None
    client.aql.side_effect = lambda query: (
        {"results": [{"name": "lodash-4.17.21.tgz", "actual_sha1": "s1"}]}
        if "lodash" in query
        else {"results": []}
    )
    return client


class TestNpmInstallOrCiCommand:
    """Test the install flow with npm and Artifactory mocked out."""

    def setup_method(self):
        self.driver = make_driver()
        self.client = make_client()

    def make_command(self, tmp_path, server, args, command="install"):
        (tmp_path / "package.json").write_text(json.dumps({"name": "my-app", "version": "1.0.0"}))
        cmd = NpmInstallOrCiCommand(
            command,
            args,
            RepositoryConfig("npm-virtual", server),
            working_dir=tmp_path,
            driver=self.driver,
            client=self.client,
        )
        cmd.recorder = MagicMock()
        return cmd

    def test_plain_install(self, tmp_path, token_server):
        result = self.make_command(tmp_path, token_server, ["--legacy-peer-deps"]).run()

        assert not result.build_info_collected
        self.driver.run.assert_called_once_with(["install"], cwd=tmp_path)
        self.driver.capture_lenient.assert_not_called()
        assert not (tmp_path / NPMRC_FILE_NAME).exists()

    def test_temp_rc_present_during_command(self, tmp_path, token_server):
        seen = {}

        def run(args, cwd=None):
            seen["rc"] = (tmp_path / NPMRC_FILE_NAME).read_text()

        self.driver.run.side_effect = run
        self.make_command(tmp_path, token_server, []).run()
        assert "registry = https://acme.jfrog.io/artifactory/api/npm/npm-virtual" in seen["rc"]

    def test_install_with_build_info(self, tmp_path, token_server):
        cmd = self.make_command(
            tmp_path, token_server, ["--build-name=b", "--build-number=1", "--threads=2"], command="ci"
        )
        result = cmd.run()

        self.driver.run.assert_called_once_with(["ci"], cwd=tmp_path)
        assert result.build_info_collected
        assert result.module_id == "my-app:1.0.0"
        assert [d.key for d in result.resolved] == ["lodash:4.17.21"]
        assert [d.key for d in result.missing] == ["jest:29.0.0"]
        module_id, resolved, missing = cmd.recorder.save_dependencies.call_args.args
        assert module_id == "my-app:1.0.0"
        assert resolved[0].to_dict()["sha1"] == "s1"
        assert missing[0].id == "jest:29.0.0"

    def test_module_override(self, tmp_path, token_server):
        result = self.make_command(
            tmp_path, token_server, ["--build-name=b", "--build-number=1", "--module=custom"]
        ).run()
        assert result.module_id == "custom"

    def test_positional_args_skip_build_info(self, tmp_path, token_server):
        result = self.make_command(
            tmp_path, token_server, ["lodash", "--build-name=b", "--build-number=1"]
        ).run()
        self.driver.run.assert_called_once_with(["install", "lodash"], cwd=tmp_path)
        assert not result.build_info_collected

    def test_missing_repository(self, tmp_path, token_server):
        self.client.repository_exists.return_value = False
        with pytest.raises(RepoNotFoundError):
            self.make_command(tmp_path, token_server, []).run()
        self.driver.run.assert_not_called()

    def test_old_npm(self, tmp_path, token_server):
        self.driver.version.return_value = "5.3.0"
        with pytest.raises(UnsupportedToolError):
            self.make_command(tmp_path, token_server, []).run()

    def test_npm_failure_restores_rc(self, tmp_path, token_server):
        (tmp_path / NPMRC_FILE_NAME).write_text("email=me@x\n")
        self.driver.run.side_effect = ToolFailedError("npm install", 1)
        with pytest.raises(ToolFailedError):
            self.make_command(tmp_path, token_server, []).run()
        assert (tmp_path / NPMRC_FILE_NAME).read_text() == "email=me@x\n"


class TestNpmNativeCommand:
    def test_passes_all_args(self, tmp_path, token_server):
        driver = make_driver()
        NpmNativeCommand(
            "outdated",
            ["--json", "lodash"],
            RepositoryConfig("npm-virtual", token_server),
            working_dir=tmp_path,
            driver=driver,
            client=make_client(),
        ).run()
        driver.run.assert_called_once_with(["outdated", "--json", "lodash"], cwd=tmp_path)


def test_split_flags():
    assert split_flags(["a", "--x", "-y", "b"]) == ["a", "b"]
