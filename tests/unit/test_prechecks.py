"""Tests for `jfpm rt transfer-prechecks`."""

from unittest.mock import MagicMock

import pytest

from jfpm_cli.errors import AuthFailedError, SameServerError, UnsupportedVersionError
from jfpm_cli.models.server import ServerDetails
from jfpm_cli.transfer.prechecks import DEFAULT_CREDENTIALS_CHECK_NAME, TransferPreChecksCommand
from jfpm_cli.transfer.remote_url_check import REMOTE_URL_CHECK_NAME

SOURCE = ServerDetails("src", "https://source.example.com/artifactory", access_token="s-token")
TARGET = ServerDetails("tgt", "https://target.example.com/artifactory", access_token="t-token")


def make_source_client(repos=()):
    client = MagicMock()
    client.get_version.return_value = "7.55.0"
    client.get_locked_users.return_value = []
    client.deactivate_key_encryption.return_value = True
    client.list_repositories.return_value = [{"key": r["key"], "type": r["type"]} for r in repos]
    by_key = {r["key"]: r for r in repos}
    client.get_repository.side_effect = lambda key: dict(by_key[key])
    return client


class PreChecks(TransferPreChecksCommand):
    """Command whose admin probe uses a mock client."""

    admin = None

    def admin_client(self, server):
        self.admin_server = server
        return self.admin


class TestTransferPreChecks:
    def setup_method(self):
        self.target_client = MagicMock()
        self.target_client.url = "https://target.example.com/artifactory/"

    def make_command(self, source_client, admin_accepted=False, **kwargs):
        cmd = PreChecks(
            SOURCE, TARGET, source_client=source_client, target_client=self.target_client, **kwargs
        )
        cmd.admin = MagicMock()
        if not admin_accepted:
            cmd.admin.ping.side_effect = AuthFailedError("401")
        return cmd

    def test_default_credentials_rejected(self):
        source_client = make_source_client()
        cmd = self.make_command(source_client)
        status = cmd.run()

        assert status.successes == 1 and status.failures == 0
        assert cmd.admin_server.user == "admin"
        assert cmd.admin_server.password == "password"
        source_client.unlock_user.assert_called_once_with("admin")

    def test_default_credentials_accepted(self):
        status = self.make_command(make_source_client(), admin_accepted=True).run()
        assert status.failures == 1

    def test_locked_admin_is_not_probed(self):
        source_client = make_source_client()
        source_client.get_locked_users.return_value = ["admin"]
        cmd = self.make_command(source_client)
        assert cmd.run().successes == 1
        cmd.admin.ping.assert_not_called()

    def test_remote_check_added(self):
        source_client = make_source_client(
            [
                {"key": "npm-remote", "type": "remote", "url": "https://registry.npmjs.org", "password": "p"},
                {"key": "ignored-remote", "type": "remote", "url": "https://x"},
                {"key": "npm-local", "type": "local"},
            ]
        )
        cmd = self.make_command(source_client, exclude_repos=["ignored-*"])

        runner = cmd.build_runner()

        assert [c.name for c in runner.checks] == [DEFAULT_CREDENTIALS_CHECK_NAME, REMOTE_URL_CHECK_NAME]
        remote_check = runner.checks[1].check
        assert [r["key"] for r in remote_check.remote_repositories] == ["npm-remote"]
        assert remote_check.remote_repositories[0]["password"] == "p"
        source_client.activate_key_encryption.assert_called_once()

    def test_remote_check_runs_on_target(self):
        source_client = make_source_client(
            [{"key": "npm-remote", "type": "remote", "url": "https://registry.npmjs.org"}]
        )
        ok = MagicMock(status_code=200)
        ok.json.return_value = {"total_repositories": 1}
        self.target_client.execute_plugin.return_value = ok
        self.target_client.plugin_status.return_value = ok

        status = self.make_command(source_client).run()

        assert status.successes == 2
        self.target_client.execute_plugin.assert_called_once()

    def test_same_server(self):
        cmd = PreChecks(SOURCE, SOURCE, source_client=make_source_client(), target_client=self.target_client)
        with pytest.raises(SameServerError):
            cmd.run()

    def test_old_source(self):
        source_client = make_source_client()
        source_client.get_version.return_value = "6.9.0"
        with pytest.raises(UnsupportedVersionError):
            self.make_command(source_client).run()
