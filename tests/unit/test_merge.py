"""Tests for `jfpm rt transfer-config-merge`."""

import csv
from unittest.mock import MagicMock, call

import pytest

from jfpm_cli.errors import (
    AuthFailedError,
    CompoundError,
    ConfigInvalidError,
    SameServerError,
    UnsupportedVersionError,
)
from jfpm_cli.models.server import ServerDetails
from jfpm_cli.transfer.base import (
    IncludeExcludeFilter,
    RepoType,
    remove_project_key_if_needed,
    split_patterns,
)
from jfpm_cli.transfer.merge import (
    FILTERED_REPO_KEYS,
    ConfigMergeCommand,
    ConflictType,
    compare_interfaces,
    compare_projects,
)

SOURCE = ServerDetails("src", "https://source.example.com/artifactory", access_token="s-token")
TARGET = ServerDetails("tgt", "https://target.example.com/artifactory", access_token="t-token")


def make_client(version="7.55.0", repos=None, projects=None):
    """Client mock backed by dicts of repositories and projects."""
    repos = dict(repos or {})
    client = MagicMock()
    client.get_version.return_value = version
    client.list_projects.return_value = list(projects or [])
    client.list_repositories.return_value = [
        {k: v for k, v in params.items() if k in ("key", "type", "url", "packageType", "description")}
        for params in repos.values()
    ]
    client.get_repository.side_effect = lambda key: dict(repos[key])
    client.deactivate_key_encryption.return_value = True
    client.get_locked_users.return_value = []
    return client


def repo(key, repo_type, **extra):
    params = {"key": key, "type": repo_type, "packageType": "npm"}
    params.update(extra)
    return params


class TestCompare:
    def test_project_conflict(self):
        source = {
            "project_key": "P",
            "display_name": "P",
            "description": "d",
            "soft_limit": False,
            "storage_quota_bytes": 1073741825,
        }
        target = dict(source, description="d2", soft_limit=True, storage_quota_bytes=1073741950)

        conflict = compare_projects(source, target)

        assert conflict.type is ConflictType.PROJECT
        assert conflict.source_name == "P(P)"
        assert conflict.different_properties == "description; soft_limit; storage_quota_bytes"

    def test_identical_projects(self):
        assert compare_projects({"project_key": "P"}, {"project_key": "P"}) is None

    def test_filtered_keys_ignored(self):
        first = {"url": "a", "Password": "x", "description": "1", "repoLayoutRef": "npm-default"}
        second = {"url": "b", "Password": "y", "description": "2", "repoLayoutRef": "simple-default"}
        assert compare_interfaces(first, second, FILTERED_REPO_KEYS) == "repoLayoutRef"

    def test_one_sided_keys_ignored(self):
        assert compare_interfaces({"a": 1, "b": 2}, {"a": 1, "c": 3}) == ""


class TestFilters:
    def test_split_patterns(self):
        assert split_patterns("a-*; b ;;") == ["a-*", "b"]
        assert split_patterns(None) == []

    def test_include_exclude(self):
        f = IncludeExcludeFilter(["npm-*"], ["*-tmp"])
        assert f.should_include_item("npm-local")
        assert not f.should_include_item("npm-tmp")
        assert not f.should_include_item("maven-local")

    def test_blacklisted_repositories(self):
        f = IncludeExcludeFilter()
        assert not f.should_include_repository("jfrog-usage-logs")
        assert f.should_include_repository("jfrog-usage-logs-2")

    def test_repo_type(self):
        assert RepoType.from_string("Remote") is RepoType.REMOTE
        assert RepoType.from_string("distribution") is RepoType.UNKNOWN
        assert RepoType.from_string(None) is RepoType.UNKNOWN


class TestProjectKey:
    @pytest.mark.parametrize(
        "params,key,removed",
        [
            ({"key": "r"}, "r", ""),
            ({"projectKey": "default"}, "r", ""),
            ({"projectKey": "proj"}, "proj-r", ""),
            ({"projectKey": "proj"}, "r", "proj"),
        ],
    )
    def test_remove_project_key(self, params, key, removed):
        new_params, project_key = remove_project_key_if_needed(params, key)
        assert project_key == removed
        assert ("projectKey" in new_params) == ("projectKey" in params and not removed)

    def test_invalid_project_key(self):
        with pytest.raises(ConfigInvalidError):
            remove_project_key_if_needed({"projectKey": 5}, "r")


class TestConfigMergeCommand:
    """Test the merge flow end to end with mocked clients."""

    def make_command(self, source_client, target_client, **kwargs):
        return ConfigMergeCommand(
            SOURCE, TARGET, source_client=source_client, target_client=target_client, **kwargs
        )

    def test_same_server(self):
        cmd = ConfigMergeCommand(SOURCE, SOURCE, source_client=make_client(), target_client=make_client())
        with pytest.raises(SameServerError, match="identical"):
            cmd.run()

    def test_old_source(self):
        cmd = self.make_command(make_client("6.23.0"), make_client())
        with pytest.raises(UnsupportedVersionError):
            cmd.run()

    def test_target_older_than_source(self):
        cmd = self.make_command(make_client("7.55.0"), make_client("7.41.0"))
        with pytest.raises(UnsupportedVersionError, match="must not be older"):
            cmd.run()

    def test_password_configured_server(self):
        source = ServerDetails("src", "https://source.example.com/artifactory", user="u", password="p")
        cmd = ConfigMergeCommand(source, TARGET, source_client=make_client(), target_client=make_client())
        with pytest.raises(ConfigInvalidError, match="admin Access Token only"):
            cmd.run()

    def test_invalid_token(self):
        target_client = make_client()
        target_client.ping_access.side_effect = AuthFailedError("401")
        with pytest.raises(AuthFailedError, match="'tgt' instance Access Token is not valid"):
            self.make_command(make_client(), target_client).run()

    def test_merge(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        source_client = make_client(
            repos={
                "v1": repo("v1", "virtual", repositories=["local1", "remote1"]),
                "local1": repo("local1", "local"),
                "remote1": repo("remote1", "remote", url="https://registry.npmjs.org", password="secret"),
                "fed1": repo("fed1", "federated", members=[{"url": "x"}]),
                "shared": repo("shared", "local", repoLayoutRef="npm-default"),
                "jfrog-logs": repo("jfrog-logs", "local"),
            },
            projects=[
                {"project_key": "new", "display_name": "New"},
                {"project_key": "P", "display_name": "P", "description": "d"},
            ],
        )
        target_client = make_client(
            "7.60.0",
            repos={"shared": repo("shared", "local", repoLayoutRef="simple-default")},
            projects=[{"project_key": "P", "display_name": "P", "description": "d2"}],
        )

        result = self.make_command(source_client, target_client).run()

        assert result.transferred_projects == ["new"]
        target_client.create_project.assert_called_once_with({"project_key": "new", "display_name": "New"})
        assert result.transferred_repositories == ["remote1", "local1", "fed1", "v1"]
        created = [c.args[0] for c in target_client.create_repository.call_args_list]
        assert created == ["remote1", "local1", "fed1", "v1"]
        assert result.federated_members_removed

        params = {c.args[0]: c.args[1] for c in target_client.create_repository.call_args_list}
        assert "members" not in params["fed1"]
        assert "repositories" not in params["v1"]
        assert params["remote1"]["password"] == "secret"
        target_client.update_repository.assert_called_once_with(
            "v1", repo("v1", "virtual", repositories=["local1", "remote1"])
        )
        source_client.deactivate_key_encryption.assert_called_once()
        source_client.activate_key_encryption.assert_called_once()

        assert [c.type for c in result.conflicts] == [ConflictType.PROJECT, ConflictType.REPOSITORY]
        with open(result.csv_path, newline="") as f:
            rows = list(csv.DictReader(f))
        assert rows[0] == {
            "type": "Project",
            "source_name": "P(P)",
            "target_name": "P(P)",
            "different_properties": "description",
        }
        assert rows[1]["source_name"] == "shared"
        assert rows[1]["different_properties"] == "repoLayoutRef"
        assert result.csv_path.startswith(str(tmp_path))

    def test_no_conflicts(self):
        source_client = make_client(repos={"local1": repo("local1", "local")})
        result = self.make_command(source_client, make_client()).run()
        assert result.conflicts == []
        assert result.csv_path == ""
        source_client.deactivate_key_encryption.assert_not_called()

    def test_filters(self):
        source_client = make_client(
            repos={"a-local": repo("a-local", "local"), "b-local": repo("b-local", "local")},
            projects=[{"project_key": "x1"}, {"project_key": "y1"}],
        )
        target_client = make_client()
        result = self.make_command(
            source_client,
            target_client,
            exclude_repos=["b-*"],
            include_projects=["x*"],
        ).run()
        assert result.transferred_repositories == ["a-local"]
        assert result.transferred_projects == ["x1"]

    def test_project_repository_assignment(self):
        source_client = make_client(repos={"r1": repo("r1", "local", projectKey="proj")})
        target_client = make_client()
        self.make_command(source_client, target_client).run()

        params = target_client.create_repository.call_args.args[1]
        assert "projectKey" not in params
        target_client.unassign_repo_from_project.assert_called_once_with("r1")
        target_client.assign_repo_to_project.assert_called_once_with("r1", "proj", force=True)

    def test_key_encryption_not_reactivated_if_it_was_off(self):
        source_client = make_client(repos={"remote1": repo("remote1", "remote")})
        source_client.deactivate_key_encryption.return_value = False
        self.make_command(source_client, make_client()).run()
        source_client.activate_key_encryption.assert_not_called()


class TestDecryptedSource:
    def make_command(self, source_client):
        return ConfigMergeCommand(SOURCE, TARGET, source_client=source_client, target_client=make_client())

    def test_reactivated_after_error(self):
        source_client = make_client()
        with pytest.raises(ValueError):
            with self.make_command(source_client).decrypted_source():
                raise ValueError("boom")
        source_client.activate_key_encryption.assert_called_once()

    def test_reactivation_error_combined(self):
        source_client = make_client()
        source_client.activate_key_encryption.side_effect = AuthFailedError("nope")
        with pytest.raises(CompoundError) as exc_info:
            with self.make_command(source_client).decrypted_source():
                raise ValueError("boom")
        assert [type(e) for e in exc_info.value.errors] == [ValueError, AuthFailedError]
