"""Shared state and repository transfer steps for the transfer commands."""

import copy
import fnmatch
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..errors import (
    AuthFailedError,
    CompoundError,
    ConfigInvalidError,
    JfpmError,
    SameServerError,
)
from ..models.server import ServerDetails
from ..utils.console import print_title

logger = logging.getLogger(__name__)

DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "password"
DEFAULT_PROJECT_KEY = "default"
FEDERATED_REPOSITORIES_HELP_URL = (
    "https://jfrog.com/help/r/jfrog-artifactory-documentation/federated-repositories"
)

# System repositories that must never be recreated on the target.
BLACKLISTED_REPOSITORIES = (
    "jfrog-usage-logs",
    "jfrog-billing-logs",
    "jfrog-logs",
    "artifactory-pipe-info",
    "auto-trashcan",
    "jfrog-support-bundle",
    "_intransit",
    "artifactory-edge-uploads",
)


class RepoType(Enum):
    LOCAL = "local"
    REMOTE = "remote"
    VIRTUAL = "virtual"
    FEDERATED = "federated"
    UNKNOWN = "unknown"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "RepoType":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN


def split_patterns(value: Optional[str]) -> List[str]:
    """Split a ';'-separated pattern option into a list, dropping blanks."""
    if not value:
        return []
    return [p.strip() for p in value.split(";") if p.strip()]


class IncludeExcludeFilter:
    """Shell-style include/exclude matching of repository or project keys.

    An empty include list includes everything; excludes win over includes.
    """

    def __init__(
        self,
        include_patterns: Optional[Sequence[str]] = None,
        exclude_patterns: Optional[Sequence[str]] = None,
    ):
        self.include_patterns = list(include_patterns or [])
        self.exclude_patterns = list(exclude_patterns or [])

    def should_include_item(self, item: str) -> bool:
        if self.include_patterns and not any(
            fnmatch.fnmatchcase(item, p) for p in self.include_patterns
        ):
            return False
        return not any(fnmatch.fnmatchcase(item, p) for p in self.exclude_patterns)

    def should_include_repository(self, repo_key: str) -> bool:
        if repo_key in BLACKLISTED_REPOSITORIES:
            return False
        return self.should_include_item(repo_key)


def remove_project_key_if_needed(repo_params: Dict[str, Any], repo_key: str):
    """Strip a non-default ``projectKey`` the repository key is not prefixed with.

    Artifactory refuses to create a project repository whose key does not
    start with ``<projectKey>-``; such repositories are created unbound and
    assigned to the project afterwards.

    Returns:
        (params, project_key) where project_key is "" if nothing was removed.
    """
    if "projectKey" not in repo_params:
        return repo_params, ""
    project_key = repo_params["projectKey"]
    if not isinstance(project_key, str):
        raise ConfigInvalidError(
            f"couldn't parse the 'projectKey' value '{project_key}' of repository '{repo_key}'"
        )
    if project_key == DEFAULT_PROJECT_KEY or repo_key.startswith(project_key + "-"):
        return repo_params, ""
    params = dict(repo_params)
    del params["projectKey"]
    return params, project_key


class TransferConfigBase:
    """Source and target clients plus the steps both transfer commands share.

    Args:
        source: Source server; must be configured with an access token.
        target: Target server; must be configured with an access token.
        source_client: Optional pre-built client, mostly for tests.
        target_client: Optional pre-built client, mostly for tests.
    """

    def __init__(
        self,
        source: ServerDetails,
        target: ServerDetails,
        source_client: Optional[ArtifactoryClient] = None,
        target_client: Optional[ArtifactoryClient] = None,
        include_repos: Optional[Sequence[str]] = None,
        exclude_repos: Optional[Sequence[str]] = None,
    ):
        self.source = source
        self.target = target
        self.source_client = source_client or ArtifactoryClient(source)
        self.target_client = target_client or ArtifactoryClient(target)
        self.repo_filter = IncludeExcludeFilter(include_repos, exclude_repos)
        self.federated_members_removed = False

    @staticmethod
    def log_title(title: str) -> None:
        print_title(title)

    def validate_different_servers(self) -> None:
        logger.info("Verifying source and target servers are different...")
        if self.source.url == self.target.url:
            raise SameServerError(
                "The source and target Artifactory servers are identical, but should be different."
            )

    @staticmethod
    def validate_access_token(server: ServerDetails, client: ArtifactoryClient) -> None:
        if server.password:
            raise ConfigInvalidError(
                f"it looks like you configured the '{server.server_id}' instance with username "
                "and password.\nThis command can be used with admin Access Token only.\n"
                f"Please use the 'jfpm config add {server.server_id} --access-token' command to "
                "configure the Access Token, and then re-run the command"
            )
        try:
            client.ping_access()
        except JfpmError as e:
            raise AuthFailedError(
                f"{e}\nthe '{server.server_id}' instance Access Token is not valid. Please provide "
                f"a valid access token by running 'jfpm config add {server.server_id} --access-token'"
            )

    @contextmanager
    def decrypted_source(self) -> Iterator[None]:
        """Deactivate source key encryption for the block, restoring it on exit.

        Encryption is re-activated only if this block was the one that turned
        it off.
        """
        was_encrypted = self.source_client.deactivate_key_encryption()
        try:
            yield
        except BaseException as e:
            if was_encrypted:
                try:
                    self.source_client.activate_key_encryption()
                except JfpmError as reactivation_error:
                    raise CompoundError([e, reactivation_error]) from e
            raise
        if was_encrypted:
            self.source_client.activate_key_encryption()

    def get_remote_repositories(self, repo_keys: Sequence[str]) -> List[Dict[str, Any]]:
        """Fetch full remote repository params. Call inside decrypted_source()."""
        return [self.source_client.get_repository(key) for key in repo_keys]

    def remove_federated_members(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if "members" not in params:
            return params
        params = dict(params)
        del params["members"]
        self.federated_members_removed = True
        return params

    def create_repository_and_assign_to_project(self, params: Dict[str, Any], repo_key: str) -> None:
        params, project_key = remove_project_key_if_needed(params, repo_key)
        if project_key:
            # The repository may already be bound by the target's bootstrap config.
            try:
                self.target_client.unassign_repo_from_project(repo_key)
            except JfpmError as e:
                logger.debug("Ignoring unassign failure of %s: %s", repo_key, e)
        logger.info("Transferring repository '%s' ...", repo_key)
        self.target_client.create_repository(repo_key, params)
        if project_key:
            self.target_client.assign_repo_to_project(repo_key, project_key, force=True)

    def transfer_repositories_to_target(
        self,
        repos_to_transfer: Dict[RepoType, List[str]],
        remote_repositories: Sequence[Dict[str, Any]] = (),
    ) -> None:
        """Create repositories on the target: remote, local, federated, unknown, then virtual."""
        for repo_key, params in zip(repos_to_transfer.get(RepoType.REMOTE, []), remote_repositories):
            self.create_repository_and_assign_to_project(params, repo_key)
        for repo_type in (RepoType.LOCAL, RepoType.FEDERATED, RepoType.UNKNOWN):
            for repo_key in repos_to_transfer.get(repo_type, []):
                params = self.source_client.get_repository(repo_key)
                if repo_type is RepoType.FEDERATED:
                    params = self.remove_federated_members(params)
                self.create_repository_and_assign_to_project(params, repo_key)
        virtual = repos_to_transfer.get(RepoType.VIRTUAL, [])
        if virtual:
            self.transfer_virtual_repositories(virtual)

    def transfer_virtual_repositories(self, repo_keys: Sequence[str]) -> None:
        # Virtual repositories may aggregate each other, so they are created
        # empty first and get their aggregated repositories in a second pass.
        all_params: Dict[str, Dict[str, Any]] = {}
        for repo_key in repo_keys:
            params = self.source_client.get_repository(repo_key)
            all_params[repo_key] = params
            without_members = copy.deepcopy(params)
            without_members.pop("repositories", None)
            self.create_repository_and_assign_to_project(without_members, repo_key)
        for repo_key, params in all_params.items():
            self.target_client.update_repository(repo_key, params)

    def is_default_credentials(self) -> bool:
        """Return True if the source still accepts ``admin:password``."""
        if DEFAULT_ADMIN_USERNAME in self.source_client.get_locked_users():
            return False
        admin = ServerDetails(
            server_id="default-admin",
            url=self.source.url,
            user=DEFAULT_ADMIN_USERNAME,
            password=DEFAULT_ADMIN_PASSWORD,
        )
        try:
            self.admin_client(admin).ping()
        except AuthFailedError:
            # Reset the failed-login counter so the probe does not lock admin out.
            self.source_client.unlock_user(DEFAULT_ADMIN_USERNAME)
            return False
        logger.warning(
            "The default 'admin:password' credentials are used by a configured user in your "
            "source platform.\nThose credentials will be transferred to your SaaS target platform."
        )
        return True

    def admin_client(self, server: ServerDetails) -> ArtifactoryClient:
        return ArtifactoryClient(server)

    def log_if_federated_members_removed(self) -> None:
        if self.federated_members_removed:
            logger.info(
                "Your Federated repositories have been transferred to your target instance, but "
                "their members have been removed on the target.\nYou should add members to your "
                "Federated repositories on your target instance as described here: %s",
                FEDERATED_REPOSITORIES_HELP_URL,
            )
