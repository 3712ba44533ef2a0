"""`rt transfer-config-merge`: merge projects and repositories into a target.

Entities that exist only on the source are created on the target. Entities
that exist on both sides with different settings are reported as conflicts
in a CSV file and left untouched.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..errors import UnsupportedVersionError
from ..models.server import ServerDetails
from ..utils.csv_report import create_csv_file
from ..utils.version import (
    MIN_ARTIFACTORY_VERSION_FOR_MERGE,
    MIN_ARTIFACTORY_VERSION_FOR_PROJECTS,
    compare_versions,
    is_version_at_least,
    validate_server_version,
)
from .base import IncludeExcludeFilter, RepoType, TransferConfigBase

logger = logging.getLogger(__name__)

CONFLICTS_CSV_PREFIX = "transfer-config-conflicts"

# Lowercase repository keys that are never compared.
FILTERED_REPO_KEYS = (
    "url",
    "password",
    "suppresspomconsistencychecks",
    "description",
    "gitregistryurl",
    "cargointernalindex",
)


class ConflictType(str, Enum):
    REPOSITORY = "Repository"
    PROJECT = "Project"

    def __str__(self) -> str:
        return self.value


@dataclass
class Conflict:
    type: ConflictType
    source_name: str
    target_name: str
    different_properties: str


@dataclass
class MergeEntities:
    projects_to_transfer: List[Dict[str, Any]] = field(default_factory=list)
    repos_to_transfer: Dict[RepoType, List[str]] = field(default_factory=dict)


@dataclass
class MergeResult:
    """Outcome of a merge run.

    Attributes:
        csv_path: Conflicts report, or "" when there were no conflicts
        conflicts: Every conflict found
        transferred_projects: Keys of the projects created on the target
        transferred_repositories: Keys of the repositories created on the target
        federated_members_removed: True if federated members were stripped
    """

    csv_path: str = ""
    conflicts: List[Conflict] = field(default_factory=list)
    transferred_projects: List[str] = field(default_factory=list)
    transferred_repositories: List[str] = field(default_factory=list)
    federated_members_removed: bool = False


def compare_interfaces(
    first: Dict[str, Any], second: Dict[str, Any], filtered_keys: Sequence[str] = ()
) -> str:
    """Return the sorted "; "-joined keys whose values differ.

    Only keys present on both sides are compared. Keys whose lowercase form
    is in filtered_keys are skipped.
    """
    diff = [
        key
        for key, value in first.items()
        if key.lower() not in filtered_keys and key in second and second[key] != value
    ]
    return "; ".join(sorted(diff))


def project_display(project: Dict[str, Any]) -> str:
    return f"{project.get('display_name', '')}({project.get('project_key', '')})"


def compare_projects(source: Dict[str, Any], target: Dict[str, Any]) -> Optional[Conflict]:
    diff = compare_interfaces(source, target)
    if not diff:
        return None
    return Conflict(
        type=ConflictType.PROJECT,
        source_name=project_display(source),
        target_name=project_display(target),
        different_properties=diff,
    )


class ConfigMergeCommand(TransferConfigBase):
    """Merges the configuration of a source Artifactory into a target.

    Args:
        source: Source server reference.
        target: Target server reference.
        include_repos, exclude_repos: Repository key patterns.
        include_projects, exclude_projects: Project key patterns.
    """

    def __init__(
        self,
        source: ServerDetails,
        target: ServerDetails,
        source_client: Optional[ArtifactoryClient] = None,
        target_client: Optional[ArtifactoryClient] = None,
        include_repos: Optional[Sequence[str]] = None,
        exclude_repos: Optional[Sequence[str]] = None,
        include_projects: Optional[Sequence[str]] = None,
        exclude_projects: Optional[Sequence[str]] = None,
    ):
        super().__init__(
            source,
            target,
            source_client=source_client,
            target_client=target_client,
            include_repos=include_repos,
            exclude_repos=exclude_repos,
        )
        self.project_filter = IncludeExcludeFilter(include_projects, exclude_projects)

    def run(self) -> MergeResult:
        self.log_title("Preparations")
        projects_supported = self.validate_servers()

        entities, result = self.merge_entities(projects_supported)
        self.transfer_entities(entities, result)

        logger.info("Config transfer merge completed successfully!")
        self.log_if_federated_members_removed()
        result.federated_members_removed = self.federated_members_removed
        return result

    def validate_servers(self) -> bool:
        """Run the preflight checks. Returns True if projects can be merged."""
        self.validate_different_servers()
        source_version = self.source_client.get_version()
        validate_server_version("Artifactory", source_version, MIN_ARTIFACTORY_VERSION_FOR_MERGE)
        target_version = self.target_client.get_version()
        if compare_versions(target_version, source_version) < 0:
            raise UnsupportedVersionError(
                f"The target Artifactory version ({target_version}) must not be older than "
                f"the source Artifactory version ({source_version})."
            )
        self.validate_access_token(self.source, self.source_client)
        self.validate_access_token(self.target, self.target_client)
        return is_version_at_least(source_version, MIN_ARTIFACTORY_VERSION_FOR_PROJECTS)

    def merge_entities(self, projects_supported: bool):
        conflicts: List[Conflict] = []
        entities = MergeEntities()
        if projects_supported:
            self.log_title("Merging projects config")
            entities.projects_to_transfer = self.merge_projects(conflicts)

        self.log_title("Merging repositories config")
        entities.repos_to_transfer = self.merge_repositories(conflicts)

        result = MergeResult(conflicts=conflicts)
        if conflicts:
            result.csv_path = create_csv_file(CONFLICTS_CSV_PREFIX, conflicts)
            logger.info(
                "We found %d conflicts when comparing the projects and repositories configuration "
                "between the source and target instances.\nPlease review the report available at %s\n"
                "You can either resolve the conflicts by manually modifying the configuration on "
                "the source or the target,\nor exclude the transfer of the conflicting projects or "
                "repositories by adding options to this command.\n"
                "Run 'jfpm rt transfer-config-merge --help' for more information.",
                len(conflicts),
                result.csv_path,
            )
        else:
            logger.info("No Merge conflicts were found while comparing the source and target instances.")
        return entities, result

    def merge_projects(self, conflicts: List[Conflict]) -> List[Dict[str, Any]]:
        logger.info("Getting all Projects from the source ...")
        source_projects = self.source_client.list_projects()
        logger.info("Getting all Projects from the target ...")
        target_projects = self.target_client.list_projects()
        by_key = {p.get("project_key"): p for p in target_projects}
        by_name = {p.get("display_name"): p for p in target_projects}

        to_transfer = []
        for project in source_projects:
            if not self.project_filter.should_include_item(project.get("project_key", "")):
                continue
            same_key = by_key.get(project.get("project_key"))
            same_name = by_name.get(project.get("display_name"))
            if same_key is None and same_name is None:
                to_transfer.append(project)
                continue
            if same_key is not None:
                conflict = compare_projects(project, same_key)
                if conflict:
                    conflicts.append(conflict)
            if same_name is not None and same_name is not same_key:
                conflict = compare_projects(project, same_name)
                if conflict:
                    conflicts.append(conflict)
        return to_transfer

    def merge_repositories(self, conflicts: List[Conflict]) -> Dict[RepoType, List[str]]:
        repos_to_transfer: Dict[RepoType, List[str]] = {}
        source_repos = self.source_client.list_repositories()
        target_repos = {repo["key"]: repo for repo in self.target_client.list_repositories()}
        for source_repo in source_repos:
            key = source_repo["key"]
            if not self.repo_filter.should_include_repository(key):
                continue
            target_repo = target_repos.get(key)
            if target_repo is None:
                repo_type = RepoType.from_string(source_repo.get("type"))
                repos_to_transfer.setdefault(repo_type, []).append(key)
                continue
            diff = self.compare_repositories(source_repo, target_repo)
            if diff:
                conflicts.append(
                    Conflict(
                        type=ConflictType.REPOSITORY,
                        source_name=key,
                        target_name=key,
                        different_properties=diff,
                    )
                )
        return repos_to_transfer

    def compare_repositories(self, source_summary: Dict[str, Any], target_summary: Dict[str, Any]) -> str:
        diff = compare_interfaces(source_summary, target_summary, FILTERED_REPO_KEYS)
        if diff:
            return diff
        key = source_summary["key"]
        return compare_interfaces(
            self.source_client.get_repository(key),
            self.target_client.get_repository(key),
            FILTERED_REPO_KEYS,
        )

    def transfer_entities(self, entities: MergeEntities, result: MergeResult) -> None:
        if entities.projects_to_transfer:
            self.log_title("Transferring projects")
            for project in entities.projects_to_transfer:
                logger.info("Transferring project '%s' ...", project.get("display_name"))
                self.target_client.create_project(project)
                result.transferred_projects.append(project.get("project_key", ""))

        self.log_title("Transferring repositories")
        remote_repositories: List[Dict[str, Any]] = []
        remote_keys = entities.repos_to_transfer.get(RepoType.REMOTE, [])
        if remote_keys:
            # Remote credentials are only readable in plain text while decrypted.
            with self.decrypted_source():
                remote_repositories = self.get_remote_repositories(remote_keys)

        self.transfer_repositories_to_target(entities.repos_to_transfer, remote_repositories)
        for repo_type in (
            RepoType.REMOTE,
            RepoType.LOCAL,
            RepoType.FEDERATED,
            RepoType.UNKNOWN,
            RepoType.VIRTUAL,
        ):
            result.transferred_repositories.extend(entities.repos_to_transfer.get(repo_type, []))
