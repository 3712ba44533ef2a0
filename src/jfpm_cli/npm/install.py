"""`npm install`, `npm ci` and passthrough commands against Artifactory."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..buildinfo.partials import BuildInfoRecorder
from ..errors import ConfigInvalidError, RepoNotFoundError
from ..models.build import BuildConfiguration
from ..models.dependency import Dependency, PackageInfo
from ..utils.args import extract_build_config, extract_threads
from ..utils.project_config import RepositoryConfig
from ..utils.version import (
    MIN_ARTIFACTORY_VERSION_FOR_NPM,
    NPM_STRICT_VERSION_MIN_VERSION,
    is_version_at_least,
    validate_npm_version,
    validate_server_version,
)
from .checksums import ChecksumReconciler, get_dependencies_from_latest_build
from .driver import PackageManagerDriver
from .rc import npm_repository_url
from .resolver import calculate_dependencies
from .temprc import TempRcOrchestrator

logger = logging.getLogger(__name__)


def split_flags(args: Sequence[str]) -> List[str]:
    """Return the positional (non-flag) arguments."""
    return [arg for arg in args if not arg.startswith("-")]


@dataclass
class InstallResult:
    build_info_collected: bool = False
    module_id: str = ""
    resolved: List[Dependency] = field(default_factory=list)
    missing: List[Dependency] = field(default_factory=list)


class NpmCommandBase:
    """Shared preparation of npm commands that resolve from Artifactory."""

    def __init__(
        self,
        command: str,
        args: Sequence[str],
        repo_config: RepositoryConfig,
        working_dir: Optional[Path] = None,
        driver: Optional[PackageManagerDriver] = None,
        client: Optional[ArtifactoryClient] = None,
    ):
        self.command = command
        self.args = list(args)
        self.repo = repo_config.target_repo
        self.server = repo_config.server_details
        self.working_dir = Path(working_dir or Path.cwd())
        self.driver = driver or PackageManagerDriver("npm")
        self.client = client or ArtifactoryClient(self.server)
        self.registry = ""

    def validate_prerequisites(self) -> str:
        """Check npm and Artifactory versions and the repository; return the npm version."""
        npm_version = self.driver.version()
        validate_npm_version(npm_version, self.command)
        validate_server_version("Artifactory", self.client.get_version(), MIN_ARTIFACTORY_VERSION_FOR_NPM)
        if not self.client.repository_exists(self.repo):
            raise RepoNotFoundError(self.repo)
        self.registry = npm_repository_url(self.server.url, self.repo)
        return npm_version

    def read_package_info(self, npm_version: str, required: bool) -> Optional[PackageInfo]:
        strip = not is_version_at_least(npm_version, NPM_STRICT_VERSION_MIN_VERSION)
        if required:
            return PackageInfo.from_directory(self.working_dir, strip_version_prefix=strip)
        try:
            return PackageInfo.from_directory(self.working_dir, strip_version_prefix=strip)
        except ConfigInvalidError as e:
            logger.debug("No package identity available: %s", e)
            return None

    def temp_rc(self, npm_args: Sequence[str], package_info: Optional[PackageInfo]) -> TempRcOrchestrator:
        json_output = self.driver.config_get("json", npm_args, cwd=self.working_dir) != "false"
        return TempRcOrchestrator(
            self.driver,
            self.working_dir,
            self.registry,
            self.server,
            npm_args=npm_args,
            json_output=json_output,
            package_scope=package_info.scope if package_info else "",
        )


class NpmInstallOrCiCommand(NpmCommandBase):
    """Runs `npm install` or `npm ci` and optionally records build-info.

    jfpm flags (--threads and the build flags) are removed from args; the rest
    is handed to npm.
    """

    def __init__(self, command: str, args: Sequence[str], repo_config: RepositoryConfig, **kwargs):
        super().__init__(command, args, repo_config, **kwargs)
        self.threads, remaining = extract_threads(self.args)
        self.build_config, self.npm_args = extract_build_config(remaining)
        self.recorder: Optional[BuildInfoRecorder] = None

    def run(self) -> InstallResult:
        npm_version = self.validate_prerequisites()
        collect_build_info = self.build_config.is_collect_build_info()
        package_info = self.read_package_info(npm_version, required=collect_build_info)

        positional = split_flags(self.npm_args)
        if collect_build_info and positional:
            logger.warning(
                "Build info dependencies collection with npm arguments is not supported. "
                "Build info creation will be skipped."
            )
            collect_build_info = False

        with self.temp_rc(self.npm_args, package_info) as temp_rc:
            # Flags reach npm through the temporary .npmrc built from `npm config list`
            self.driver.run([self.command, *positional], cwd=self.working_dir)
            type_restriction = temp_rc.type_restriction

        result = InstallResult()
        if not collect_build_info:
            logger.info("npm %s finished successfully.", self.command)
            return result

        module_id = self.build_config.module or package_info.module_id()
        flags = [arg for arg in self.npm_args if arg.startswith("-")]
        dependencies = calculate_dependencies(type_restriction, flags, self.driver, module_id)

        logger.info(
            "Collecting dependencies information... For the first run of the build, "
            "this may take a few minutes. Subsequent runs should be faster."
        )
        previous = get_dependencies_from_latest_build(
            self.client, self.build_config.build_name, self.build_config.project
        )
        reconciler = ChecksumReconciler(self.client, previous, self.threads)
        resolved, missing = reconciler.reconcile(dependencies)

        self.save(module_id, resolved, missing)
        if missing:
            logger.warning(
                "The following dependencies could not be found in Artifactory and were not "
                "included in the build-info:\n%s",
                "\n".join(d.key for d in missing),
            )
        logger.info("npm %s finished successfully.", self.command)
        return InstallResult(
            build_info_collected=True, module_id=module_id, resolved=resolved, missing=missing
        )

    def save(self, module_id: str, resolved: List[Dependency], missing: List[Dependency]) -> None:
        if self.recorder is None:
            self.recorder = BuildInfoRecorder(self.build_config)
        self.recorder.save_dependencies(
            module_id,
            [d.to_build_dependency() for d in resolved],
            [d.to_build_dependency() for d in missing],
        )


class NpmNativeCommand(NpmCommandBase):
    """Runs any other npm command with Artifactory as the registry, without build-info."""

    def run(self) -> None:
        npm_version = self.validate_prerequisites()
        package_info = self.read_package_info(npm_version, required=False)
        with self.temp_rc(self.args, package_info):
            self.driver.run([self.command, *self.args], cwd=self.working_dir)
