"""`npm publish` through Artifactory: pack, optionally scan, upload and record."""

import logging
import os
import tarfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..buildinfo.partials import BuildInfoRecorder
from ..errors import (
    ConfigInvalidError,
    JfpmError,
    MissingPackageJsonError,
    RepoNotFoundError,
    ScanViolationError,
    ToolFailedError,
    UploadFailedError,
    combine_errors,
)
from ..models.build import BuildArtifact, Checksum
from ..models.dependency import PackageInfo
from ..models.server import ServerDetails
from ..utils.args import extract_npm_options, extract_optional_flag
from ..utils.project_config import RepositoryConfig
from ..utils.version import (
    NPM_PACK_DESTINATION_MIN_VERSION,
    NPM_STRICT_VERSION_MIN_VERSION,
    is_version_at_least,
    validate_npm_version,
)
from .driver import PackageManagerDriver

logger = logging.getLogger(__name__)

DIST_TAG_PROP_KEY = "npm.disttag"
PACKAGE_JSON_ENTRY = "package/package.json"

# (tarball path, target "repo/path", server, output format) -> passed
ScanFunc = Callable[[Path, str, ServerDetails, str], bool]


def jf_cli_scan(tarball: Path, target: str, server: ServerDetails, output_format: str) -> bool:
    """Scan a tarball with Xray through the JFrog CLI (`jf scan`).

    Returns:
        True if the scan passed. `jf scan` exits with 3 on policy violations.
    """
    scanner = PackageManagerDriver("jf")
    xray_url = server.url.replace("/artifactory/", "/xray/")
    args = [
        "scan",
        str(tarball),
        f"--xray-url={xray_url}",
        f"--format={output_format}",
        "--fail=true",
    ]
    if server.access_token:
        args.append(f"--access-token={server.access_token}")
    elif server.user and server.password:
        args.extend([f"--user={server.user}", f"--password={server.password}"])
    logger.debug("Scanning %s before deploying it to %s", tarball, target)
    try:
        scanner.run(args)
    except ToolFailedError as e:
        if e.exit_code == 3:
            return False
        raise
    return True


def read_package_info_from_tarball(tarball: Path, strip_version_prefix: bool = False) -> PackageInfo:
    """Parse the first `package/package.json` entry of a gzipped npm tarball.

    Raises:
        MissingPackageJsonError: If the tarball has no such entry.
    """
    try:
        with tarfile.open(tarball, "r:gz") as archive:
            for member in archive:
                if member.name != PACKAGE_JSON_ENTRY or not member.isfile():
                    continue
                content = archive.extractfile(member)
                if content is None:
                    break
                return PackageInfo.from_json_bytes(content.read(), strip_version_prefix)
    except (tarfile.TarError, OSError) as e:
        raise MissingPackageJsonError(f"Could not read {tarball}: {e}")
    raise MissingPackageJsonError(
        f"Could not find 'package.json' in the compressed npm package: {tarball}"
    )


@dataclass
class PublishResult:
    target: str
    success: int = 0
    failure: int = 0
    files: List[Dict[str, Any]] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "status": "success" if self.failure == 0 else "failure",
            "totals": {"success": self.success, "failure": self.failure},
            "files": [
                {"source": f["source"], "target": f["target"], "sha256": f["sha256"]}
                for f in self.files
            ],
        }


class NpmPublishCommand:
    """Publishes the project (or a given tarball) to an Artifactory npm repository.

    Args:
        args: Raw arguments after `npm publish`. An optional leading path
            selects the package directory or a prebuilt tarball.
        repo_config: Deployer repository and server.
        working_dir: Directory relative paths are resolved against.
        scan: Scan predicate run before upload when --scan is given.
    """

    def __init__(
        self,
        args: Sequence[str],
        repo_config: RepositoryConfig,
        working_dir: Optional[Path] = None,
        driver: Optional[PackageManagerDriver] = None,
        client: Optional[ArtifactoryClient] = None,
        scan: ScanFunc = jf_cli_scan,
        recorder: Optional[BuildInfoRecorder] = None,
    ):
        (
            self.threads,
            self.detailed_summary,
            self.xray_scan,
            self.scan_output_format,
            remaining,
            self.build_config,
        ) = extract_npm_options(list(args))
        self.dist_tag, remaining = extract_optional_flag("--tag", remaining)
        self.pack_destination, self.npm_args = extract_optional_flag("--pack-destination", remaining)
        self.repo = repo_config.target_repo
        self.server = repo_config.server_details
        self.working_dir = Path(working_dir or Path.cwd())
        self.driver = driver or PackageManagerDriver("npm")
        self.client = client or ArtifactoryClient(self.server)
        self.scan = scan
        self.recorder = recorder
        self.publish_path = self.working_dir
        self.tarball_provided = False
        self.package_info: Optional[PackageInfo] = None
        self.npm_version = ""

    def set_publish_path(self) -> None:
        if self.npm_args and not self.npm_args[0].startswith("-"):
            path = Path(os.path.expanduser(self.npm_args[0]))
            if not path.is_absolute():
                path = self.working_dir / path
            self.publish_path = path
        if not self.publish_path.exists():
            raise ConfigInvalidError(f"Publish path {self.publish_path} does not exist")
        self.tarball_provided = self.publish_path.is_file()

    def _strip_version_prefix(self) -> bool:
        return not is_version_at_least(self.npm_version, NPM_STRICT_VERSION_MIN_VERSION)

    def tarball_dir(self) -> Path:
        if self.pack_destination:
            if is_version_at_least(self.npm_version, NPM_PACK_DESTINATION_MIN_VERSION):
                return Path(os.path.expanduser(self.pack_destination))
            logger.warning(
                "--pack-destination requires npm %s or higher and is ignored",
                NPM_PACK_DESTINATION_MIN_VERSION,
            )
        return self.publish_path

    def pack(self) -> Path:
        """Run `npm pack` and return the path of the created tarball."""
        destination = self.tarball_dir()
        args = ["pack"]
        if destination != self.publish_path:
            args.append(f"--pack-destination={destination}")
        output = self.driver.capture(args, cwd=self.publish_path)
        lines = [line.strip() for line in output.splitlines() if line.strip()]
        if not lines:
            raise ToolFailedError("npm pack", 0, "npm pack did not report the created tarball")
        return destination / lines[-1]

    def upload_properties(self) -> Dict[str, str]:
        props: Dict[str, str] = {}
        if self.dist_tag:
            props[DIST_TAG_PROP_KEY] = self.dist_tag
        if self.build_config.is_collect_build_info():
            props.update(self.build_config.build_properties(int(time.time() * 1000)))
        return props

    def deploy(self, tarball: Path) -> PublishResult:
        target = f"{self.repo}/{self.package_info.deploy_path()}"
        result = PublishResult(target=target)
        if self.xray_scan:
            passed = self.scan(tarball, target, self.server, self.scan_output_format)
            if not passed:
                raise ScanViolationError("Xray scan failed. No artifacts were published to Artifactory.")
        try:
            details = self.client.upload(tarball, target, self.upload_properties())
        except JfpmError as e:
            logger.error("Upload of %s failed: %s", tarball, e)
            result.failure += 1
        else:
            result.success += 1
            result.files.append(details)
        if result.failure > 0:
            raise UploadFailedError(
                "Failed to upload the npm package to Artifactory. See Artifactory logs for more details."
            )
        return result

    def record(self, result: PublishResult) -> None:
        if not self.build_config.is_collect_build_info():
            return
        artifacts = []
        for details in result.files:
            target = details["target"]
            artifacts.append(
                BuildArtifact(
                    name=target.rsplit("/", 1)[-1],
                    path=target.split("/", 1)[1] if "/" in target else target,
                    type="tgz",
                    checksum=Checksum(sha1=details["sha1"], md5=details["md5"], sha256=details["sha256"]),
                )
            )
        module_id = self.build_config.module or self.package_info.module_id()
        recorder = self.recorder or BuildInfoRecorder(self.build_config)
        recorder.save_artifacts(module_id, artifacts)

    def run(self) -> PublishResult:
        self.npm_version = self.driver.version()
        validate_npm_version(self.npm_version, "publish")
        self.set_publish_path()
        if not self.tarball_provided:
            self.package_info = PackageInfo.from_directory(self.publish_path, self._strip_version_prefix())
        if not self.client.repository_exists(self.repo):
            raise RepoNotFoundError(self.repo)

        created: Optional[Path] = None
        error: Optional[BaseException] = None
        result: Optional[PublishResult] = None
        try:
            if self.tarball_provided:
                tarball = self.publish_path
            else:
                created = tarball = self.pack()
            self.package_info = read_package_info_from_tarball(tarball, self._strip_version_prefix())
            result = self.deploy(tarball)
            self.record(result)
        except BaseException as e:
            error = e
        if created is not None:
            error = combine_errors(error, self._delete_tarball(created))
        if error is not None:
            raise error
        return result

    @staticmethod
    def _delete_tarball(path: Path) -> Optional[BaseException]:
        try:
            path.unlink()
        except FileNotFoundError:
            return None
        except OSError as e:
            return JfpmError(f"Failed to delete the created tarball {path}: {e}")
        return None
