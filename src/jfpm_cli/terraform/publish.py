"""`terraform publish`: zip every Terraform module under a directory and deploy it.

A module is a directory that directly contains a regular `*.tf` file. Each
module is deployed to ``<repo>/<namespace>/<module>/<provider>/<tag>.zip``.
"""

import fnmatch
import logging
import os
import tempfile
import time
import zipfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..buildinfo.partials import TERRAFORM_MODULE_TYPE, BuildInfoRecorder
from ..errors import ConfigInvalidError, JfpmError, RepoNotFoundError, UploadFailedError
from ..models.build import BuildArtifact, Checksum
from ..utils.args import extract_build_config, extract_optional_flag
from ..utils.project_config import RepositoryConfig

logger = logging.getLogger(__name__)

UPLOAD_THREADS = 3
DEFAULT_EXCLUSIONS = ("*.git", "*.DS_Store")


def is_terraform_module(path: Path) -> bool:
    try:
        entries = list(os.scandir(path))
    except OSError as e:
        raise ConfigInvalidError(f"Could not read directory {path}: {e}")
    return any(
        entry.is_file(follow_symlinks=False) and entry.name.endswith(".tf") for entry in entries
    )


def find_terraform_modules(root: Path) -> List[Path]:
    """Walk root and return module directories; a module's subtree is not searched."""
    modules: List[Path] = []
    for current, dirs, _ in os.walk(root):
        path = Path(current)
        if is_terraform_module(path):
            modules.append(path)
            dirs[:] = []
        else:
            dirs.sort()
    return modules


def is_excluded(relative_path: str, exclusions: Sequence[str]) -> bool:
    parts = relative_path.split("/")
    for pattern in exclusions:
        if fnmatch.fnmatch(relative_path, pattern):
            return True
        if any(fnmatch.fnmatch(part, pattern) for part in parts):
            return True
    return False


def zip_module(module_dir: Path, destination: Path, exclusions: Sequence[str]) -> int:
    """Archive module_dir into destination. Returns the number of files added."""
    count = 0
    with zipfile.ZipFile(destination, "w", zipfile.ZIP_DEFLATED) as archive:
        for current, dirs, files in os.walk(module_dir):
            dirs.sort()
            for name in sorted(files):
                file_path = Path(current) / name
                relative = file_path.relative_to(module_dir).as_posix()
                if is_excluded(relative, exclusions):
                    continue
                archive.write(file_path, relative)
                count += 1
    return count


@dataclass
class TerraformPublishResult:
    success: int = 0
    failure: int = 0
    uploads: List[Dict[str, Any]] = field(default_factory=list)


class TerraformPublishCommand:
    """Publishes the Terraform modules found under the working directory.

    Args:
        args: Raw command arguments (--namespace, --provider, --tag,
            --exclusions and the build flags).
        repo_config: Deployer repository and server.
    """

    def __init__(
        self,
        args: Sequence[str],
        repo_config: RepositoryConfig,
        working_dir: Optional[Path] = None,
        client: Optional[ArtifactoryClient] = None,
        recorder: Optional[BuildInfoRecorder] = None,
    ):
        self.namespace, self.provider, self.tag, self.exclusions, self.build_config = (
            self.parse_args(list(args))
        )
        self.repo = repo_config.target_repo
        self.server = repo_config.server_details
        self.working_dir = Path(working_dir or Path.cwd())
        self.client = client or ArtifactoryClient(self.server)
        self.recorder = recorder

    @staticmethod
    def parse_args(args: List[str]):
        namespace, args = extract_optional_flag("--namespace", args)
        provider, args = extract_optional_flag("--provider", args)
        tag, args = extract_optional_flag("--tag", args)
        exclusions_value, args = extract_optional_flag("--exclusions", args)
        build_config, args = extract_build_config(args)
        if args:
            raise ConfigInvalidError(
                "Unknown flag:" + args[0].split("=")[0] + ". for a terraform publish command "
                "please provide --namespace, --provider, --tag and optionally --exclusions."
            )
        if not (namespace and provider and tag):
            raise ConfigInvalidError("the --namespace, --provider and --tag options are mandatory")
        exclusions = exclusions_value.split(";") if exclusions_value else []
        return namespace, provider, tag, exclusions, build_config

    def publish_target(self, module_name: str) -> str:
        return f"{self.repo}/{self.namespace}/{module_name}/{self.provider}/{self.tag}.zip"

    def _properties(self) -> Dict[str, str]:
        if not self.build_config.is_collect_build_info():
            return {}
        return self.build_config.build_properties(int(time.time() * 1000))

    def upload_module(self, module_dir: Path, props: Dict[str, str]) -> Dict[str, Any]:
        target = self.publish_target(module_dir.name)
        exclusions = [*self.exclusions, *DEFAULT_EXCLUSIONS]
        with tempfile.TemporaryDirectory() as tmp:
            archive = Path(tmp) / f"{self.tag}.zip"
            zip_module(module_dir, archive, exclusions)
            logger.debug("Deploying %s to %s", module_dir, target)
            return self.client.upload(archive, target, props)

    def run(self) -> TerraformPublishResult:
        logger.info("Running Terraform publish")
        if not self.client.repository_exists(self.repo):
            raise RepoNotFoundError(self.repo)
        modules = find_terraform_modules(self.working_dir)
        props = self._properties()
        result = TerraformPublishResult()
        with ThreadPoolExecutor(max_workers=UPLOAD_THREADS) as executor:
            futures = {executor.submit(self.upload_module, module, props): module for module in modules}
            for future, module in futures.items():
                try:
                    result.uploads.append(future.result())
                    result.success += 1
                except JfpmError as e:
                    logger.error("Failed to deploy module %s: %s", module, e)
                    result.failure += 1
        if result.failure:
            raise UploadFailedError(
                f"Failed to upload {result.failure} of {len(modules)} Terraform modules to Artifactory."
            )
        self.record(result)
        logger.info("Terraform publish finished successfully.")
        return result

    def record(self, result: TerraformPublishResult) -> None:
        if not self.build_config.is_collect_build_info() or not result.uploads:
            return
        artifacts = [
            BuildArtifact(
                name=upload["target"].rsplit("/", 1)[-1],
                path=upload["target"].split("/", 1)[1],
                type="zip",
                checksum=Checksum(sha1=upload["sha1"], md5=upload["md5"], sha256=upload["sha256"]),
            )
            for upload in result.uploads
        ]
        module_id = self.build_config.module or f"{self.namespace}/{self.provider}"
        recorder = self.recorder or BuildInfoRecorder(self.build_config)
        recorder.save_artifacts(module_id, artifacts, module_type=TERRAFORM_MODULE_TYPE)
