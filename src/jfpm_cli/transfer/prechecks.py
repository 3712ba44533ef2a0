"""`rt transfer-prechecks`: pre-flight checks before a config transfer."""

import logging
import threading
from typing import Optional

from ..utils.version import MIN_ARTIFACTORY_VERSION_FOR_MERGE, validate_server_version
from .base import RepoType, TransferConfigBase
from .checkrunner import CheckRunner, PreCheck, RunArguments, RunStatus
from .remote_url_check import REMOTE_URL_CHECK_NAME, RemoteRepositoryCheck

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_CHECK_NAME = "Default admin credentials"


class TransferPreChecksCommand(TransferConfigBase):
    """Checks a source/target pair before transferring configuration.

    The remote URL check runs on the target against the plain-text settings
    of the source remote repositories that pass the repository filter.
    """

    def __init__(self, *args, show_progress: bool = False, cancel_event: Optional[threading.Event] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.show_progress = show_progress
        self.cancel_event = cancel_event

    def default_credentials_check(self, args: RunArguments) -> bool:
        return not self.is_default_credentials()

    def selected_remote_repositories(self):
        return [
            repo["key"]
            for repo in self.source_client.list_repositories()
            if RepoType.from_string(repo.get("type")) is RepoType.REMOTE
            and self.repo_filter.should_include_repository(repo["key"])
        ]

    def build_runner(self) -> CheckRunner:
        runner = CheckRunner(show_progress=self.show_progress)
        runner.add_check(PreCheck(DEFAULT_CREDENTIALS_CHECK_NAME, self.default_credentials_check))

        remote_keys = self.selected_remote_repositories()
        if remote_keys:
            with self.decrypted_source():
                remote_repositories = self.get_remote_repositories(remote_keys)
            runner.add_check(
                PreCheck(REMOTE_URL_CHECK_NAME, RemoteRepositoryCheck(self.target_client, remote_repositories))
            )
        else:
            logger.info("No remote repositories selected; skipping the remote URL check.")
        return runner

    def run(self) -> RunStatus:
        self.log_title("Preparations")
        self.validate_different_servers()
        validate_server_version(
            "Artifactory", self.source_client.get_version(), MIN_ARTIFACTORY_VERSION_FOR_MERGE
        )
        runner = self.build_runner()
        args = RunArguments(
            server=self.target, client=self.target_client, cancel_event=self.cancel_event
        )
        return runner.run(args)
