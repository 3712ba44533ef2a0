"""Pre-check: can the target reach the URLs of the source remote repositories?

The work is done by the ``remoteRepositoriesCheck`` user plugin on the
target. The check starts it, then polls its status endpoint until it
reports completion.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..artifactory.client import ArtifactoryClient
from ..errors import RemoteUnavailableError, UnexpectedStatusError
from ..utils.csv_report import create_csv_file
from .checkrunner import RunArguments

logger = logging.getLogger(__name__)

REMOTE_URL_CHECK_NAME = "Remote repositories URL connectivity"
START_PLUGIN = "remoteRepositoriesCheck"
STATUS_PLUGIN = "remoteRepositoriesCheckStatus"
INACCESSIBLE_CSV_PREFIX = "inaccessible-repositories"
POLLING_TIMEOUT_SECS = 30 * 60
POLLING_INTERVAL_SECS = 5
START_RETRIES = 3
START_RETRY_INTERVAL_SECS = 10


@dataclass
class InaccessibleRepository:
    repo_key: str
    url: str
    status_code: int
    reason: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InaccessibleRepository":
        return cls(
            repo_key=data.get("repo_key", ""),
            url=data.get("url", ""),
            status_code=int(data.get("status_code", 0) or 0),
            reason=data.get("reason", ""),
        )


def remote_repo_settings(params: Dict[str, Any]) -> Dict[str, str]:
    """Build the plugin request entry of one remote repository."""
    settings = {
        "key": params.get("key", ""),
        "url": params.get("url", ""),
        "repo_type": params.get("packageType", ""),
        "username": params.get("username", ""),
        "password": params.get("password", ""),
        "query_params": params.get("queryParams", ""),
    }
    return {k: v for k, v in settings.items() if v}


class RemoteRepositoryCheck:
    """Checks remote repository URLs from the target instance.

    Args:
        target_client: Client of the instance that runs the check plugin.
        remote_repositories: Full remote repository params, with plain-text
            passwords.
        sleep: Sleep function, replaceable in tests.
        clock: Monotonic clock, replaceable in tests.
    """

    name = REMOTE_URL_CHECK_NAME

    def __init__(
        self,
        target_client: ArtifactoryClient,
        remote_repositories: Sequence[Dict[str, Any]],
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.target_client = target_client
        self.remote_repositories = list(remote_repositories)
        self.sleep = sleep
        self.clock = clock

    def __call__(self, args: RunArguments) -> bool:
        request = [remote_repo_settings(params) for params in self.remote_repositories]
        total = self.start_check(request, args)
        task = None
        if args.progress is not None:
            task = args.progress.add_task("Remote repositories", total=total)
        try:
            inaccessible = self.wait_for_completion(args, task)
        finally:
            if task is not None:
                args.progress.remove_task(task)
        if not inaccessible:
            return True
        self.handle_failure(inaccessible)
        return False

    def start_check(self, request: List[Dict[str, str]], args: RunArguments) -> int:
        """Start the plugin run and return the number of repositories it checks."""
        # The plugin endpoint sometimes answers 404 although it is installed.
        last_error: Optional[UnexpectedStatusError] = None
        for attempt in range(START_RETRIES + 1):
            args.check_canceled()
            try:
                response = self.target_client.execute_plugin(START_PLUGIN, request)
                return int(response.json().get("total_repositories", 0) or 0)
            except UnexpectedStatusError as e:
                last_error = e
                logger.warning(
                    "[Config import] Failed to start the remote repositories check in %s (attempt %d): %s",
                    self.target_client.url,
                    attempt + 1,
                    e,
                )
                if attempt < START_RETRIES:
                    self.sleep(START_RETRY_INTERVAL_SECS)
        raise RemoteUnavailableError(
            f"Failed to start the remote repositories check in {self.target_client.url}: {last_error}"
        )

    def wait_for_completion(self, args: RunArguments, task=None) -> List[InaccessibleRepository]:
        deadline = self.clock() + POLLING_TIMEOUT_SECS
        logger.info(
            "Waiting for remote repositories check completion in Artifactory server at %s",
            self.target_client.url,
        )
        while True:
            args.check_canceled()
            response = self.target_client.plugin_status(STATUS_PLUGIN)
            body = response.json()
            logger.debug("Response from Artifactory:\n%s", response.text)
            if response.status_code == 200:
                return [
                    InaccessibleRepository.from_dict(item)
                    for item in body.get("inaccessible_repositories") or []
                ]
            if task is not None:
                args.progress.update(task, completed=int(body.get("checked_repositories", 0) or 0))
            if self.clock() >= deadline:
                raise RemoteUnavailableError(
                    "Timed out waiting for the remote repositories check to complete in "
                    f"{self.target_client.url}"
                )
            self.sleep(POLLING_INTERVAL_SECS)

    @staticmethod
    def handle_failure(inaccessible: List[InaccessibleRepository]) -> str:
        csv_path = create_csv_file(INACCESSIBLE_CSV_PREFIX, inaccessible)
        logger.info(
            "Found %d inaccessible remote repository URLs. Check the summary CSV file in: %s",
            len(inaccessible),
            csv_path,
        )
        return csv_path
