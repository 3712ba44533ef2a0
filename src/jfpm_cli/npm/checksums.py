"""Checksum reconciliation of resolved dependencies against Artifactory.

Each dependency takes its checksum from the previous build when that build
recorded it, otherwise from an AQL lookup. Lookups run on a bounded pool of
worker threads that pull dependency keys from a shared queue.
"""

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from ..artifactory.client import ArtifactoryClient, npm_aql_query
from ..errors import CanceledError
from ..models.build import BuildDependency, Checksum
from ..models.dependency import Dependency

logger = logging.getLogger(__name__)


def get_dependencies_from_latest_build(
    client: ArtifactoryClient, build_name: str, project: str = ""
) -> Dict[str, BuildDependency]:
    """Index the dependencies of the latest published build by id.

    A build that was never published yields an empty map.
    """
    dependencies: Dict[str, BuildDependency] = {}
    build_info = client.get_build_info(build_name, project=project)
    if not build_info:
        return dependencies
    for module in build_info.get("modules") or []:
        for data in module.get("dependencies") or []:
            dependency = BuildDependency.from_dict(data)
            dependencies[dependency.id] = dependency
    return dependencies


def get_dependency_info(
    name: str,
    version: str,
    previous_build: Dict[str, BuildDependency],
    client: ArtifactoryClient,
) -> Tuple[Optional[Checksum], str]:
    """Return (checksum, file type) for one dependency.

    The checksum is None when Artifactory has no matching package.
    """
    dep_id = f"{name}:{version}"
    previous = previous_build.get(dep_id)
    if previous is not None and previous.checksum is not None:
        return previous.checksum, previous.type

    logger.debug("Fetching checksums for %s", dep_id)
    results = client.aql(npm_aql_query(name, version)).get("results") or []
    if not results:
        logger.debug("%s could not be found in Artifactory", dep_id)
        return None, ""
    item = results[0]
    file_name = item.get("name", "")
    file_type = file_name.rsplit(".", 1)[1] if "." in file_name else ""
    checksum = Checksum(
        sha1=item.get("actual_sha1", ""),
        md5=item.get("actual_md5", ""),
        sha256=item.get("sha256", ""),
    )
    logger.debug("%s was found in Artifactory: %s sha1=%s", dep_id, file_name, checksum.sha1)
    return checksum, file_type


class ChecksumReconciler:
    """Fills checksum and file type of every dependency.

    Args:
        client: Artifactory client used for AQL lookups.
        previous_build: Dependencies of the previous build, keyed by id.
        threads: Number of worker threads.
        cancel_event: When set, workers stop with CanceledError at their
            next lookup.
    """

    def __init__(
        self,
        client: ArtifactoryClient,
        previous_build: Optional[Dict[str, BuildDependency]] = None,
        threads: int = 3,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.previous_build = previous_build or {}
        self.threads = max(1, threads)
        self.cancel_event = cancel_event
        self._errors: List[BaseException] = []
        self._lock = threading.Lock()
        self._failed = threading.Event()

    def _process(self, dependency: Dependency) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CanceledError("Dependency checksum collection was canceled")
        checksum, file_type = get_dependency_info(
            dependency.name, dependency.version, self.previous_build, self.client
        )
        if checksum is None:
            return
        dependency.checksum = checksum
        dependency.file_type = file_type

    def _worker(self, tasks: "queue.Queue[Dependency]") -> None:
        while not self._failed.is_set():
            try:
                dependency = tasks.get_nowait()
            except queue.Empty:
                return
            try:
                self._process(dependency)
            except Exception as e:
                with self._lock:
                    self._errors.append(e)
                self._failed.set()

    def reconcile(self, dependencies: Dict[str, Dependency]) -> Tuple[List[Dependency], List[Dependency]]:
        """Reconcile all dependencies.

        Returns:
            (resolved, missing): dependencies with and without a checksum.

        Raises:
            The first error any worker hit. Workers stop picking up new
            dependencies after an error; lookups already running finish.
        """
        tasks: "queue.Queue[Dependency]" = queue.Queue()
        for dependency in dependencies.values():
            tasks.put(dependency)

        with ThreadPoolExecutor(max_workers=self.threads) as executor:
            futures = [executor.submit(self._worker, tasks) for _ in range(self.threads)]
            for future in futures:
                future.result()

        if self._errors:
            raise self._errors[0]

        resolved = [d for d in dependencies.values() if d.checksum is not None]
        missing = [d for d in dependencies.values() if d.checksum is None]
        return resolved, missing
