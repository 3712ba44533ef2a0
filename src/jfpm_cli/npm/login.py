"""Point the user-level npm or yarn config at an Artifactory repository."""

import logging
from typing import Optional

from ..models.server import ServerDetails
from .driver import PackageManagerDriver
from .rc import RegistryRcManager, npm_repository_url

logger = logging.getLogger(__name__)


def login(server: ServerDetails, repo: str, tool: str = "npm", driver: Optional[PackageManagerDriver] = None) -> str:
    """Set the registry and the matching auth entry for repo.

    Returns:
        The registry URL that was configured.
    """
    manager = RegistryRcManager(driver or PackageManagerDriver(tool))
    registry = npm_repository_url(server.url, repo)
    manager.configure_registry(registry)
    manager.configure_auth(
        registry, token=server.access_token, user=server.user, password=server.password
    )
    logger.debug("Configured %s to use %s", manager.driver.tool, registry)
    return registry
