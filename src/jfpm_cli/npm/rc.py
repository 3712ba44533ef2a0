"""Registry and auth entries in the package manager's user-level rc file.

All writes go through the tool's own ``config set`` / ``config delete`` so
the tool stays the owner of its rc file.
"""

import base64
import logging
from typing import Optional
from urllib.parse import urlparse

from .driver import PackageManagerDriver

logger = logging.getLogger(__name__)

AUTH_SUFFIX = "_auth"
AUTH_TOKEN_SUFFIX = "_authToken"


def npm_repository_url(server_url: str, repo: str) -> str:
    """Return the npm registry URL of an Artifactory repository."""
    if not server_url.endswith("/"):
        server_url += "/"
    return f"{server_url}api/npm/{repo}"


def auth_key(repo_url: str, suffix: str) -> str:
    """Build the host-bound auth key, e.g. "//acme.jfrog.io/artifactory/api/npm/repo:_auth"."""
    parsed = urlparse(repo_url)
    host_path = f"{parsed.netloc}{parsed.path}" if parsed.scheme else repo_url
    return f"//{host_path}:{suffix}"


def basic_auth_value(user: str, password: str) -> str:
    return base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")


class RegistryRcManager:
    """Writes registry and auth entries for npm or yarn.

    Auth keys for one registry are kept as a matched set: writing one kind
    deletes the other, and anonymous deletes both.
    """

    def __init__(self, driver: Optional[PackageManagerDriver] = None):
        self.driver = driver or PackageManagerDriver("npm")

    @property
    def is_yarn(self) -> bool:
        return self.driver.tool == "yarn"

    def config_set(self, key: str, value: str, json_input: bool = False) -> None:
        args = ["config", "set", key, value]
        if json_input and self.is_yarn:
            args.append("--json")
        self.driver.capture(args)

    def config_delete(self, key: str) -> None:
        self.driver.capture(["config", "delete", key])

    def configure_registry(self, repo_url: str) -> None:
        logger.debug("Setting %s registry to %s", self.driver.tool, repo_url)
        self.config_set("registry", repo_url)

    def configure_auth(
        self,
        repo_url: str,
        token: Optional[str] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
    ) -> None:
        """Write the auth entry for repo_url; the token wins over user+password."""
        token_key = auth_key(repo_url, AUTH_TOKEN_SUFFIX)
        basic_key = auth_key(repo_url, AUTH_SUFFIX)
        if token:
            self.config_delete(basic_key)
            self.config_set(token_key, token)
        elif user and password:
            self.config_delete(token_key)
            self.config_set(basic_key, basic_auth_value(user, password))
        else:
            self.remove_auth(repo_url)

    def remove_auth(self, repo_url: str) -> None:
        """Delete both auth entries; deleting a missing key is harmless."""
        self.config_delete(auth_key(repo_url, AUTH_TOKEN_SUFFIX))
        self.config_delete(auth_key(repo_url, AUTH_SUFFIX))
