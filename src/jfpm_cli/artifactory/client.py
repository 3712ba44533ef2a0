"""Thin Artifactory REST client on top of requests.

Only the endpoints jfpm consumes are wrapped. Every method translates
transport and status failures into jfpm errors.
"""

import hashlib
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from ..errors import (
    AuthFailedError,
    CanceledError,
    RemoteUnavailableError,
    RepoNotFoundError,
    UnexpectedStatusError,
)
from ..models.build import Checksum
from ..models.server import AuthMode, ServerDetails

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
LATEST_BUILD_NUMBER = "LATEST"
PLUGINS_EXECUTE_API = "api/plugins/execute/"
PROJECTS_API = "access/api/v1/projects"
ACCESS_PING_API = "access/api/v1/system/ping"


def npm_aql_query(name: str, version: str) -> str:
    """AQL locating the tarball of one npm package version."""
    return (
        'items.find({"@npm.name":"%s","$or":[{"@npm.version":"%s"},{"@npm.version":"v%s"}]})'
        '.include("name","repo","path","actual_sha1","actual_md5","sha256")' % (name, version, version)
    )


def calculate_checksums(path: Path) -> Checksum:
    sha1 = hashlib.sha1()
    md5 = hashlib.md5()
    sha256 = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            sha1.update(chunk)
            md5.update(chunk)
            sha256.update(chunk)
    return Checksum(sha1=sha1.hexdigest(), md5=md5.hexdigest(), sha256=sha256.hexdigest())


def encode_properties(props: Dict[str, str]) -> str:
    """Encode properties as Artifactory matrix parameters (";k=v;k2=v2")."""
    return "".join(
        f";{quote(key, safe='.')}={quote(str(value), safe='')}" for key, value in props.items()
    )


class ArtifactoryClient:
    """REST operations against one Artifactory server.

    Args:
        server: Server reference; its auth mode picks the credentials used.
        session: Optional requests session, mostly for tests.
        cancel_event: When set, the next request raises CanceledError.
    """

    def __init__(
        self,
        server: ServerDetails,
        session: Optional[requests.Session] = None,
        cancel_event: Optional[threading.Event] = None,
        timeout: int = DEFAULT_TIMEOUT,
    ):
        self.server = server
        self.cancel_event = cancel_event
        self.timeout = timeout
        self.session = session or requests.Session()
        self._configure_auth()

    def _configure_auth(self) -> None:
        mode = self.server.auth_mode
        if mode is AuthMode.TOKEN:
            self.session.headers["Authorization"] = f"Bearer {self.server.access_token}"
        elif mode is AuthMode.BASIC:
            self.session.auth = (self.server.user, self.server.password)
        cert = self.server.client_cert()
        if cert:
            self.session.cert = cert

    @property
    def url(self) -> str:
        return self.server.url

    def _request(
        self,
        method: str,
        path: str,
        expected: Iterable[int] = (200,),
        **kwargs: Any,
    ) -> requests.Response:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CanceledError(f"Request to {path} was canceled")
        url = self.url + path.lstrip("/")
        kwargs.setdefault("timeout", self.timeout)
        logger.debug("%s %s", method, url)
        try:
            response = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise RemoteUnavailableError(f"Failed to reach {self.url}: {e}")
        if response.status_code in (401, 403):
            raise AuthFailedError(
                f"Artifactory at {self.url} rejected the request to {path} "
                f"({response.status_code}). Check the configured credentials."
            )
        if response.status_code not in tuple(expected):
            raise UnexpectedStatusError(
                response.status_code,
                f"Artifactory response for {method} {path}: {response.status_code}\n{response.text}",
            )
        return response

    # System

    def get_version(self) -> str:
        return self._request("GET", "api/system/version").json()["version"]

    def ping(self) -> bool:
        """Return True if the server answers the ping with the configured credentials."""
        self._request("GET", "api/system/ping")
        return True

    def deactivate_key_encryption(self) -> bool:
        """Decrypt stored secrets. Returns False if they were already decrypted."""
        response = self._request("POST", "api/system/decrypt", expected=(200, 409))
        return response.status_code == 200

    def activate_key_encryption(self) -> None:
        self._request("POST", "api/system/encrypt")

    def get_locked_users(self) -> List[str]:
        return list(self._request("GET", "api/security/lockedUsers").json())

    def unlock_user(self, username: str) -> None:
        self._request("POST", f"api/security/unlockUsers/{quote(username)}")

    # Repositories

    def list_repositories(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", "api/repositories").json())

    def get_repository(self, repo_key: str) -> Dict[str, Any]:
        """Return the full configuration of a repository.

        Raises:
            RepoNotFoundError: If the repository does not exist.
        """
        response = self._request(
            "GET", f"api/repositories/{quote(repo_key)}", expected=(200, 400, 404)
        )
        if response.status_code != 200:
            raise RepoNotFoundError(repo_key)
        return response.json()

    def repository_exists(self, repo_key: str) -> bool:
        try:
            self.get_repository(repo_key)
        except RepoNotFoundError:
            return False
        return True

    def create_repository(self, repo_key: str, params: Dict[str, Any]) -> None:
        logger.debug("Creating repository %s", repo_key)
        self._request("PUT", f"api/repositories/{quote(repo_key)}", json=params, expected=(200, 201))

    def update_repository(self, repo_key: str, params: Dict[str, Any]) -> None:
        logger.debug("Updating repository %s", repo_key)
        self._request("POST", f"api/repositories/{quote(repo_key)}", json=params)

    # Projects

    def ping_access(self) -> bool:
        """Return True if the Access service accepts the configured token."""
        self._request("GET", ACCESS_PING_API)
        return True

    def list_projects(self) -> List[Dict[str, Any]]:
        return list(self._request("GET", PROJECTS_API).json())

    def create_project(self, project: Dict[str, Any]) -> None:
        self._request("POST", PROJECTS_API, json=project, expected=(200, 201))

    def assign_repo_to_project(self, repo_key: str, project_key: str, force: bool = True) -> None:
        self._request(
            "PUT",
            f"{PROJECTS_API}/_/attach/repositories/{quote(repo_key)}/{quote(project_key)}",
            params={"force": str(force).lower()},
            expected=(200, 204),
        )

    def unassign_repo_from_project(self, repo_key: str) -> None:
        self._request(
            "DELETE", f"{PROJECTS_API}/_/attach/repositories/{quote(repo_key)}", expected=(200, 204)
        )

    # Search and builds

    def aql(self, query: str) -> Dict[str, Any]:
        response = self._request(
            "POST", "api/search/aql", data=query, headers={"Content-Type": "text/plain"}
        )
        return response.json()

    def get_build_info(
        self, build_name: str, build_number: str = LATEST_BUILD_NUMBER, project: str = ""
    ) -> Optional[Dict[str, Any]]:
        """Fetch a published build-info. Returns None if the build does not exist."""
        params = {"project": project} if project else None
        response = self._request(
            "GET",
            f"api/build/{quote(build_name, safe='')}/{quote(build_number, safe='')}",
            params=params,
            expected=(200, 404),
        )
        if response.status_code == 404:
            return None
        return response.json().get("buildInfo")

    # Upload

    def upload(
        self, local_path: Path, target: str, props: Optional[Dict[str, str]] = None
    ) -> Dict[str, Any]:
        """Deploy a file to ``<repo>/<path>`` with optional properties.

        Returns:
            Dict with "source", "target" and the file checksums.
        """
        local_path = Path(local_path)
        checksum = calculate_checksums(local_path)
        headers = {
            "X-Checksum-Sha1": checksum.sha1,
            "X-Checksum-Sha256": checksum.sha256,
            "X-Checksum": checksum.md5,
        }
        path = quote(target) + encode_properties(props or {})
        with open(local_path, "rb") as f:
            self._request("PUT", path, data=f, headers=headers, expected=(200, 201))
        logger.debug("Uploaded %s to %s", local_path, target)
        return {
            "source": str(local_path),
            "target": target,
            "sha1": checksum.sha1,
            "sha256": checksum.sha256,
            "md5": checksum.md5,
        }

    # User plugins

    def execute_plugin(self, name: str, body: Any = None, expected: Iterable[int] = (200,)) -> requests.Response:
        return self._request("POST", PLUGINS_EXECUTE_API + name, json=body, expected=expected)

    def plugin_status(self, name: str, expected: Iterable[int] = (200, 202)) -> requests.Response:
        return self._request("GET", PLUGINS_EXECUTE_API + name, expected=expected)
