"""Artifactory server references."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class AuthMode(Enum):
    TOKEN = "token"
    BASIC = "basic"
    ANONYMOUS = "anonymous"


@dataclass
class ServerDetails:
    """One configured Artifactory instance.

    Attributes:
        server_id: Name the server is stored under in the jfpm config
        url: Artifactory base URL, e.g. "https://acme.jfrog.io/artifactory/"
        user: Username for basic auth
        password: Password or API key for basic auth
        access_token: Access token; takes priority over basic auth
        client_cert_path: Optional client certificate for mutual TLS
        client_cert_key_path: Optional key for the client certificate
    """

    server_id: str
    url: str
    user: Optional[str] = None
    password: Optional[str] = None
    access_token: Optional[str] = None
    client_cert_path: Optional[str] = None
    client_cert_key_path: Optional[str] = None

    def __post_init__(self):
        if self.url and not self.url.endswith("/"):
            self.url += "/"

    @property
    def auth_mode(self) -> AuthMode:
        if self.access_token:
            return AuthMode.TOKEN
        if self.user and self.password:
            return AuthMode.BASIC
        return AuthMode.ANONYMOUS

    def client_cert(self) -> Optional[Tuple[str, str]]:
        if self.client_cert_path and self.client_cert_key_path:
            return self.client_cert_path, self.client_cert_key_path
        return None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"url": self.url}
        if self.user:
            result["user"] = self.user
        if self.password:
            result["password"] = self.password
        if self.access_token:
            result["access_token"] = self.access_token
        if self.client_cert_path:
            result["client_cert_path"] = self.client_cert_path
        if self.client_cert_key_path:
            result["client_cert_key_path"] = self.client_cert_key_path
        return result

    @classmethod
    def from_dict(cls, server_id: str, data: Dict[str, Any]) -> "ServerDetails":
        return cls(
            server_id=server_id,
            url=data.get("url", ""),
            user=data.get("user"),
            password=data.get("password"),
            access_token=data.get("access_token"),
            client_cert_path=data.get("client_cert_path"),
            client_cert_key_path=data.get("client_cert_key_path"),
        )
