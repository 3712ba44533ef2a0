"""Configuration management for jfpm.

Server references are stored in ``~/.jfpm/config.json``. The location can be
moved with the ``JFPM_HOME`` environment variable.
"""

import json
import os
from typing import Any, Dict, List, Optional

from .errors import ConfigInvalidError
from .models.server import ServerDetails

CONFIG_DIR = os.environ.get("JFPM_HOME") or os.path.expanduser("~/.jfpm")
CONFIG_FILE = os.path.join(CONFIG_DIR, "config.json")

ENV_URL = "JFPM_URL"
ENV_USER = "JFPM_USER"
ENV_PASSWORD = "JFPM_PASSWORD"
ENV_ACCESS_TOKEN = "JFPM_ACCESS_TOKEN"
ENV_SERVER_ID = "env"


def ensure_config_exists() -> None:
    """Create the config directory and an empty config file if missing."""
    if not os.path.exists(CONFIG_DIR):
        os.makedirs(CONFIG_DIR)

    if not os.path.exists(CONFIG_FILE):
        with open(CONFIG_FILE, "w") as f:
            json.dump({"servers": {}}, f)
        os.chmod(CONFIG_FILE, 0o600)


def get_config() -> Dict[str, Any]:
    """Return the stored configuration."""
    ensure_config_exists()
    with open(CONFIG_FILE, "r") as f:
        try:
            return json.load(f)
        except ValueError as e:
            raise ConfigInvalidError(f"Config file {CONFIG_FILE} is not valid JSON: {e}")


def update_config(updates: Dict[str, Any]) -> None:
    """Merge updates into the stored configuration and write it back."""
    config = get_config()
    config.update(updates)
    with open(CONFIG_FILE, "w") as f:
        json.dump(config, f, indent=2)


def get_jfpm_home() -> str:
    return CONFIG_DIR


def get_builds_dir() -> str:
    return os.path.join(CONFIG_DIR, "builds")


def add_server(server: ServerDetails, make_default: bool = False) -> None:
    """Store a server reference, replacing one with the same id.

    Raises:
        ConfigInvalidError: If the server has no URL or an incomplete basic-auth pair.
    """
    validate_server(server)
    config = get_config()
    servers = config.get("servers", {})
    servers[server.server_id] = server.to_dict()
    updates: Dict[str, Any] = {"servers": servers}
    if make_default or not config.get("default_server"):
        updates["default_server"] = server.server_id
    update_config(updates)


def remove_server(server_id: str) -> bool:
    """Remove a server reference. Returns False if it did not exist."""
    config = get_config()
    servers = config.get("servers", {})
    if server_id not in servers:
        return False
    del servers[server_id]
    updates: Dict[str, Any] = {"servers": servers}
    if config.get("default_server") == server_id:
        updates["default_server"] = next(iter(servers), None)
    update_config(updates)
    return True


def list_servers() -> List[ServerDetails]:
    config = get_config()
    return [
        ServerDetails.from_dict(server_id, data)
        for server_id, data in config.get("servers", {}).items()
    ]


def get_server(server_id: Optional[str] = None) -> ServerDetails:
    """Look up a server by id, falling back to the default server.

    When nothing is configured, a server built from the JFPM_URL,
    JFPM_USER, JFPM_PASSWORD and JFPM_ACCESS_TOKEN environment variables is
    returned.

    Raises:
        ConfigInvalidError: If the server cannot be found.
    """
    config = get_config()
    servers = config.get("servers", {})
    lookup_id = server_id or config.get("default_server")
    if lookup_id and lookup_id in servers:
        return ServerDetails.from_dict(lookup_id, servers[lookup_id])

    env_server = _server_from_env()
    if env_server is not None and (server_id is None or server_id == ENV_SERVER_ID):
        return env_server

    if server_id:
        raise ConfigInvalidError(
            f"Server ID '{server_id}' does not exist. Add it with 'jfpm config add {server_id} --url <url>'."
        )
    raise ConfigInvalidError(
        "No server is configured. Run 'jfpm config add <server-id> --url <url>' "
        f"or set {ENV_URL}."
    )


def validate_server(server: ServerDetails) -> None:
    if not server.url:
        raise ConfigInvalidError(f"Server '{server.server_id}' has no URL")
    if bool(server.user) != bool(server.password) and not server.access_token:
        raise ConfigInvalidError(
            f"Server '{server.server_id}' must define both user and password for basic authentication"
        )


def _server_from_env() -> Optional[ServerDetails]:
    url = os.environ.get(ENV_URL)
    if not url:
        return None
    return ServerDetails(
        server_id=ENV_SERVER_ID,
        url=url,
        user=os.environ.get(ENV_USER),
        password=os.environ.get(ENV_PASSWORD),
        access_token=os.environ.get(ENV_ACCESS_TOKEN),
    )
