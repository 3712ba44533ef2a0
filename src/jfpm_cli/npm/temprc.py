"""Temporary project `.npmrc` that points npm at Artifactory for one command.

Usage::

    with TempRcOrchestrator(driver, cwd, registry, server) as temp_rc:
        driver.run(["install"])

On exit the project's original `.npmrc` is put back byte for byte (or
removed if there was none) and the auth environment variables are reset.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from ..errors import CompoundError, ConfigInvalidError
from ..models.dependency import TypeRestriction
from ..models.server import AuthMode, ServerDetails
from ..utils.version import NPM_SCOPED_AUTH_ENV_MIN_VERSION, is_version_at_least
from .driver import PackageManagerDriver
from .rc import AUTH_SUFFIX, AUTH_TOKEN_SUFFIX, auth_key, basic_auth_value
from .resolver import update_type_restriction

logger = logging.getLogger(__name__)

NPMRC_FILE_NAME = ".npmrc"
NPMRC_BACKUP_FILE_NAME = "jfrog.npmrc.backup"

# Keys jfpm writes itself, or that must not leak into the temporary file
_RESERVED_KEYS = ("registry", "metrics-registry", "json")
_RESERVED_PREFIXES = ("//", ";", "@")


def is_valid_key(key: str) -> bool:
    return not key.startswith(_RESERVED_PREFIXES) and key not in _RESERVED_KEYS


def add_array_configs(conf: List[str], key: str, array_value: str) -> None:
    """Expand "[a,b]" into "key[] = a" and "key[] = b" lines."""
    if array_value == "[]":
        return
    for value in array_value[1:-1].split(","):
        conf.append(f"{key}[] = {value}")


def auth_env_vars(server: ServerDetails, registry: str, npm_version: str) -> Dict[str, str]:
    """Environment variables that hand npm the registry credentials.

    npm 9.3.1 and later read host-bound keys from the environment; older
    versions only honor the unscoped `_auth`/`_authToken` variables.
    """
    mode = server.auth_mode
    if mode is AuthMode.TOKEN:
        suffix, value = AUTH_TOKEN_SUFFIX, server.access_token
    elif mode is AuthMode.BASIC:
        suffix, value = AUTH_SUFFIX, basic_auth_value(server.user, server.password)
    else:
        return {}
    if is_version_at_least(npm_version, NPM_SCOPED_AUTH_ENV_MIN_VERSION):
        return {f"npm_config_{auth_key(registry, suffix)}": value}
    return {f"npm_config_{suffix}": value}


def restore_error_prefix(working_dir: Path) -> str:
    npmrc = working_dir / NPMRC_FILE_NAME
    backup = working_dir / NPMRC_BACKUP_FILE_NAME
    return (
        "Error occurred while restoring project .npmrc file. "
        f"Delete '{npmrc}' and move '{backup}' (if exists) to '{npmrc}' in order to restore the project. "
        "Failure cause: \n"
    )


class TempRcOrchestrator:
    """Backs up, rewrites and restores the project `.npmrc` around a command.

    Args:
        driver: Driver of the npm executable.
        working_dir: Project directory holding `.npmrc`.
        registry: Artifactory npm registry URL.
        server: Server whose credentials are injected.
        npm_args: Extra npm arguments, passed to `npm config list`.
        json_output: Value written as `json = ...`.
        package_scope: Scope of the current project ("@scope"), if any.
    """

    def __init__(
        self,
        driver: PackageManagerDriver,
        working_dir: Path,
        registry: str,
        server: ServerDetails,
        npm_args: Sequence[str] = (),
        json_output: bool = True,
        package_scope: str = "",
    ):
        self.driver = driver
        self.working_dir = Path(working_dir)
        self.registry = registry
        self.server = server
        self.npm_args = list(npm_args)
        self.json_output = json_output
        self.package_scope = package_scope
        self.type_restriction = TypeRestriction.DEFAULT
        self._saved_env: Dict[str, Optional[str]] = {}
        self._prepared = False
        self._backed_up = False

    @property
    def npmrc_path(self) -> Path:
        return self.working_dir / NPMRC_FILE_NAME

    @property
    def backup_path(self) -> Path:
        return self.working_dir / NPMRC_BACKUP_FILE_NAME

    def prepare_config_data(self, config_text: str) -> str:
        """Turn `npm config list` output into the temporary `.npmrc` content."""
        conf: List[str] = []
        overridden_scopes = set()
        for line in config_text.splitlines():
            if not line:
                continue
            parts = line.split("=", 1)
            key = parts[0].strip()
            if len(parts) == 2 and is_valid_key(key):
                value = parts[1].strip()
                if value.startswith("[") and value.endswith("]"):
                    add_array_configs(conf, key, value)
                else:
                    conf.append(line)
                self.type_restriction = update_type_restriction(self.type_restriction, key, value)
            elif key.startswith("@"):
                # Scoped registries are redirected to Artifactory as well
                conf.append(f"{key} = {self.registry}")
                overridden_scopes.add(key.split(":", 1)[0])

        if self.package_scope and self.package_scope not in overridden_scopes:
            conf.append(f"{self.package_scope}:registry = {self.registry}")
        conf.append(f"json = {str(self.json_output).lower()}")
        conf.append(f"registry = {self.registry}")
        return "\n".join(conf) + "\n"

    def backup_project_rc(self) -> None:
        if not self.npmrc_path.exists():
            # Left over from an interrupted run
            if self.backup_path.exists():
                logger.debug("Removing stale %s", self.backup_path)
                self.backup_path.unlink()
            return
        shutil.copy2(self.npmrc_path, self.backup_path)
        self._backed_up = True
        logger.debug("Project .npmrc file backed up to %s", self.backup_path)

    def create_temp_rc(self) -> None:
        logger.debug("Creating project .npmrc file")
        config_text = self.driver.config_list(self.npm_args, cwd=self.working_dir)
        data = self.prepare_config_data(config_text)
        if self.npmrc_path.exists():
            self.npmrc_path.unlink()
        self.npmrc_path.write_text(data, encoding="utf-8")
        os.chmod(self.npmrc_path, 0o600)

    def set_auth_env(self, npm_version: str) -> None:
        for name, value in auth_env_vars(self.server, self.registry, npm_version).items():
            if name not in self._saved_env:
                self._saved_env[name] = os.environ.get(name)
            os.environ[name] = value

    def unset_auth_env(self) -> None:
        for name, previous in self._saved_env.items():
            if previous is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = previous
        self._saved_env.clear()

    def prepare(self) -> None:
        """Back up the project `.npmrc`, write the temporary one and export auth."""
        if not self.working_dir.is_dir():
            raise ConfigInvalidError(f"Working directory {self.working_dir} does not exist")
        self._prepared = True
        self.backup_project_rc()
        self.create_temp_rc()
        self.set_auth_env(self.driver.version())

    def restore(self) -> None:
        """Put the original `.npmrc` back. Always unsets the auth variables.

        Raises:
            ConfigInvalidError: If the file could not be restored; the message
                explains how to restore it by hand.
        """
        self.unset_auth_env()
        if not self._prepared:
            return
        logger.debug("Restoring project .npmrc file")
        try:
            if self._backed_up:
                os.replace(self.backup_path, self.npmrc_path)
                logger.debug("Restored project .npmrc file from %s", self.backup_path)
            elif self.npmrc_path.exists():
                self.npmrc_path.unlink()
        except OSError as e:
            raise ConfigInvalidError(restore_error_prefix(self.working_dir) + str(e))
        self._prepared = False
        self._backed_up = False

    def __enter__(self) -> "TempRcOrchestrator":
        try:
            self.prepare()
        except BaseException as e:
            try:
                self.restore()
            except ConfigInvalidError as restore_error:
                raise CompoundError([e, restore_error]) from e
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.restore()
        except ConfigInvalidError as restore_error:
            if exc is None:
                raise
            raise CompoundError([exc, restore_error]) from exc
        return False
