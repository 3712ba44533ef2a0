"""Error types raised by jfpm commands.

Library code raises these; the click layer turns them into a message on
stderr and an exit code.
"""

from typing import List, Optional


class JfpmError(Exception):
    """Base class for every error jfpm reports to the user."""

    exit_code = 1


class ConfigInvalidError(JfpmError):
    """Configuration file or command flags are missing or malformed."""


class UnsupportedToolError(JfpmError):
    """The local package manager is missing or too old."""


class UnsupportedVersionError(JfpmError):
    """The Artifactory server is too old for the requested operation."""


class RepoNotFoundError(JfpmError):
    """The target repository does not exist on the server."""

    def __init__(self, repo_key: str, message: Optional[str] = None):
        self.repo_key = repo_key
        super().__init__(message or f"Repository '{repo_key}' does not exist")


class AuthFailedError(JfpmError):
    """The server rejected the configured credentials."""


class UploadFailedError(JfpmError):
    """One or more files failed to upload."""


class ScanViolationError(JfpmError):
    """The security scan failed, so nothing was published."""


class MissingPackageJsonError(JfpmError):
    """A tarball does not contain package/package.json."""


class ToolFailedError(JfpmError):
    """The wrapped package manager exited with a non-zero code."""

    def __init__(self, command: str, exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        message = f"'{command}' exited with code {exit_code}"
        if stderr:
            message += f": {stderr.strip()}"
        super().__init__(message)


class RemoteUnavailableError(JfpmError):
    """The server could not be reached or answered with an unexpected status."""


class UnexpectedStatusError(RemoteUnavailableError):
    """The server answered, but not with one of the expected status codes."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(message)


class SameServerError(JfpmError):
    """Source and target of a transfer point at the same server."""


class ConflictError(JfpmError):
    """Source and target configuration disagree."""


class CanceledError(JfpmError):
    """The operation was canceled before it completed."""


class CompoundError(JfpmError):
    """Several errors that happened on the same code path.

    The first error is the primary failure; later ones come from cleanup.
    """

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        lines = [str(e) for e in self.errors]
        super().__init__(f"{len(lines)} errors occurred:\n " + "\n ".join(lines))

    @property
    def exit_code(self) -> int:
        primary = self.errors[0] if self.errors else None
        return getattr(primary, "exit_code", 1) or 1


def combine_errors(primary: Optional[BaseException], cleanup: Optional[BaseException]) -> Optional[BaseException]:
    """Merge a cleanup error into a prior error without masking it.

    Returns:
        None if neither failed, the single error if only one did, and a
        CompoundError (primary first) if both did.
    """
    if primary is None:
        return cleanup
    if cleanup is None:
        return primary
    return CompoundError([primary, cleanup])
