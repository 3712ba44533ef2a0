"""Invocation of the package-manager binary (npm or yarn)."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import IO, List, Optional, Sequence, Tuple

from ..errors import ToolFailedError, UnsupportedToolError

logger = logging.getLogger(__name__)


class PackageManagerDriver:
    """Runs one package-manager executable.

    The child process inherits the current environment. Output either goes
    straight to the terminal or, when sinks are given, is captured and
    written to them.

    Args:
        tool: Executable name looked up on PATH ("npm" or "yarn").
        executable: Explicit executable path; skips the PATH lookup.
    """

    def __init__(self, tool: str = "npm", executable: Optional[str] = None):
        self.tool = tool
        self._executable = executable
        self._version: Optional[str] = None

    @property
    def executable(self) -> str:
        if self._executable is None:
            path = shutil.which(self.tool)
            if path is None:
                raise UnsupportedToolError(
                    f"Could not find the '{self.tool}' executable. Make sure it is installed and on PATH."
                )
            self._executable = path
        return self._executable

    def _command(self, args: Sequence[str]) -> List[str]:
        return [self.executable, *args]

    def _spawn(self, args: Sequence[str], capture: bool, cwd: Optional[Path]) -> subprocess.CompletedProcess:
        cmd = self._command(args)
        logger.debug("Running: %s", " ".join([self.tool, *args]))
        try:
            return subprocess.run(
                cmd,
                stdout=subprocess.PIPE if capture else None,
                stderr=subprocess.PIPE if capture else None,
                cwd=str(cwd) if cwd else None,
                text=True,
            )
        except OSError as e:
            raise UnsupportedToolError(f"Failed to run '{self.tool}': {e}")

    def run(
        self,
        args: Sequence[str],
        stdout: Optional[IO[str]] = None,
        stderr: Optional[IO[str]] = None,
        cwd: Optional[Path] = None,
    ) -> None:
        """Run the tool with args.

        Raises:
            ToolFailedError: If the tool exits with a non-zero code.
            UnsupportedToolError: If the tool cannot be started.
        """
        capture = stdout is not None or stderr is not None
        result = self._spawn(args, capture, cwd)
        if capture:
            if stdout is not None and result.stdout:
                stdout.write(result.stdout)
            if stderr is not None and result.stderr:
                stderr.write(result.stderr)
        if result.returncode != 0:
            raise ToolFailedError(
                " ".join([self.tool, *args]), result.returncode, result.stderr if capture else ""
            )

    def capture(self, args: Sequence[str], cwd: Optional[Path] = None) -> str:
        """Run the tool and return its stdout; fails on a non-zero exit."""
        stdout, stderr, returncode = self.capture_lenient(args, cwd)
        if returncode != 0:
            raise ToolFailedError(" ".join([self.tool, *args]), returncode, stderr)
        return stdout

    def capture_lenient(self, args: Sequence[str], cwd: Optional[Path] = None) -> Tuple[str, str, int]:
        """Run the tool and return (stdout, stderr, exit code) without raising on failure."""
        result = self._spawn(args, True, cwd)
        return result.stdout or "", result.stderr or "", result.returncode

    def version(self) -> str:
        if self._version is None:
            self._version = self.capture(["--version"]).strip()
        return self._version

    def config_get(self, key: str, extra_args: Sequence[str] = (), cwd: Optional[Path] = None) -> str:
        return self.capture(["config", "get", key, *extra_args], cwd).strip()

    def config_list(self, extra_args: Sequence[str] = (), cwd: Optional[Path] = None) -> str:
        """Return `<tool> config list` output with json forced off."""
        return self.capture(["config", "list", *extra_args, "--json=false"], cwd)
