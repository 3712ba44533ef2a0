"""Serial runner for named pre-flight checks."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from rich.progress import Progress, SpinnerColumn, TextColumn

from ..artifactory.client import ArtifactoryClient
from ..errors import CanceledError
from ..models.server import ServerDetails
from ..utils.console import _get_console, print_title

logger = logging.getLogger(__name__)


@dataclass
class RunArguments:
    """What every check receives.

    Attributes:
        server: Server the checks run against
        client: Client for that server
        cancel_event: Set to stop the run at the next check or poll
        progress: Live progress display, or None when not shown
    """

    server: ServerDetails
    client: Optional[ArtifactoryClient] = None
    cancel_event: Optional[threading.Event] = None
    progress: Optional[Progress] = None

    def check_canceled(self) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise CanceledError("The pre-checks run was canceled")


@dataclass
class PreCheck:
    """A named check. The function returns True if the check passed."""

    name: str
    check: Callable[[RunArguments], bool]

    def execute(self, args: RunArguments) -> bool:
        return self.check(args)


@dataclass
class RunStatus:
    successes: int = 0
    failures: int = 0
    current_check: str = ""
    start_time: float = field(default_factory=time.monotonic)

    @property
    def total(self) -> int:
        return self.successes + self.failures


class CheckRunner:
    """Runs checks one after the other in registration order.

    A check that returns False is counted as a failure and the run goes on.
    A check that raises is counted as a failure and ends the run; the error
    propagates to the caller.
    """

    def __init__(self, show_progress: bool = False):
        self.checks: List[PreCheck] = []
        self.status = RunStatus()
        self.show_progress = show_progress
        self._task = None

    def add_check(self, check: Optional[PreCheck]) -> None:
        if check is None:
            return
        self.checks.append(check)

    def run(self, args: RunArguments) -> RunStatus:
        print_title(f"Running {len(self.checks)} checks.")
        self.status = RunStatus()
        error: Optional[BaseException] = None
        progress = None
        if self.show_progress and args.progress is None:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=_get_console(),
                transient=True,
            )
            args.progress = progress
            progress.start()
            self._task = progress.add_task("Running check:", total=None)
        try:
            for number, check in enumerate(self.checks, start=1):
                args.check_canceled()
                self._prepare(number, check, progress)
                try:
                    passed = check.execute(args)
                except BaseException as e:
                    error = e
                    self._finish(check.name, False)
                    raise
                self._finish(check.name, passed)
        finally:
            if progress is not None:
                progress.stop()
                args.progress = None
            self._log_summary(error)
        return self.status

    def _prepare(self, number: int, check: PreCheck, progress: Optional[Progress]) -> None:
        logger.info("== Running check (%d) '%s' ======", number, check.name)
        self.status.current_check = check.name
        if progress is not None:
            progress.update(self._task, description=f"Running check: {check.name}")

    def _finish(self, name: str, passed: bool) -> None:
        if passed:
            self.status.successes += 1
        else:
            self.status.failures += 1
        logger.info("Check '%s' is done with status %s", name, "Success" if passed else "Fail")

    def _log_summary(self, error: Optional[BaseException]) -> None:
        elapsed = time.monotonic() - self.status.start_time
        if self.status.failures == 0 and self.status.total == len(self.checks) and error is None:
            logger.info("All the checks passed (elapsed time %.1fs).", elapsed)
        else:
            logger.error(
                "%d/%d checks passed (elapsed time %.1fs), check the log for more information.",
                self.status.successes,
                self.status.total,
                elapsed,
            )
