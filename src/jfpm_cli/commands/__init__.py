"""Click command groups of the jfpm CLI."""

import sys
from typing import NoReturn

from ..errors import JfpmError
from ..utils.console import _rich_error


def exit_with_error(error: JfpmError) -> NoReturn:
    """Print a jfpm error and exit with its code (the tool's own code for tool failures)."""
    _rich_error(str(error))
    sys.exit(error.exit_code or 1)
