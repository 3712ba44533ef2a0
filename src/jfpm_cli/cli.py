"""jfpm command-line entry point."""

import logging
import os

import click
from rich.logging import RichHandler

from . import __version__
from .commands.config import config
from .commands.npm import npm
from .commands.rt import rt
from .commands.terraform import terraform
from .utils.console import _get_err_console

LOG_LEVEL_ENV = "JFPM_LOG_LEVEL"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def setup_logging(level: str) -> None:
    """Send jfpm_cli log records to stderr through rich."""
    logger = logging.getLogger("jfpm_cli")
    logger.setLevel(level.upper())
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=_get_err_console(), show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)
    logger.propagate = False


@click.group(help="Run npm and terraform against Artifactory and transfer Artifactory config")
@click.version_option(__version__, prog_name="jfpm")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.environ.get(LOG_LEVEL_ENV, "INFO").upper(),
    show_default="INFO",
    help=f"Logging level (also read from {LOG_LEVEL_ENV})",
)
def cli(log_level):
    setup_logging(log_level)


cli.add_command(config)
cli.add_command(npm)
cli.add_command(terraform)
cli.add_command(rt)


def main():
    cli(prog_name="jfpm")


if __name__ == "__main__":
    main()
