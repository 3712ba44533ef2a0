"""Terraform commands."""

from pathlib import Path

import click

from ..errors import JfpmError
from ..terraform.publish import TerraformPublishCommand
from ..utils.console import _rich_success
from ..utils.project_config import DEPLOYER_PREFIX, get_repository_config
from . import exit_with_error


@click.group(help="Publish Terraform modules to Artifactory")
def terraform():
    pass


@terraform.command(
    name="publish",
    context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
    help="Deploy every Terraform module under the current directory",
)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def publish(args):
    try:
        repo_config = get_repository_config("terraform", DEPLOYER_PREFIX, Path.cwd())
        result = TerraformPublishCommand(args, repo_config).run()
    except JfpmError as e:
        exit_with_error(e)
    _rich_success(f"Published {result.success} Terraform modules")
