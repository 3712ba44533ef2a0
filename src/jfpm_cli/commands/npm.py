"""npm commands: resolve from and publish to Artifactory, with build-info."""

from pathlib import Path

import click

from .. import config as jfpm_config
from ..errors import JfpmError
from ..npm.install import NpmInstallOrCiCommand, NpmNativeCommand
from ..npm.login import login as configure_login
from ..npm.publish import NpmPublishCommand
from ..utils.console import _rich_info, _rich_success, _rich_warning, print_json
from ..utils.project_config import DEPLOYER_PREFIX, RESOLVER_PREFIX, get_repository_config
from . import exit_with_error

NPM_TOOL = "npm"
PASSTHROUGH_SETTINGS = {"ignore_unknown_options": True, "allow_extra_args": True}


class NpmGroup(click.Group):
    """Group that runs unknown subcommands as native npm commands."""

    def get_command(self, ctx, cmd_name):
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        return _native_command(cmd_name)


def _native_command(name: str) -> click.Command:
    @click.command(name=name, context_settings=PASSTHROUGH_SETTINGS, help=f"Run 'npm {name}' against Artifactory")
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    def native(args):
        try:
            repo_config = get_repository_config(NPM_TOOL, RESOLVER_PREFIX, Path.cwd())
            NpmNativeCommand(name, args, repo_config).run()
        except JfpmError as e:
            exit_with_error(e)

    return native


@click.group(cls=NpmGroup, help="Run npm against Artifactory")
def npm():
    pass


@npm.command(name="login", help="Point the user npm config at an Artifactory repository")
@click.option("--server-id", default=None, help="Configured server; defaults to the default server")
@click.option("--repo", required=True, help="npm repository key")
@click.option("--yarn", "use_yarn", is_flag=True, help="Configure yarn instead of npm")
def login(server_id, repo, use_yarn):
    try:
        server = jfpm_config.get_server(server_id)
        registry = configure_login(server, repo, tool="yarn" if use_yarn else NPM_TOOL)
    except JfpmError as e:
        exit_with_error(e)
    _rich_success(f"Registry set to {registry}")


def _run_install(command: str, args) -> None:
    try:
        repo_config = get_repository_config(NPM_TOOL, RESOLVER_PREFIX, Path.cwd())
        result = NpmInstallOrCiCommand(command, args, repo_config).run()
    except JfpmError as e:
        exit_with_error(e)
    if result.build_info_collected:
        _rich_info(
            f"Build-info module '{result.module_id}' saved with {len(result.resolved)} dependencies"
        )
        if result.missing:
            _rich_warning(f"{len(result.missing)} dependencies were not found in Artifactory")


@npm.command(name="install", context_settings=PASSTHROUGH_SETTINGS, help="Run 'npm install' and collect build-info")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def install(args):
    _run_install("install", args)


@npm.command(name="ci", context_settings=PASSTHROUGH_SETTINGS, help="Run 'npm ci' and collect build-info")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def ci(args):
    _run_install("ci", args)


@npm.command(name="publish", context_settings=PASSTHROUGH_SETTINGS, help="Pack and deploy the package to Artifactory")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def publish(args):
    try:
        repo_config = get_repository_config(NPM_TOOL, DEPLOYER_PREFIX, Path.cwd())
        command = NpmPublishCommand(args, repo_config)
        result = command.run()
    except JfpmError as e:
        exit_with_error(e)
    if command.detailed_summary:
        print_json(result.summary())
    else:
        _rich_success(f"Published {result.target}")
