"""Artifactory configuration transfer commands."""

import sys

import click

from .. import config as jfpm_config
from ..errors import JfpmError
from ..transfer.base import split_patterns
from ..transfer.merge import ConfigMergeCommand
from ..transfer.prechecks import TransferPreChecksCommand
from ..utils.console import _rich_info, _rich_panel, _rich_success, _rich_warning
from . import exit_with_error


@click.group(help="Artifactory operations")
def rt():
    pass


def _repo_filter_options(func):
    func = click.option("--exclude-repos", default=None, help="';'-separated repository patterns to skip")(func)
    func = click.option("--include-repos", default=None, help="';'-separated repository patterns to include")(func)
    return func


@rt.command(name="transfer-config-merge", help="Merge projects and repositories from a source into a target")
@click.argument("source_server_id")
@click.argument("target_server_id")
@_repo_filter_options
@click.option("--include-projects", default=None, help="';'-separated project key patterns to include")
@click.option("--exclude-projects", default=None, help="';'-separated project key patterns to skip")
def transfer_config_merge(source_server_id, target_server_id, include_repos, exclude_repos, include_projects, exclude_projects):
    try:
        command = ConfigMergeCommand(
            jfpm_config.get_server(source_server_id),
            jfpm_config.get_server(target_server_id),
            include_repos=split_patterns(include_repos),
            exclude_repos=split_patterns(exclude_repos),
            include_projects=split_patterns(include_projects),
            exclude_projects=split_patterns(exclude_projects),
        )
        result = command.run()
    except JfpmError as e:
        exit_with_error(e)

    if result.csv_path:
        _rich_panel(
            f"{len(result.conflicts)} conflicts were found and left untouched.\n"
            f"Report: {result.csv_path}\n"
            "Resolve them on the source or the target, or exclude them with "
            "--exclude-repos / --exclude-projects.",
            title="Conflicts",
            style="yellow",
        )
    _rich_success(
        f"Transferred {len(result.transferred_projects)} projects and "
        f"{len(result.transferred_repositories)} repositories"
    )
    if result.federated_members_removed:
        _rich_warning(
            "Federated repositories were transferred without their members. "
            "Add the members on the target instance."
        )


@rt.command(name="transfer-prechecks", help="Run pre-flight checks before a config transfer")
@click.argument("source_server_id")
@click.argument("target_server_id")
@_repo_filter_options
def transfer_prechecks(source_server_id, target_server_id, include_repos, exclude_repos):
    try:
        command = TransferPreChecksCommand(
            jfpm_config.get_server(source_server_id),
            jfpm_config.get_server(target_server_id),
            include_repos=split_patterns(include_repos),
            exclude_repos=split_patterns(exclude_repos),
            show_progress=True,
        )
        status = command.run()
    except JfpmError as e:
        exit_with_error(e)

    if status.failures:
        _rich_warning(f"{status.successes}/{status.total} checks passed")
        sys.exit(1)
    _rich_info("All the checks passed")
