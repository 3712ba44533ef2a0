"""Server configuration commands."""

import click

from .. import config as jfpm_config
from ..errors import JfpmError
from ..models.server import ServerDetails
from ..utils.console import _rich_info, _rich_success, _rich_warning, print_table
from . import exit_with_error


@click.group(help="Manage Artifactory server references")
def config():
    pass


@config.command(name="add", help="Add or replace an Artifactory server")
@click.argument("server_id")
@click.option("--url", required=True, help="Artifactory URL, e.g. https://acme.jfrog.io/artifactory")
@click.option("--user", default=None, help="Username for basic authentication")
@click.option("--password", default=None, help="Password for basic authentication")
@click.option("--access-token", default=None, help="Access token; takes priority over user/password")
@click.option("--client-cert-path", default=None, help="Client certificate for mutual TLS")
@click.option("--client-cert-key-path", default=None, help="Key of the client certificate")
@click.option("--default", "make_default", is_flag=True, help="Use this server when none is given")
def add(server_id, url, user, password, access_token, client_cert_path, client_cert_key_path, make_default):
    server = ServerDetails(
        server_id=server_id,
        url=url,
        user=user,
        password=password,
        access_token=access_token,
        client_cert_path=client_cert_path,
        client_cert_key_path=client_cert_key_path,
    )
    try:
        jfpm_config.add_server(server, make_default=make_default)
    except JfpmError as e:
        exit_with_error(e)
    _rich_success(f"Server '{server_id}' saved ({server.auth_mode.value} authentication)")


@config.command(name="list", help="List configured servers")
def list_servers():
    servers = jfpm_config.list_servers()
    if not servers:
        _rich_info("No servers configured. Run 'jfpm config add <server-id> --url <url>'.")
        return
    default_id = jfpm_config.get_config().get("default_server")
    rows = [
        [
            s.server_id + (" (default)" if s.server_id == default_id else ""),
            s.url,
            s.auth_mode.value,
            s.user or "",
        ]
        for s in servers
    ]
    print_table("Servers", ["Server ID", "URL", "Auth", "User"], rows)


@config.command(name="remove", help="Remove a server")
@click.argument("server_id")
def remove(server_id):
    if jfpm_config.remove_server(server_id):
        _rich_success(f"Server '{server_id}' removed")
    else:
        _rich_warning(f"Server '{server_id}' does not exist")
