"""Shared fixtures for jfpm tests."""

import os

import pytest

import jfpm_cli.config
from jfpm_cli.models.server import ServerDetails


@pytest.fixture
def jfpm_home(tmp_path, monkeypatch):
    """Point the jfpm config at a temporary home without env servers."""
    home = tmp_path / "jfpm-home"
    home.mkdir()
    monkeypatch.setattr(jfpm_cli.config, "CONFIG_DIR", str(home))
    monkeypatch.setattr(jfpm_cli.config, "CONFIG_FILE", os.path.join(str(home), "config.json"))
    for name in ("JFPM_URL", "JFPM_USER", "JFPM_PASSWORD", "JFPM_ACCESS_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def token_server():
    return ServerDetails(
        server_id="acme",
        url="https://acme.jfrog.io/artifactory",
        access_token="test-token",
    )


@pytest.fixture
def basic_server():
    return ServerDetails(
        server_id="acme",
        url="https://acme.jfrog.io/artifactory",
        user="myUser",
        password="myPassword",
    )
