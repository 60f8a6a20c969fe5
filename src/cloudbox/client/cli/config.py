"""Configuration utilities for the cloudbox CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click

from cloudbox.core.config import DEFAULT_ROOT, ClientConfig
from cloudbox.core.errors import CloudboxError

if TYPE_CHECKING:
    from cloudbox.client.api import HTTPClient
    from cloudbox.client.state import LocalState


def get_config_dir() -> Path:
    """Get the configuration directory for cloudbox.

    Returns:
        Path from CLOUDBOX_CONFIG_DIR, or ~/.cloudbox.
    """
    override = os.environ.get("CLOUDBOX_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cloudbox"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def client_config() -> ClientConfig:
    """Build a ClientConfig from the saved configuration.

    Exits with an error if the CLI was never configured.
    """
    config = load_config()
    if not config.get("server_url") or not config.get("token"):
        click.echo("Error: Not configured. Run 'cloudbox configure' first.", err=True)
        sys.exit(1)
    return ClientConfig(
        server_url=config["server_url"],
        token=config["token"],
        content_url=config.get("content_url") or None,
        notify_url=config.get("notify_url") or None,
        root=config.get("root") or DEFAULT_ROOT,
    )


def open_client() -> HTTPClient:
    """Create an HTTP client from the saved configuration."""
    from cloudbox.client.api import HTTPClient

    return HTTPClient(client_config())


def open_state() -> LocalState:
    """Open the local state database in the config directory."""
    from cloudbox.client.state import LocalState

    return LocalState(get_config_dir() / "state.db")


@contextmanager
def reported_errors() -> Iterator[None]:
    """Turn library errors into an error message and exit code 1."""
    try:
        yield
    except CloudboxError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
