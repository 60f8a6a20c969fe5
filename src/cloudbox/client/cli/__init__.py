"""Command-line interface for cloudbox.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save service URLs and access token
- ls, mkdir, rm, mv, cp: File and folder operations
- share: Print a share link
- get: Download a file
- put: Resumable chunked upload
- delta: Fetch pending changes into the local index
- watch: Long-poll for changes
"""

from __future__ import annotations

import logging

import click

from cloudbox.client.cli.changes import delta, watch
from cloudbox.client.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from cloudbox.client.cli.configure import configure
from cloudbox.client.cli.files import cp, get, ls, mkdir, mv, rm, share
from cloudbox.client.cli.upload import put


@click.group()
@click.version_option(package_name="cloudbox")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def cli(verbose: bool) -> None:
    """cloudbox - Client for a remote file-storage service."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# Setup
cli.add_command(configure)

# File commands
cli.add_command(ls)
cli.add_command(mkdir)
cli.add_command(rm)
cli.add_command(mv)
cli.add_command(cp)
cli.add_command(share)
cli.add_command(get)

# Transfer and sync commands
cli.add_command(put)
cli.add_command(delta)
cli.add_command(watch)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
