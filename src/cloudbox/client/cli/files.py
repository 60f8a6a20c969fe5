"""File and folder commands for the cloudbox CLI.

Commands:
- ls: List a folder or show a file
- mkdir: Create a folder
- rm: Delete a file or folder
- mv: Move a file or folder
- cp: Copy a file or folder
- share: Print a share link
- get: Download a file
"""

from __future__ import annotations

from pathlib import Path

import click

from cloudbox.client.cli.config import open_client, reported_errors
from cloudbox.client.models import Metadata


def format_entry(metadata: Metadata) -> str:
    """One listing line: type flag, size and path."""
    if metadata.is_dir:
        return f"d {'-':>10}  {metadata.path}"
    return f"- {metadata.bytes:>10}  {metadata.path}"


@click.command()
@click.argument("path", default="/")
@click.option("--deleted", is_flag=True, help="Include deleted entries.")
def ls(path: str, deleted: bool) -> None:
    """List a folder, or show a single file."""
    with reported_errors(), open_client() as client:
        metadata = client.get_metadata(path, include_deleted=deleted)

    if not metadata.is_dir:
        click.echo(format_entry(metadata))
        return
    for child in metadata.contents:
        click.echo(format_entry(child))


@click.command()
@click.argument("path")
def mkdir(path: str) -> None:
    """Create a folder."""
    with reported_errors(), open_client() as client:
        metadata = client.create_folder(path)
    click.echo(f"Created {metadata.path}")


@click.command()
@click.argument("path")
def rm(path: str) -> None:
    """Delete a file or folder."""
    with reported_errors(), open_client() as client:
        metadata = client.delete(path)
    click.echo(f"Deleted {metadata.path}")


@click.command()
@click.argument("source")
@click.argument("target")
def mv(source: str, target: str) -> None:
    """Move a file or folder."""
    with reported_errors(), open_client() as client:
        metadata = client.move(source, target)
    click.echo(f"Moved {source} -> {metadata.path}")


@click.command()
@click.argument("source")
@click.argument("target")
def cp(source: str, target: str) -> None:
    """Copy a file or folder."""
    with reported_errors(), open_client() as client:
        metadata = client.copy(source, target)
    click.echo(f"Copied {source} -> {metadata.path}")


@click.command()
@click.argument("path")
@click.option("--short", is_flag=True, help="Ask for a shortened URL.")
def share(path: str, short: bool) -> None:
    """Print a public link to a file or folder."""
    with reported_errors(), open_client() as client:
        link = client.get_share(path, short_url=short or None)
    click.echo(link.url)


@click.command()
@click.argument("path")
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
def get(path: str, target: Path) -> None:
    """Download a remote file to TARGET."""
    partial = target.with_name(target.name + ".part")
    with reported_errors(), open_client() as client:
        try:
            with partial.open("wb") as f:
                written = client.download_to(path, f)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise
    partial.replace(target)
    click.echo(f"Downloaded {path} ({written} bytes)")
