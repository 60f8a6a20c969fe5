"""Change sync commands for the cloudbox CLI.

Commands:
- delta: Fetch all pending changes into the local index
- watch: Long-poll for changes and fetch them as they happen
"""

from __future__ import annotations

import sys

import click

from cloudbox.client.cli.config import open_client, open_state, reported_errors
from cloudbox.client.models import Deleted, DeltaPage
from cloudbox.client.state import LocalState
from cloudbox.client.sync.delta import iter_delta
from cloudbox.client.sync.longpoll import DEFAULT_LONGPOLL_TIMEOUT, ChangeWatcher
from cloudbox.core.errors import CloudboxError


def print_page(page: DeltaPage) -> None:
    """Print one line per entry: "-" for deletions, "+" otherwise."""
    if page.reset:
        click.echo("(reset: local index cleared)")
    for entry in page.entries:
        marker = "-" if isinstance(entry.change, Deleted) else "+"
        click.echo(f"{marker} {entry.path}")


def _record(state: LocalState, page: DeltaPage) -> None:
    state.apply_delta_page(page)
    print_page(page)


@click.command()
@click.option("--reset", is_flag=True, help="Ignore the saved cursor and fetch everything.")
def delta(reset: bool) -> None:
    """Fetch changes since the last run and update the local index."""
    with open_state() as state, open_client() as client:
        cursor = "" if reset else state.get_cursor()
        pages = 0
        with reported_errors():
            for page in iter_delta(client, cursor):
                _record(state, page)
                pages += 1
        click.echo(f"{pages} page(s), {state.count_entries()} entries indexed")


@click.command()
@click.option(
    "--timeout",
    type=int,
    default=DEFAULT_LONGPOLL_TIMEOUT,
    show_default=True,
    help="Seconds per long-poll (clamped to 30-480).",
)
def watch(timeout: int) -> None:
    """Watch the account and apply changes as they happen.

    Press Ctrl+C to stop.
    """
    with open_state() as state, open_client() as client:
        cursor = state.get_cursor()
        if not cursor:
            click.echo("No cursor yet, fetching initial snapshot...")
            with reported_errors():
                for page in iter_delta(client):
                    _record(state, page)
            cursor = state.get_cursor()

        errors: list[CloudboxError] = []
        watcher = ChangeWatcher(
            client,
            cursor,
            on_page=lambda page: _record(state, page),
            on_error=errors.append,
            timeout=timeout,
        )
        click.echo("Watching for changes (Ctrl+C to stop)...")
        try:
            watcher.run()
        except KeyboardInterrupt:
            watcher.stop()
            click.echo("\nStopped.")

    if errors:
        click.echo(f"Error: {errors[0]}", err=True)
        sys.exit(1)
