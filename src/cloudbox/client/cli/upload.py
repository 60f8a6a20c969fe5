"""Upload command for the cloudbox CLI.

Commands:
- put: Upload a file in resumable chunks
"""

from __future__ import annotations

from pathlib import Path

import click

from cloudbox.client.cli.config import open_client, open_state, reported_errors
from cloudbox.client.models import ChunkedUploadState
from cloudbox.client.sync.types import UploadProgress
from cloudbox.client.sync.upload import ResumableUpload, destination_path
from cloudbox.core.config import DEFAULT_CHUNK_SIZE


def session_key(local_path: Path, destination: str) -> str:
    """Identity under which an upload's resumption point is saved."""
    return f"{local_path.resolve()} -> {destination}"


@click.command()
@click.argument(
    "local_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument("folder", default="/")
@click.option("--name", default=None, help="Remote file name (default: local name).")
@click.option(
    "--chunk-size",
    type=click.IntRange(min=1),
    default=DEFAULT_CHUNK_SIZE,
    show_default=True,
    help="Bytes per chunk.",
)
@click.option("--parent-rev", default=None, help="Revision this upload replaces.")
@click.option("--restart", is_flag=True, help="Discard a saved session and start over.")
@click.option("--no-progress", is_flag=True, help="Disable progress output.")
def put(
    local_path: Path,
    folder: str,
    name: str | None,
    chunk_size: int,
    parent_rev: str | None,
    restart: bool,
    no_progress: bool,
) -> None:
    """Upload LOCAL_PATH into the remote FOLDER.

    The last acknowledged chunk is saved locally, so an interrupted upload
    continues where it stopped when the same command is run again.
    """
    filename = name or local_path.name
    destination = destination_path(folder, filename)
    key = session_key(local_path, destination)
    size = local_path.stat().st_size

    def report(progress: UploadProgress) -> None:
        if not no_progress and progress.percent is not None:
            click.echo(f"\r  {progress.path}: {progress.percent:5.1f}%", nl=False)

    with open_state() as state, open_client() as client:

        def persist(chunk_state: ChunkedUploadState) -> None:
            state.save_upload_session(key, chunk_state, size)

        saved = state.get_upload_session(key)
        if saved and (restart or saved.source_size != size):
            if not restart:
                click.echo("Local file changed since last attempt, starting fresh")
            state.clear_upload_session(key)
            saved = None

        with local_path.open("rb") as source, reported_errors():
            if saved:
                click.echo(f"Resuming {destination} at byte {saved.state.offset}")
                upload = ResumableUpload.resume(
                    client,
                    folder,
                    filename,
                    source,
                    saved.state,
                    chunk_size=chunk_size,
                    progress_callback=report,
                    on_state=persist,
                )
            else:
                upload = ResumableUpload(
                    client,
                    folder,
                    filename,
                    source,
                    chunk_size=chunk_size,
                    progress_callback=report,
                    on_state=persist,
                )
            try:
                metadata = upload.run(parent_rev)
            finally:
                if not no_progress:
                    click.echo()

        state.clear_upload_session(key)

    for anomaly in upload.anomalies:
        click.echo(
            f"Warning: server reported {anomaly.reported_upload_id}@"
            f"{anomaly.reported_offset}, expected {anomaly.expected.upload_id}@"
            f"{anomaly.expected.offset}",
            err=True,
        )
    click.echo(f"Uploaded {metadata.path} ({metadata.bytes} bytes, rev {metadata.rev})")
