"""Configure command for the cloudbox CLI.

Commands:
- configure: Save the service URLs and access token
"""

from __future__ import annotations

import click

from cloudbox.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option(
    "--server",
    required=True,
    help="API URL (e.g., https://api.example.com).",
)
@click.option(
    "--token",
    prompt="Access token",
    hide_input=True,
    help="Bearer token for the service.",
)
@click.option("--content-url", default=None, help="Content host URL (default: server).")
@click.option("--notify-url", default=None, help="Long-poll host URL (default: server).")
@click.option("--root", default=None, help="Access root (default: auto).")
def configure(
    server: str,
    token: str,
    content_url: str | None,
    notify_url: str | None,
    root: str | None,
) -> None:
    """Save connection settings for the storage service."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["token"] = token
    for key, value in (("content_url", content_url), ("notify_url", notify_url), ("root", root)):
        if value:
            config[key] = value.rstrip("/") if key.endswith("_url") else value
    save_config(config)

    click.echo(f"Configuration saved to {get_config_file()}")
