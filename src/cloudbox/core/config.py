"""Shared configuration classes for cloudbox.

This module defines the connection settings used by the HTTP client,
the upload orchestrator and the long-poll watcher.
"""

from __future__ import annotations

from dataclasses import dataclass

# Default size of one chunk in a resumable upload (1 MiB)
DEFAULT_CHUNK_SIZE = 1024 * 1024

# Default access root used in path-based URLs
DEFAULT_ROOT = "auto"


@dataclass
class ClientConfig:
    """Configuration for connecting to the storage service.

    The service is split over up to three hosts: the API host for metadata
    and file operations, the content host for file bodies and chunked
    uploads, and the notify host for long-poll requests. The content and
    notify hosts default to the API host.

    Attributes:
        server_url: Base URL of the API host (e.g., "https://api.example.com").
        token: Bearer token handed to the transport.
        content_url: Base URL of the content host (default: server_url).
        notify_url: Base URL of the long-poll host (default: server_url).
        root: Access root used in path-based URLs ("auto", "sandbox", ...).
        timeout: Per-request timeout in seconds (long-poll uses its own).
        verify_ssl: Whether to verify SSL certificates (default True).
        chunk_size: Chunk size in bytes for resumable uploads.
    """

    server_url: str
    token: str
    content_url: str | None = None
    notify_url: str | None = None
    root: str = DEFAULT_ROOT
    timeout: float = 30.0
    verify_ssl: bool = True
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def __post_init__(self) -> None:
        """Normalize URLs and validate the chunk size."""
        self.server_url = self.server_url.rstrip("/")
        self.content_url = (self.content_url or self.server_url).rstrip("/")
        self.notify_url = (self.notify_url or self.server_url).rstrip("/")
        self.root = self.root.strip("/")
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    @property
    def is_secure(self) -> bool:
        """Check if the API host uses HTTPS.

        Returns:
            True if server uses HTTPS.
        """
        return self.server_url.startswith("https://")
