"""Resumable upload and change sync protocols.

Components:
- **Upload**: start_session → send_next_chunk × N → commit_chunked_upload,
  driven by the ResumableUpload state machine
- **Delta**: fetch_delta / iter_delta normalize pages of account changes;
  apply_delta_page folds them into a path index
- **Long-poll**: wait_for_change blocks until the account changes;
  ChangeWatcher loops it in the background

All public symbols are re-exported here.
"""

from cloudbox.client.sync.delta import (
    apply_delta_page,
    fetch_delta,
    iter_delta,
    normalize_entry,
    parse_delta_page,
)
from cloudbox.client.sync.longpoll import (
    DEFAULT_LONGPOLL_TIMEOUT,
    MAX_LONGPOLL_TIMEOUT,
    MIN_LONGPOLL_TIMEOUT,
    ChangeWatcher,
    clamp_timeout,
    wait_for_change,
)
from cloudbox.client.sync.types import (
    Outcome,
    OutcomeKind,
    ProgressCallback,
    StateCallback,
    UploadAnomaly,
    UploadPhase,
    UploadProgress,
)
from cloudbox.client.sync.upload import (
    ResumableUpload,
    commit_chunked_upload,
    destination_path,
    send_next_chunk,
    start_session,
    upload_resumable,
)

__all__ = [
    # Delta
    "apply_delta_page",
    "fetch_delta",
    "iter_delta",
    "normalize_entry",
    "parse_delta_page",
    # Long-poll
    "DEFAULT_LONGPOLL_TIMEOUT",
    "MAX_LONGPOLL_TIMEOUT",
    "MIN_LONGPOLL_TIMEOUT",
    "ChangeWatcher",
    "clamp_timeout",
    "wait_for_change",
    # Types
    "Outcome",
    "OutcomeKind",
    "ProgressCallback",
    "StateCallback",
    "UploadAnomaly",
    "UploadPhase",
    "UploadProgress",
    # Upload
    "ResumableUpload",
    "commit_chunked_upload",
    "destination_path",
    "send_next_chunk",
    "start_session",
    "upload_resumable",
]
