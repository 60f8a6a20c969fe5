"""cloudbox - Client for a remote file-storage service.

Resumable chunked uploads, delta change sync with long-poll, and the
one-shot file, folder, link and thumbnail operations around them.
"""

__version__ = "0.1.0"
