"""Asynchronous downloads into the resource cache.

- **DownloadOrchestrator**: starts metadata, image and binary downloads
- **DownloadHandle**: exactly-once success/failure delivery
- **RemoteFetcher**: transport port; **HTTPRemoteFetcher** is the
  ``requests``-based implementation
"""

from ._handle import DownloadHandle, DownloadState
from ._orchestrator import DownloadOrchestrator, ImageRequest
from ._remote import (
    ByteStream,
    BytesStream,
    HTTPRemoteFetcher,
    MetadataRequest,
    RemoteFetcher,
    ResponseStream,
)

__all__ = [
    "DownloadOrchestrator",
    "ImageRequest",
    "DownloadHandle",
    "DownloadState",
    "RemoteFetcher",
    "MetadataRequest",
    "ByteStream",
    "BytesStream",
    "ResponseStream",
    "HTTPRemoteFetcher",
]
