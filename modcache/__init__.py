"""modcache: local resource cache and download orchestration for mod.io content.

modcache provides:
- Deterministic on-disk layout for mod profiles, modfiles, logos, gallery
  images, teams, users and authenticated-user state
- Fail-soft typed storage (corrupt or missing data is a cache miss)
- Asynchronous metadata, image and binary downloads with exactly-once
  completion handles
- Crash-safe binary commits (stream to ``.download``, then atomic replace)
"""

__version__ = "1.0.0"

from . import cache, core, download, io, utils
from .cache import PathNamer, ResourceCache
from .core import (
    CacheConfig,
    DownloadError,
    GalleryImageSize,
    LocalIOError,
    LogoSize,
    ModCacheError,
    TransportError,
)
from .download import DownloadHandle, DownloadOrchestrator, HTTPRemoteFetcher

__all__ = [
    # Version
    "__version__",
    # Config
    "CacheConfig",
    # Cache
    "ResourceCache",
    "PathNamer",
    # Downloads
    "DownloadOrchestrator",
    "DownloadHandle",
    "HTTPRemoteFetcher",
    # Enums
    "LogoSize",
    "GalleryImageSize",
    # Errors
    "ModCacheError",
    "DownloadError",
    "TransportError",
    "LocalIOError",
    # Modules
    "cache",
    "core",
    "download",
    "io",
    "utils",
]
