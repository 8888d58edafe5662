"""Custom exceptions for modcache.

Cache-side failures (missing files, corrupt records, disk errors) are
recovered into cache misses and only logged. Download-side failures are
delivered to the observers of the handle that started the download, as
one of the :class:`DownloadError` subclasses below.
"""

from __future__ import annotations

from pathlib import Path


class ModCacheError(Exception):
    """Base exception class for all modcache errors."""

    pass


class ConfigurationError(ModCacheError):
    """Raised when configuration values are invalid."""

    pass


class DecodeError(ModCacheError):
    """Raised when cached bytes cannot be turned back into a record.

    Callers of the object cache never see this exception; it is logged and
    converted into a cache miss.
    """

    pass


class EncodeError(ModCacheError):
    """Raised when a value cannot be serialized for storage.

    The object cache logs it and skips the write.
    """

    pass


class DownloadError(ModCacheError):
    """Base class for failures reported through a download handle."""

    pass


class TransportError(DownloadError):
    """Network, HTTP or payload failure reported by the remote collaborator.

    Parameters
    ----------
    message : str
        Human readable description.
    status_code : int, optional
        HTTP status code when the server answered.
    url : str, optional
        Request URL, when known.
    """

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.url = url

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"HTTP {self.status_code}: {self.message}"
        return self.message


class LocalIOError(DownloadError):
    """Temp file creation, stream write, or commit failure on local disk."""

    def __init__(self, message: str, path: Path | str | None = None):
        super().__init__(message)
        self.message = message
        self.path = Path(path) if path is not None else None

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.message} ({self.path})"
        return self.message
