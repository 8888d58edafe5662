"""Completion handle returned by every ``begin_*_download`` call.

Contract
--------
- The handle completes exactly once, either succeeded with a value or
  failed with a :class:`~modcache.core.exceptions.DownloadError`. Later
  completion attempts are ignored and logged.
- Each registered observer is invoked exactly once. Observers of one
  handle never run concurrently with each other.
- Observers run on whichever thread completes the download (usually a
  transport worker thread). An observer registered after completion runs
  immediately on the registering thread. Callers that need delivery on a
  particular thread must marshal the result themselves.
- There is no cancellation; a started download runs until it succeeds or
  fails.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Generic, TypeVar

from modcache.core.exceptions import DownloadError
from modcache.utils import get_logger

logger = get_logger("modcache.download")

__all__ = ["DownloadHandle", "DownloadState"]

T = TypeVar("T")


class DownloadState(Enum):
    PENDING = "pending"
    FETCHING = "fetching"
    COMMITTING = "committing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (DownloadState.SUCCEEDED, DownloadState.FAILED)


class DownloadHandle(Generic[T]):
    """Promise-like view of one in-flight download.

    Examples
    --------
    >>> handle = orchestrator.begin_binary_download(7, 42)
    >>> handle.on_success(lambda path: print("saved to", path))
    ...       .on_failure(lambda err: print("failed:", err))
    >>> path = handle.result(timeout=60)  # or block instead
    """

    def __init__(self, description: str = ""):
        self.description = description
        self._lock = threading.Lock()
        self._notify_lock = threading.RLock()
        self._done = threading.Event()
        self._state = DownloadState.PENDING
        self._result: T | None = None
        self._error: DownloadError | None = None
        self._temp_path: Path | None = None
        self._success_observers: list[Callable[[T], None]] = []
        self._failure_observers: list[Callable[[DownloadError], None]] = []

    def __repr__(self) -> str:
        return f"DownloadHandle({self.description!r}, state={self._state.value})"

    @property
    def state(self) -> DownloadState:
        return self._state

    @property
    def temp_path(self) -> Path | None:
        """Temporary file a binary download streams into, once fetching started."""
        return self._temp_path

    @property
    def error(self) -> DownloadError | None:
        return self._error

    @property
    def value(self) -> T | None:
        return self._result

    def done(self) -> bool:
        return self._done.is_set()

    # ---------[ OBSERVERS ]---------

    def on_success(self, callback: Callable[[T], None]) -> DownloadHandle[T]:
        """Register ``callback(value)``; returns the handle for chaining."""
        with self._lock:
            if not self._done.is_set():
                self._success_observers.append(callback)
                return self
        if self._state is DownloadState.SUCCEEDED:
            self._dispatch([callback], self._result)
        return self

    def on_failure(self, callback: Callable[[DownloadError], None]) -> DownloadHandle[T]:
        """Register ``callback(error)``; returns the handle for chaining."""
        with self._lock:
            if not self._done.is_set():
                self._failure_observers.append(callback)
                return self
        if self._state is DownloadState.FAILED:
            self._dispatch([callback], self._error)
        return self

    # ---------[ BLOCKING ACCESS ]---------

    def result(self, timeout: float | None = None) -> T:
        """Wait for completion and return the value, or raise the download error.

        Raises ``TimeoutError`` when ``timeout`` elapses first.
        """
        if not self._done.wait(timeout):
            raise TimeoutError(f"{self.description or 'download'} still {self._state.value}")
        if self._error is not None:
            raise self._error
        return self._result

    def exception(self, timeout: float | None = None) -> DownloadError | None:
        if not self._done.wait(timeout):
            raise TimeoutError(f"{self.description or 'download'} still {self._state.value}")
        return self._error

    # ---------[ COMPLETION (called by the orchestrator) ]---------

    def advance(self, state: DownloadState, temp_path: Path | None = None) -> bool:
        """Move to a non-terminal state. Ignored once the handle is done."""
        if state.is_terminal:
            raise ValueError("use notify_succeeded/notify_failed to complete a handle")
        with self._lock:
            if self._done.is_set():
                return False
            self._state = state
            if temp_path is not None:
                self._temp_path = Path(temp_path)
        return True

    def notify_succeeded(self, value: T) -> bool:
        with self._lock:
            if self._done.is_set():
                logger.warning(f"Ignoring second completion of {self!r}")
                return False
            self._result = value
            self._state = DownloadState.SUCCEEDED
            observers, self._success_observers = self._success_observers, []
            self._failure_observers = []
            self._done.set()

        self._dispatch(observers, value)
        return True

    def notify_failed(self, error: DownloadError) -> bool:
        with self._lock:
            if self._done.is_set():
                logger.warning(f"Ignoring second completion of {self!r}: {error}")
                return False
            self._error = error
            self._state = DownloadState.FAILED
            observers, self._failure_observers = self._failure_observers, []
            self._success_observers = []
            self._done.set()

        logger.warning(f"Download failed ({self.description}): {error}")
        self._dispatch(observers, error)
        return True

    def _dispatch(self, observers: list[Callable], payload) -> None:
        with self._notify_lock:
            for observer in observers:
                try:
                    observer(payload)
                except Exception:
                    # An observer must not break delivery to the others
                    logger.exception(f"Download observer {observer!r} raised")
