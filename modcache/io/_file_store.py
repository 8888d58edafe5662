"""Byte-level file primitives with structured failure reporting.

Every operation returns a :class:`StoreResult` instead of raising, so a
permission problem or a full disk becomes a value the caller can log and
recover from. Parent directories are created on every write; a directory
that already exists (possibly created by a concurrent writer) is success.

Writes are atomic: bytes go to a temporary sibling file which then
replaces the target with :func:`os.replace`.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from modcache.utils import get_logger

logger = get_logger("modcache.io")

__all__ = ["FileStore", "StoreResult", "StoreStatus"]


class StoreStatus(Enum):
    OK = "ok"
    NOT_FOUND = "not_found"
    IO_ERROR = "io_error"


@dataclass(frozen=True)
class StoreResult:
    """Outcome of one FileStore operation.

    Attributes
    ----------
    status : StoreStatus
        ``OK``, ``NOT_FOUND`` or ``IO_ERROR``.
    path : Path
        Path the operation targeted.
    data : bytes, optional
        File content for successful reads.
    error : OSError, optional
        Underlying error for ``IO_ERROR`` results.
    size : int
        Bytes written by streaming writes.
    """

    status: StoreStatus
    path: Path
    data: bytes | None = None
    error: OSError | None = None
    size: int = 0

    @property
    def ok(self) -> bool:
        return self.status is StoreStatus.OK

    @property
    def not_found(self) -> bool:
        return self.status is StoreStatus.NOT_FOUND

    def describe(self) -> str:
        if self.error is not None:
            return f"{self.status.value}: {self.error}"
        return self.status.value


class FileStore:
    """Synchronous read/write/delete primitives over single files and directories."""

    def read_bytes(self, path: Path | str) -> StoreResult:
        path = Path(path)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return StoreResult(StoreStatus.NOT_FOUND, path)
        except OSError as e:
            return StoreResult(StoreStatus.IO_ERROR, path, error=e)
        return StoreResult(StoreStatus.OK, path, data=data, size=len(data))

    def write_bytes(self, path: Path | str, data: bytes) -> StoreResult:
        path = Path(path)
        return self.write_stream(path, (data,), atomic=True)

    def write_stream(
        self,
        path: Path | str,
        chunks: Iterable[bytes],
        *,
        atomic: bool = False,
    ) -> StoreResult:
        """Write an iterable of chunks to ``path``.

        With ``atomic=True`` the chunks go to a temporary sibling that
        replaces ``path`` only once every chunk was written. Exceptions
        raised by ``chunks`` itself (a broken network stream, for example)
        are not OS errors of this store and propagate to the caller after
        the partial output is removed.
        """
        path = Path(path)
        ensured = self.ensure_directory(path.parent)
        if not ensured.ok:
            return StoreResult(StoreStatus.IO_ERROR, path, error=ensured.error)

        target = path
        if atomic:
            try:
                fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
                os.close(fd)
            except OSError as e:
                return StoreResult(StoreStatus.IO_ERROR, path, error=e)
            target = Path(tmp_name)

        written = 0
        try:
            with open(target, "wb") as f:
                for chunk in chunks:
                    if not chunk:
                        continue
                    f.write(chunk)
                    written += len(chunk)
            if atomic:
                os.replace(target, path)
        except OSError as e:
            self._discard(target)
            return StoreResult(StoreStatus.IO_ERROR, path, error=e)
        except BaseException:
            self._discard(target)
            raise

        return StoreResult(StoreStatus.OK, path, size=written)

    def delete_file(self, path: Path | str) -> StoreResult:
        """Delete one file. A missing file counts as success."""
        path = Path(path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            return StoreResult(StoreStatus.IO_ERROR, path, error=e)
        return StoreResult(StoreStatus.OK, path)

    def delete_directory(self, path: Path | str) -> StoreResult:
        """Recursively delete a directory. A missing directory counts as success."""
        path = Path(path)
        if not path.exists():
            return StoreResult(StoreStatus.OK, path)
        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            # Removed by someone else mid-walk
            pass
        except OSError as e:
            return StoreResult(StoreStatus.IO_ERROR, path, error=e)
        return StoreResult(StoreStatus.OK, path)

    def ensure_directory(self, path: Path | str) -> StoreResult:
        path = Path(path)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return StoreResult(StoreStatus.IO_ERROR, path, error=e)
        return StoreResult(StoreStatus.OK, path)

    def replace_file(self, source: Path | str, destination: Path | str) -> StoreResult:
        """Atomically move ``source`` over ``destination``.

        ``destination`` keeps its previous content if the move fails.
        """
        source = Path(source)
        destination = Path(destination)
        try:
            os.replace(source, destination)
        except FileNotFoundError as e:
            if not source.exists():
                return StoreResult(StoreStatus.NOT_FOUND, source, error=e)
            return StoreResult(StoreStatus.IO_ERROR, destination, error=e)
        except OSError as e:
            return StoreResult(StoreStatus.IO_ERROR, destination, error=e)
        return StoreResult(StoreStatus.OK, destination)

    def exists(self, path: Path | str) -> bool:
        return Path(path).is_file()

    def iter_directories(self, path: Path | str) -> Iterator[Path]:
        """Lazily yield sub-directories of ``path`` in name order.

        The listing is taken when iteration starts. A missing directory
        yields nothing; a listing failure is logged and yields nothing.
        """
        yield from self._iter_entries(Path(path), want_dirs=True)

    def iter_files(self, path: Path | str) -> Iterator[Path]:
        """Lazily yield regular files directly inside ``path`` in name order."""
        yield from self._iter_entries(Path(path), want_dirs=False)

    def _iter_entries(self, path: Path, want_dirs: bool) -> Iterator[Path]:
        try:
            with os.scandir(path) as it:
                entries = sorted(
                    (entry for entry in it if (entry.is_dir() if want_dirs else entry.is_file())),
                    key=lambda entry: entry.name,
                )
        except FileNotFoundError:
            return
        except OSError as e:
            logger.warning(f"Failed to read directory {path}: {e}")
            return

        for entry in entries:
            yield Path(entry.path)

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove partial file {path}: {e}")
