"""Asynchronous download orchestration.

Every ``begin_*`` method returns a :class:`DownloadHandle` immediately.
The orchestrator owns no threads: it chains callbacks onto the futures
returned by the :class:`RemoteFetcher` and finishes the work (decode,
persist, stream to disk, commit) on whichever thread resolves them.

Binary downloads
----------------
1. Resolve the modfile record (fresh signed URL) through the remote.
2. Persist the record in the resource cache, whatever happens next.
3. Stream the body to ``{final}.download``, never to ``{final}``.
4. Atomically replace ``{final}`` with the temp file. Only then does the
   handle succeed. A failed commit removes the temp file, leaves the
   previous artifact untouched and fails the handle with
   :class:`LocalIOError`.

Two downloads of the same modfile are serialized by a file lock on
``{final}.lock`` held across streaming and commit; the last one to
commit wins.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from concurrent.futures import Future
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TypeVar

from filelock import FileLock, Timeout
from tqdm import tqdm

from modcache.cache import ResourceCache, require_id
from modcache.core.config import CacheConfig
from modcache.core.exceptions import DownloadError, LocalIOError, TransportError
from modcache.core.types import GalleryImageSize, LogoSize, Modfile, ModProfile
from modcache.utils import get_logger

from ._handle import DownloadHandle, DownloadState
from ._remote import ByteStream, MetadataRequest, RemoteFetcher

logger = get_logger("modcache.download")

__all__ = ["DownloadOrchestrator", "ImageRequest"]

T = TypeVar("T")

LOCK_SUFFIX = ".lock"


@dataclass(frozen=True)
class ImageRequest:
    """Descriptor of one memory-resident image download.

    With ``store=True`` the downloaded bytes are also saved to the logo
    cache (``size`` is a :class:`LogoSize`) or the gallery cache (``size``
    is a :class:`GalleryImageSize`), which requires ``mod_id`` and
    ``file_name``.
    """

    url: str
    mod_id: int | None = None
    file_name: str | None = None
    size: LogoSize | GalleryImageSize | None = None
    store: bool = False

    def __post_init__(self):
        if not self.store:
            return
        require_id(self.mod_id, "mod_id")
        if not self.file_name:
            raise ValueError("file_name is required to store a downloaded image")
        if not isinstance(self.size, (LogoSize, GalleryImageSize)):
            raise ValueError(f"size must be a LogoSize or GalleryImageSize, got {self.size!r}")


class DownloadOrchestrator:
    """Start downloads and deliver their outcome through handles.

    Parameters
    ----------
    cache : ResourceCache
        Where fetched records, images and binaries are persisted.
    remote : RemoteFetcher
        Transport collaborator; see :class:`HTTPRemoteFetcher`.
    config : CacheConfig, optional
        ``chunk_size``, ``lock_timeout`` and ``show_progress``. Defaults to
        the cache's configuration.

    Examples
    --------
    >>> cache = ResourceCache(config)
    >>> orchestrator = DownloadOrchestrator(cache, HTTPRemoteFetcher(config))
    >>> handle = orchestrator.begin_binary_download(7, 42)
    >>> handle.result(timeout=120)
    PosixPath('.../mods/7/binaries/42.zip')
    """

    def __init__(
        self,
        cache: ResourceCache,
        remote: RemoteFetcher,
        config: CacheConfig | None = None,
    ):
        self.cache = cache
        self.remote = remote
        self.config = config or cache.config

    # ---------[ METADATA ]---------

    def begin_metadata_download(self, request: MetadataRequest) -> DownloadHandle[Any]:
        handle: DownloadHandle[Any] = DownloadHandle(f"metadata {request.endpoint}")
        self._start(handle, lambda: self.remote.fetch_metadata(request), handle.notify_succeeded)
        return handle

    def begin_mod_profile_download(self, mod_id: int) -> DownloadHandle[ModProfile]:
        """Fetch a mod profile and save it to the cache before delivering it."""
        require_id(mod_id, "mod_id")
        handle: DownloadHandle[ModProfile] = DownloadHandle(f"mod profile {mod_id}")

        def on_record(record: Any) -> None:
            try:
                profile = ModProfile.from_dict(record)
            except (KeyError, TypeError, ValueError) as e:
                raise TransportError(f"unexpected mod profile payload: {e!r}") from e
            if profile.id != mod_id:
                raise TransportError(f"requested mod {mod_id}, received mod {profile.id}")
            if not self.cache.save_mod_profile(profile):
                logger.warning(f"Mod profile {mod_id} downloaded but not cached")
            handle.notify_succeeded(profile)

        request = MetadataRequest(f"mods/{mod_id}")
        self._start(handle, lambda: self.remote.fetch_metadata(request), on_record)
        return handle

    # ---------[ IMAGES ]---------

    def begin_image_download(self, request: ImageRequest) -> DownloadHandle[bytes]:
        """Fetch an image into memory, optionally storing it in the cache."""
        handle: DownloadHandle[bytes] = DownloadHandle(f"image {request.url}")
        if not request.url:
            handle.notify_failed(TransportError("image request has no URL"))
            return handle

        def on_stream(stream: ByteStream) -> None:
            try:
                data = b"".join(stream.iter_chunks(self.config.chunk_size))
            finally:
                stream.close()
            if request.store:
                self._store_image(request, data)
            handle.notify_succeeded(data)

        self._start(handle, lambda: self.remote.fetch_binary(request.url), on_stream)
        return handle

    def begin_logo_download(
        self, profile: ModProfile, size: LogoSize, *, use_cache: bool = False
    ) -> DownloadHandle[bytes]:
        """Download (and cache) the logo of ``profile`` at ``size``.

        With ``use_cache=True`` a cached logo whose recorded version matches
        the profile's current logo file name is delivered without a fetch.
        """
        size = LogoSize(size)
        handle: DownloadHandle[bytes] = DownloadHandle(f"logo {profile.id}/{size.value}")
        url = profile.logo.get_url(size) if profile.logo else None
        if not url:
            handle.notify_failed(TransportError(f"mod {profile.id} has no {size.value} logo URL"))
            return handle

        if use_cache:
            cached = self._cached_logo(profile, size)
            if cached is not None:
                handle.notify_succeeded(cached)
                return handle

        request = ImageRequest(url, profile.id, profile.logo.file_name, size, store=True)
        return self.begin_image_download(request)

    def begin_gallery_image_download(
        self, profile: ModProfile, image_file_name: str, size: GalleryImageSize
    ) -> DownloadHandle[bytes]:
        size = GalleryImageSize(size)
        locator = profile.get_gallery_image(image_file_name)
        url = locator.get_url(size) if locator else None
        if not url:
            handle: DownloadHandle[bytes] = DownloadHandle(
                f"gallery image {profile.id}/{image_file_name}"
            )
            handle.notify_failed(
                TransportError(f"mod {profile.id} has no {size.value} URL for {image_file_name!r}")
            )
            return handle

        request = ImageRequest(url, profile.id, image_file_name, size, store=True)
        return self.begin_image_download(request)

    def _cached_logo(self, profile: ModProfile, size: LogoSize) -> bytes | None:
        if self.cache.load_mod_logo_version(profile.id, size) != profile.logo.file_name:
            return None
        return self.cache.load_mod_logo(profile.id, size)

    def _store_image(self, request: ImageRequest, data: bytes) -> None:
        if isinstance(request.size, LogoSize):
            saved = self.cache.save_mod_logo(request.mod_id, request.file_name, request.size, data)
        else:
            saved = self.cache.save_mod_gallery_image(
                request.mod_id, request.file_name, request.size, data
            )
        if not saved:
            logger.warning(f"Downloaded image {request.url} could not be cached")

    # ---------[ BINARIES ]---------

    def begin_binary_download(self, mod_id: int, modfile_id: int) -> DownloadHandle[Path]:
        """Download a modfile's zip into the cache.

        Succeeds with the committed ``.zip`` path. Fails with
        :class:`TransportError` when the locator or the body cannot be
        fetched and with :class:`LocalIOError` when the payload cannot be
        written or committed.
        """
        require_id(mod_id, "mod_id")
        require_id(modfile_id, "modfile_id")
        handle: DownloadHandle[Path] = DownloadHandle(f"binary {mod_id}/{modfile_id}")
        logger.info(f"Starting binary download for mod {mod_id}, modfile {modfile_id}")

        def on_modfile(modfile: Modfile) -> None:
            self._on_modfile_resolved(handle, mod_id, modfile_id, modfile)

        self._start(
            handle, lambda: self.remote.resolve_binary_locator(mod_id, modfile_id), on_modfile
        )
        return handle

    def _on_modfile_resolved(
        self, handle: DownloadHandle[Path], mod_id: int, modfile_id: int, modfile: Modfile
    ) -> None:
        if modfile.mod_id != mod_id or modfile.id != modfile_id:
            raise TransportError(
                f"requested modfile {mod_id}/{modfile_id}, "
                f"received {modfile.mod_id}/{modfile.id}"
            )

        # Persisted before the payload, independent of its outcome
        if not self.cache.save_modfile(modfile):
            logger.warning(f"Modfile record {mod_id}/{modfile_id} could not be cached")

        url = modfile.download.binary_url if modfile.download else ""
        if not url:
            raise TransportError(f"modfile {mod_id}/{modfile_id} has no download URL")

        final_path = self.cache.paths.mod_binary_zip(mod_id, modfile_id)
        temp_path = self.cache.paths.mod_binary_download(mod_id, modfile_id)
        ensured = self.cache.store.ensure_directory(final_path.parent)
        if not ensured.ok:
            raise LocalIOError(f"cannot create binaries directory: {ensured.error}", final_path.parent)

        handle.advance(DownloadState.FETCHING, temp_path=temp_path)

        def on_stream(stream: ByteStream) -> None:
            self._write_and_commit(handle, stream, temp_path, final_path)
            logger.info(f"Download complete: {final_path}")
            handle.notify_succeeded(final_path)

        self._start(handle, lambda: self.remote.fetch_binary(url), on_stream)

    def _write_and_commit(
        self, handle: DownloadHandle[Path], stream: ByteStream, temp_path: Path, final_path: Path
    ) -> None:
        lock = FileLock(str(final_path) + LOCK_SUFFIX, timeout=self.config.lock_timeout)
        try:
            with lock:
                # Leftover from an interrupted run
                self.cache.store.delete_file(temp_path)

                chunks = stream.iter_chunks(self.config.chunk_size)
                if self.config.show_progress:
                    chunks = self._progress(chunks, stream.content_length, final_path.name)
                written = self.cache.store.write_stream(temp_path, chunks)
                if not written.ok:
                    raise LocalIOError(f"failed to write download: {written.error}", temp_path)

                handle.advance(DownloadState.COMMITTING)
                committed = self.cache.store.replace_file(temp_path, final_path)
                if not committed.ok:
                    self.cache.store.delete_file(temp_path)
                    raise LocalIOError(
                        f"failed to commit download: {committed.describe()}", final_path
                    )
        except Timeout as e:
            raise LocalIOError("timed out waiting for a concurrent download", final_path) from e
        finally:
            stream.close()

    @staticmethod
    def _progress(chunks: Iterator[bytes], total: int | None, desc: str) -> Iterator[bytes]:
        with tqdm(total=total, unit="B", unit_scale=True, unit_divisor=1024, desc=desc) as pbar:
            for chunk in chunks:
                pbar.update(len(chunk))
                yield chunk

    # ---------[ PLUMBING ]---------

    def _start(
        self,
        handle: DownloadHandle,
        issue: Callable[[], Future[T]],
        on_result: Callable[[T], None],
    ) -> None:
        """Issue a remote call and route its outcome into ``handle``."""
        try:
            future = issue()
        except DownloadError as e:
            handle.notify_failed(e)
            return
        except Exception as e:
            # e.g. a transport whose executor was already shut down
            handle.notify_failed(TransportError(f"remote request could not be issued: {e!r}"))
            return
        future.add_done_callback(lambda f: self._complete(handle, f, on_result))

    def _complete(self, handle: DownloadHandle, future: Future, on_result: Callable) -> None:
        if future.cancelled():
            handle.notify_failed(TransportError("remote request was cancelled"))
            return

        error = future.exception()
        if error is not None:
            if not isinstance(error, DownloadError):
                error = TransportError(f"remote request failed: {error!r}")
            handle.notify_failed(error)
            return

        try:
            on_result(future.result())
        except DownloadError as e:
            handle.notify_failed(e)
        except OSError as e:
            handle.notify_failed(LocalIOError(f"local I/O failed: {e}", getattr(e, "filename", None)))
        except Exception as e:
            # Never leave a handle pending
            logger.exception(f"Unexpected error while completing {handle!r}")
            handle.notify_failed(DownloadError(f"unexpected error: {e!r}"))
