"""Tests for DownloadOrchestrator.

This module tests:
1. Binary downloads: temp file, atomic commit, failure taxonomy
2. Image downloads into the logo and gallery caches
3. Metadata and mod profile downloads

The fake remote resolves every future immediately, so handles are
complete when ``begin_*`` returns.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace

import pytest
from filelock import FileLock

from modcache.core import (
    DownloadError,
    GalleryImageSize,
    LocalIOError,
    LogoSize,
    Modfile,
    ModfileLocator,
    ModProfile,
    TransportError,
)
from modcache.download import DownloadOrchestrator, DownloadState, ImageRequest, MetadataRequest
from modcache.io import PNG_SIGNATURE, StoreResult, StoreStatus

BINARY = b"PK\x03\x04new-build"


class BrokenStream:
    """Byte stream that fails after yielding its first chunk."""

    content_length = None

    def __init__(self):
        self.closed = False

    def iter_chunks(self, chunk_size):
        yield b"partial"
        raise TransportError("connection reset")

    def close(self):
        self.closed = True


class SlowStream:
    """Byte stream that pauses between chunks so downloads overlap."""

    def __init__(self, data, delay=0.01):
        self.data = data
        self.delay = delay
        self.content_length = len(data)

    def iter_chunks(self, chunk_size):
        for start in range(0, len(self.data), chunk_size):
            time.sleep(self.delay)
            yield self.data[start : start + chunk_size]

    def close(self):
        pass


def _collect(handle):
    successes, failures = [], []
    handle.on_success(successes.append).on_failure(failures.append)
    return successes, failures


@pytest.fixture
def binary_remote(remote, modfile):
    remote.modfiles[(7, 42)] = modfile
    remote.binaries[modfile.download.binary_url] = BINARY
    return remote


class TestBinaryDownload:
    """Test streamed binary downloads and commits."""

    def test_success_commits_zip(self, orchestrator, binary_remote, cache):
        handle = orchestrator.begin_binary_download(7, 42)
        successes, failures = _collect(handle)

        final = cache.paths.mod_binary_zip(7, 42)
        assert successes == [final]
        assert failures == []
        assert handle.state is DownloadState.SUCCEEDED
        assert final.read_bytes() == BINARY
        assert not cache.paths.mod_binary_download(7, 42).exists()
        assert handle.temp_path == cache.paths.mod_binary_download(7, 42)

    def test_modfile_record_is_persisted(self, orchestrator, binary_remote, cache, modfile):
        orchestrator.begin_binary_download(7, 42).result(timeout=1)

        assert cache.load_modfile(7, 42) == modfile

    def test_replaces_previous_artifact(self, orchestrator, binary_remote, cache):
        cache.save_mod_binary_zip(7, 42, b"old-build")

        orchestrator.begin_binary_download(7, 42).result(timeout=1)

        assert cache.load_mod_binary_zip(7, 42) == BINARY

    def test_stale_temp_file_is_overwritten(self, orchestrator, binary_remote, cache):
        temp = cache.paths.mod_binary_download(7, 42)
        temp.parent.mkdir(parents=True)
        temp.write_bytes(b"left over from a crash" * 10)

        orchestrator.begin_binary_download(7, 42).result(timeout=1)

        assert cache.load_mod_binary_zip(7, 42) == BINARY
        assert not temp.exists()

    def test_commit_failure_keeps_previous_artifact(
        self, orchestrator, binary_remote, cache, monkeypatch
    ):
        cache.save_mod_binary_zip(7, 42, b"old-build")
        final = cache.paths.mod_binary_zip(7, 42)

        def failing_replace(source, destination):
            return StoreResult(StoreStatus.IO_ERROR, destination, error=OSError("disk full"))

        monkeypatch.setattr(cache.store, "replace_file", failing_replace)
        handle = orchestrator.begin_binary_download(7, 42)
        successes, failures = _collect(handle)

        assert successes == []
        assert len(failures) == 1
        assert isinstance(failures[0], LocalIOError)
        assert final.read_bytes() == b"old-build"
        assert not cache.paths.mod_binary_download(7, 42).exists()

        monkeypatch.undo()
        orchestrator.begin_binary_download(7, 42).result(timeout=1)
        assert final.read_bytes() == BINARY

    def test_write_failure_is_local_io_error(self, orchestrator, binary_remote, cache, monkeypatch):
        def failing_write(path, chunks, *, atomic=False):
            return StoreResult(StoreStatus.IO_ERROR, path, error=OSError("read-only"))

        monkeypatch.setattr(cache.store, "write_stream", failing_write)
        handle = orchestrator.begin_binary_download(7, 42)

        assert isinstance(handle.exception(timeout=1), LocalIOError)
        assert not cache.has_mod_binary_zip(7, 42)

    def test_interrupted_stream_is_transport_error(
        self, orchestrator, binary_remote, cache, modfile
    ):
        cache.save_mod_binary_zip(7, 42, b"old-build")
        stream = BrokenStream()
        binary_remote.binaries[modfile.download.binary_url] = stream

        handle = orchestrator.begin_binary_download(7, 42)
        successes, failures = _collect(handle)

        assert successes == []
        assert len(failures) == 1
        assert isinstance(failures[0], TransportError)
        assert stream.closed
        assert cache.load_mod_binary_zip(7, 42) == b"old-build"
        assert not cache.paths.mod_binary_download(7, 42).exists()

    def test_http_error_is_transport_error(self, orchestrator, binary_remote, modfile, cache):
        binary_remote.binaries[modfile.download.binary_url] = TransportError(
            "Forbidden", status_code=403
        )

        error = orchestrator.begin_binary_download(7, 42).exception(timeout=1)

        assert isinstance(error, TransportError)
        assert error.status_code == 403
        # Metadata was persisted before the payload failed
        assert cache.load_modfile(7, 42) == modfile

    def test_locator_failure_fails_without_fetching(self, orchestrator, remote, cache):
        handle = orchestrator.begin_binary_download(7, 42)

        assert isinstance(handle.exception(timeout=1), TransportError)
        assert [call[0] for call in remote.calls] == ["locator"]
        assert cache.load_modfile(7, 42) is None

    def test_missing_download_url_fails(self, orchestrator, remote):
        remote.modfiles[(7, 42)] = Modfile(id=42, mod_id=7)

        error = orchestrator.begin_binary_download(7, 42).exception(timeout=1)

        assert isinstance(error, TransportError)
        assert "download URL" in str(error)

    def test_mismatched_modfile_fails(self, orchestrator, remote):
        remote.modfiles[(7, 42)] = Modfile(
            id=43, mod_id=7, download=ModfileLocator("https://cdn.example.test/x.zip")
        )

        assert isinstance(orchestrator.begin_binary_download(7, 42).exception(timeout=1), TransportError)

    def test_non_download_error_from_remote_is_wrapped(self, orchestrator, remote):
        remote.modfiles[(7, 42)] = ConnectionResetError("peer reset")

        assert isinstance(orchestrator.begin_binary_download(7, 42).exception(timeout=1), TransportError)

    def test_invalid_ids_raise_immediately(self, orchestrator):
        with pytest.raises(ValueError):
            orchestrator.begin_binary_download(0, 42)
        with pytest.raises(ValueError):
            orchestrator.begin_binary_download(7, -1)

    def test_pending_until_remote_resolves(self, cache, modfile):
        locator: Future = Future()

        class SlowRemote:
            def resolve_binary_locator(self, mod_id, modfile_id):
                return locator

            def fetch_binary(self, url):
                from modcache.download import BytesStream

                done: Future = Future()
                done.set_result(BytesStream(BINARY))
                return done

        handle = DownloadOrchestrator(cache, SlowRemote()).begin_binary_download(7, 42)
        assert handle.state is DownloadState.PENDING
        assert not handle.done()

        locator.set_result(modfile)

        assert handle.result(timeout=1) == cache.paths.mod_binary_zip(7, 42)

    def test_progress_bar_does_not_change_payload(self, cache, binary_remote, config):
        config.show_progress = True
        orchestrator = DownloadOrchestrator(cache, binary_remote, config)

        orchestrator.begin_binary_download(7, 42).result(timeout=1)

        assert cache.load_mod_binary_zip(7, 42) == BINARY

    def test_overlapping_downloads_commit_one_payload(self, cache, remote, modfile, monkeypatch):
        payloads = [b"A" * 64, b"B" * 64]
        pending = list(payloads)
        guard = threading.Lock()

        def fetch_binary(url):
            with guard:
                payload = pending.pop(0)
            future: Future = Future()
            future.set_result(SlowStream(payload))
            return future

        remote.modfiles[(7, 42)] = modfile
        monkeypatch.setattr(remote, "fetch_binary", fetch_binary)
        orchestrator = DownloadOrchestrator(cache, remote)

        with ThreadPoolExecutor(max_workers=2) as pool:
            handles = list(pool.map(lambda _: orchestrator.begin_binary_download(7, 42), range(2)))
        results = [handle.result(timeout=10) for handle in handles]

        final = cache.paths.mod_binary_zip(7, 42)
        assert results == [final, final]
        assert final.read_bytes() in payloads
        assert not cache.paths.mod_binary_download(7, 42).exists()

    def test_lock_timeout_is_local_io_error(self, cache, binary_remote, config):
        orchestrator = DownloadOrchestrator(cache, binary_remote, replace(config, lock_timeout=0.1))
        final = cache.paths.mod_binary_zip(7, 42)
        final.parent.mkdir(parents=True)

        with FileLock(str(final) + ".lock"):
            handle = orchestrator.begin_binary_download(7, 42)
            successes, failures = _collect(handle)

        assert successes == []
        assert len(failures) == 1
        assert isinstance(failures[0], LocalIOError)
        assert "concurrent" in str(failures[0])
        assert not final.exists()


class TestImageDownload:
    """Test memory-resident image downloads."""

    def test_plain_image_download(self, orchestrator, remote, png_bytes):
        remote.binaries["https://cdn.example.test/a.png"] = png_bytes

        handle = orchestrator.begin_image_download(ImageRequest("https://cdn.example.test/a.png"))

        assert handle.result(timeout=1) == png_bytes

    def test_logo_download_stores_logo_and_version(
        self, orchestrator, remote, cache, mod_profile, png_bytes
    ):
        remote.binaries[mod_profile.logo.get_url(LogoSize.ORIGINAL)] = png_bytes

        data = orchestrator.begin_logo_download(mod_profile, LogoSize.ORIGINAL).result(timeout=1)

        assert data == png_bytes
        assert cache.load_mod_logo(7, LogoSize.ORIGINAL) == png_bytes
        assert cache.load_mod_logo_version(7, LogoSize.ORIGINAL) == "logo_v2.png"

    def test_logo_download_uses_cache_when_version_matches(
        self, orchestrator, remote, cache, mod_profile, png_bytes
    ):
        cache.save_mod_logo(7, "logo_v2.png", LogoSize.ORIGINAL, png_bytes)

        handle = orchestrator.begin_logo_download(mod_profile, LogoSize.ORIGINAL, use_cache=True)

        assert handle.result(timeout=1) == png_bytes
        assert remote.calls == []

    def test_logo_download_refetches_stale_version(
        self, orchestrator, remote, cache, mod_profile, png_bytes
    ):
        cache.save_mod_logo(7, "logo_v1.png", LogoSize.ORIGINAL, png_bytes)
        remote.binaries[mod_profile.logo.get_url(LogoSize.ORIGINAL)] = png_bytes

        orchestrator.begin_logo_download(mod_profile, LogoSize.ORIGINAL, use_cache=True).result(
            timeout=1
        )

        assert remote.calls == [("binary", mod_profile.logo.get_url(LogoSize.ORIGINAL))]
        assert cache.load_mod_logo_version(7, LogoSize.ORIGINAL) == "logo_v2.png"

    def test_logo_without_url_fails(self, orchestrator, mod_profile):
        handle = orchestrator.begin_logo_download(mod_profile, LogoSize.THUMBNAIL_1280X720)

        assert isinstance(handle.exception(timeout=0), TransportError)

    def test_gallery_download_stores_jpeg_as_png(
        self, orchestrator, remote, cache, mod_profile, jpeg_bytes
    ):
        url = mod_profile.gallery_images[0].get_url(GalleryImageSize.ORIGINAL)
        remote.binaries[url] = jpeg_bytes

        handle = orchestrator.begin_gallery_image_download(
            mod_profile, "forest.jpg", GalleryImageSize.ORIGINAL
        )

        assert handle.result(timeout=1) == jpeg_bytes
        stored = cache.load_mod_gallery_image(7, "forest.jpg", GalleryImageSize.ORIGINAL)
        assert stored.startswith(PNG_SIGNATURE)

    def test_unknown_gallery_image_fails(self, orchestrator, mod_profile):
        handle = orchestrator.begin_gallery_image_download(
            mod_profile, "missing.jpg", GalleryImageSize.ORIGINAL
        )

        assert isinstance(handle.exception(timeout=0), TransportError)

    def test_jpeg_logo_is_cached_as_png(self, orchestrator, remote, cache, mod_profile, jpeg_bytes):
        remote.binaries[mod_profile.logo.get_url(LogoSize.ORIGINAL)] = jpeg_bytes

        data = orchestrator.begin_logo_download(mod_profile, LogoSize.ORIGINAL).result(timeout=1)

        assert data == jpeg_bytes
        assert cache.load_mod_logo(7, LogoSize.ORIGINAL).startswith(PNG_SIGNATURE)
        assert cache.load_mod_logo_version(7, LogoSize.ORIGINAL) == "logo_v2.png"

    def test_unreadable_image_is_delivered_but_not_cached(
        self, orchestrator, remote, cache, mod_profile
    ):
        remote.binaries[mod_profile.logo.get_url(LogoSize.ORIGINAL)] = b"not an image"

        data = orchestrator.begin_logo_download(mod_profile, LogoSize.ORIGINAL).result(timeout=1)

        assert data == b"not an image"
        assert cache.load_mod_logo(7, LogoSize.ORIGINAL) is None

    def test_image_http_error(self, orchestrator):
        handle = orchestrator.begin_image_download(ImageRequest("https://cdn.example.test/404.png"))

        assert handle.exception(timeout=1).status_code == 404

    def test_storing_request_requires_target(self):
        with pytest.raises(ValueError):
            ImageRequest("https://cdn.example.test/a.png", store=True)
        with pytest.raises(ValueError):
            ImageRequest("https://cdn.example.test/a.png", 7, "a.png", None, store=True)


class TestMetadataDownload:
    """Test metadata and mod profile downloads."""

    def test_generic_metadata(self, orchestrator, remote):
        remote.metadata["mods/7/team"] = {"data": [{"id": 1}]}

        handle = orchestrator.begin_metadata_download(MetadataRequest("mods/7/team"))

        assert handle.result(timeout=1) == {"data": [{"id": 1}]}

    def test_metadata_failure(self, orchestrator):
        error = orchestrator.begin_metadata_download(MetadataRequest("mods/9")).exception(timeout=1)

        assert isinstance(error, TransportError)

    def test_mod_profile_is_decoded_and_saved(self, orchestrator, remote, cache, mod_profile):
        remote.metadata["mods/7"] = mod_profile.to_dict()

        profile = orchestrator.begin_mod_profile_download(7).result(timeout=1)

        assert profile == mod_profile
        assert cache.load_mod_profile(7) == mod_profile

    def test_malformed_mod_profile_is_transport_error(self, orchestrator, remote, cache):
        remote.metadata["mods/7"] = {"name": "no id"}

        error = orchestrator.begin_mod_profile_download(7).exception(timeout=1)

        assert isinstance(error, TransportError)
        assert cache.load_mod_profile(7) is None

    def test_remote_that_cannot_issue_is_transport_error(self, cache):
        class ShutDownRemote:
            def fetch_metadata(self, request):
                raise RuntimeError("cannot schedule new futures after shutdown")

        handle = DownloadOrchestrator(cache, ShutDownRemote()).begin_metadata_download(
            MetadataRequest("mods/7")
        )
        successes, failures = _collect(handle)

        assert successes == []
        assert len(failures) == 1
        assert isinstance(failures[0], TransportError)
        assert "shutdown" in str(failures[0])

    def test_unexpected_error_never_leaves_handle_pending(
        self, orchestrator, remote, cache, monkeypatch
    ):
        remote.metadata["mods/7"] = ModProfile(id=7).to_dict()

        def broken_save(profile):
            raise RuntimeError("bug")

        monkeypatch.setattr(cache, "save_mod_profile", broken_save)
        handle = orchestrator.begin_mod_profile_download(7)

        assert handle.done()
        assert type(handle.exception(timeout=0)) is DownloadError
