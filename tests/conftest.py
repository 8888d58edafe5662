"""Shared fixtures for the modcache test suite.

The remote API is replaced by :class:`FakeRemote`, which answers with
already-resolved :class:`concurrent.futures.Future` objects, so download
callbacks run synchronously on the test thread.
"""

from __future__ import annotations

from concurrent.futures import Future
from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from modcache.cache import ResourceCache
from modcache.core import (
    CacheConfig,
    GalleryImageLocator,
    GalleryImageSize,
    LogoLocator,
    LogoSize,
    Modfile,
    ModfileLocator,
    ModProfile,
    TransportError,
)
from modcache.download import BytesStream, DownloadOrchestrator

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + b"\x00" * 17


def make_jpeg(size=(4, 3), color=(34, 139, 34)) -> bytes:
    """Encode a small solid-color JPEG in memory."""
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="JPEG")
    return buffer.getvalue()


def resolved(value) -> Future:
    """Future already completed with ``value`` (or failed, for exceptions)."""
    future: Future = Future()
    if isinstance(value, BaseException):
        future.set_exception(value)
    else:
        future.set_result(value)
    return future


class FakeRemote:
    """In-process stand-in for :class:`~modcache.download.RemoteFetcher`."""

    def __init__(self):
        self.metadata: dict[str, object] = {}
        self.binaries: dict[str, object] = {}
        self.modfiles: dict[tuple[int, int], object] = {}
        self.calls: list[tuple] = []

    def fetch_metadata(self, request):
        self.calls.append(("metadata", request.endpoint))
        value = self.metadata.get(request.endpoint, TransportError("not found", status_code=404))
        return resolved(value)

    def fetch_binary(self, url):
        self.calls.append(("binary", url))
        value = self.binaries.get(url, TransportError("not found", status_code=404, url=url))
        if isinstance(value, bytes):
            value = BytesStream(value)
        return resolved(value)

    def resolve_binary_locator(self, mod_id, modfile_id):
        self.calls.append(("locator", mod_id, modfile_id))
        value = self.modfiles.get(
            (mod_id, modfile_id), TransportError("modfile not found", status_code=404)
        )
        return resolved(value)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def config(tmp_path: Path) -> CacheConfig:
    """Configuration rooted in a per-test temporary directory."""
    return CacheConfig(
        cache_dir=tmp_path / "cache",
        image_cache_dir=tmp_path / "images",
        api_url="https://api.example.test/v1",
        game_id=11,
        api_key="test-key",
        chunk_size=4,
        lock_timeout=5,
    )


@pytest.fixture
def cache(config: CacheConfig) -> ResourceCache:
    return ResourceCache(config)


@pytest.fixture
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture
def orchestrator(cache: ResourceCache, remote: FakeRemote) -> DownloadOrchestrator:
    return DownloadOrchestrator(cache, remote)


@pytest.fixture
def png_bytes() -> bytes:
    return PNG_BYTES


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def modfile() -> Modfile:
    return Modfile(
        id=42,
        mod_id=7,
        version="1.2.0",
        filename="mod.zip",
        filesize=11,
        date_added=1700000000,
        md5="d41d8cd98f00b204e9800998ecf8427e",
        download=ModfileLocator("https://cdn.example.test/7/42/mod.zip", 1700003600),
    )


@pytest.fixture
def mod_profile(modfile: Modfile) -> ModProfile:
    return ModProfile(
        id=7,
        name="Better Trees",
        name_id="better-trees",
        summary="Trees, but better.",
        date_updated=1700000000,
        logo=LogoLocator(
            "logo_v2.png",
            {
                LogoSize.ORIGINAL: "https://cdn.example.test/7/logo_v2.png",
                LogoSize.THUMBNAIL_320X180: "https://cdn.example.test/7/thumb_320x180/logo_v2.png",
            },
        ),
        gallery_images=[
            GalleryImageLocator(
                "forest.jpg",
                {GalleryImageSize.ORIGINAL: "https://cdn.example.test/7/images/forest.jpg"},
            )
        ],
        current_build=modfile,
    )
