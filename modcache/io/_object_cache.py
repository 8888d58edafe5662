"""Typed read/write of cached objects on top of :class:`FileStore`.

The object cache is an optional optimization over the remote source of
truth, so it fails soft: a missing file, an unreadable file and a file
that no longer decodes all come back as ``None`` (a cache miss), and a
value that cannot be encoded is logged and not written.

Serializers
-----------
- :class:`JSONSerializer` for records (anything with ``to_dict``, plus
  lists, dicts and enums of those)
- :class:`PNGCodec` for logo and gallery images, converted to PNG
- :class:`RawCodec` for opaque payloads such as modfile archives
"""

from __future__ import annotations

import json
from collections.abc import Callable
from enum import Enum
from io import BytesIO
from pathlib import Path
from typing import Any, Protocol, TypeVar

from PIL import Image, UnidentifiedImageError

from modcache.core.exceptions import DecodeError, EncodeError
from modcache.utils import get_logger

from ._file_store import FileStore

logger = get_logger("modcache.io")

__all__ = ["Serializer", "JSONSerializer", "PNGCodec", "RawCodec", "ObjectCache", "PNG_SIGNATURE"]

T = TypeVar("T")

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


class Serializer(Protocol):
    """Port for turning values into bytes and back."""

    def encode(self, value: Any) -> bytes:
        """Serialize ``value``. Raises :class:`EncodeError` when impossible."""
        ...

    def decode(self, data: bytes, into: Callable[[Any], T] | None = None) -> T:
        """Deserialize ``data``, optionally converting with ``into``.

        Raises :class:`DecodeError` for any malformed input.
        """
        ...


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {
            (k.value if isinstance(k, Enum) else k): _to_jsonable(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    return value


class JSONSerializer:
    """UTF-8 JSON encoding for records."""

    def __init__(self, indent: int | None = 2):
        self.indent = indent

    def encode(self, value: Any) -> bytes:
        try:
            return json.dumps(_to_jsonable(value), indent=self.indent).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodeError(f"cannot encode {type(value).__name__} as JSON: {e}") from e

    def decode(self, data: bytes, into: Callable[[Any], T] | None = None) -> T:
        try:
            obj = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise DecodeError(f"invalid JSON: {e}") from e

        if into is None:
            return obj
        try:
            return into(obj)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DecodeError(f"JSON does not match expected structure: {e!r}") from e


class PNGCodec:
    """Codec for cached images, which are always stored as PNG.

    PNG input is kept byte for byte. Any other format Pillow can read
    (JPEG, GIF, WebP, ...) is converted to PNG before it is written.
    """

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodeError(f"image data must be bytes, got {type(value).__name__}")
        data = bytes(value)
        if data.startswith(PNG_SIGNATURE):
            return data
        return self._convert_to_png(data)

    @staticmethod
    def _convert_to_png(data: bytes) -> bytes:
        try:
            with Image.open(BytesIO(data)) as image:
                image.load()
                # PNG has no CMYK/YCbCr modes
                if image.mode not in _PNG_MODES:
                    image = image.convert("RGBA" if "A" in image.mode else "RGB")
                buffer = BytesIO()
                image.save(buffer, format="PNG")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise EncodeError(f"cannot convert image to PNG: {e}") from e
        return buffer.getvalue()

    def decode(self, data: bytes, into: Callable[[Any], T] | None = None) -> T:
        if not data.startswith(PNG_SIGNATURE):
            raise DecodeError("file does not start with the PNG signature")
        return into(data) if into is not None else data


class RawCodec:
    """Identity codec for opaque binary payloads."""

    def encode(self, value: Any) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodeError(f"binary payload must be bytes, got {type(value).__name__}")
        return bytes(value)

    def decode(self, data: bytes, into: Callable[[Any], T] | None = None) -> T:
        return into(data) if into is not None else data


class ObjectCache:
    """Read and write objects of one encoding through a :class:`FileStore`.

    Parameters
    ----------
    store : FileStore, optional
        Byte-level store. A new one is created when omitted.
    serializer : Serializer, optional
        Encoding for every object in this cache. Defaults to JSON.

    Examples
    --------
    >>> cache = ObjectCache()
    >>> cache.write_object(path, profile)
    True
    >>> cache.read_object(path, ModProfile.from_dict)
    ModProfile(id=7, ...)
    """

    def __init__(self, store: FileStore | None = None, serializer: Serializer | None = None):
        self.store = store or FileStore()
        self.serializer = serializer or JSONSerializer()

    def read_object(self, path: Path | str, into: Callable[[Any], T] | None = None) -> T | None:
        """Return the decoded object at ``path``, or ``None`` on any miss."""
        result = self.store.read_bytes(path)
        if result.not_found:
            logger.debug(f"Cache miss: {path}")
            return None
        if not result.ok:
            logger.warning(f"Failed to read cached file {path}: {result.describe()}")
            return None

        try:
            value = self.serializer.decode(result.data, into)
        except DecodeError as e:
            logger.warning(f"Discarding unreadable cached file {path}: {e}")
            return None
        logger.debug(f"Cache hit: {path} ({result.size} bytes)")
        return value

    def write_object(self, path: Path | str, value: Any) -> bool:
        """Encode and write ``value``. Returns False when nothing was written."""
        try:
            data = self.serializer.encode(value)
        except EncodeError as e:
            logger.warning(f"Skipping cache write for {path}: {e}")
            return False

        result = self.store.write_bytes(path, data)
        if not result.ok:
            logger.warning(f"Failed to write cached file {path}: {result.describe()}")
            return False
        return True

    def delete(self, path: Path | str) -> bool:
        result = self.store.delete_file(path)
        if not result.ok:
            logger.warning(f"Failed to delete cached file {path}: {result.describe()}")
            return False
        return True

    def exists(self, path: Path | str) -> bool:
        return self.store.exists(path)
