"""Storage primitives for modcache.

- **FileStore**: byte-level read/write/delete with structured results
- **ObjectCache**: typed objects over a FileStore and a serializer
"""

from ._file_store import FileStore, StoreResult, StoreStatus
from ._object_cache import (
    PNG_SIGNATURE,
    JSONSerializer,
    ObjectCache,
    PNGCodec,
    RawCodec,
    Serializer,
)

__all__ = [
    "FileStore",
    "StoreResult",
    "StoreStatus",
    "ObjectCache",
    "Serializer",
    "JSONSerializer",
    "PNGCodec",
    "RawCodec",
    "PNG_SIGNATURE",
]
