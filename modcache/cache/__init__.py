"""Resource cache: typed, key-addressed storage of mod.io entities.

- **PathNamer**: pure mapping from entity keys to canonical paths
- **ResourceCache**: per-entity save/load/delete on top of the object cache
"""

from ._paths import (
    DOWNLOAD_SUFFIX,
    PROFILE_FILE,
    RECORD_EXT,
    AuthStateKey,
    EntityKey,
    GalleryImageKey,
    GameProfileKey,
    LogoKey,
    LogoVersionKey,
    ModBinaryKey,
    ModfileKey,
    ModKey,
    ModProfileKey,
    PathNamer,
    TeamKey,
    UserKey,
    require_id,
)
from ._resource_cache import ResourceCache

__all__ = [
    "ResourceCache",
    "PathNamer",
    "require_id",
    "ModKey",
    "ModProfileKey",
    "ModfileKey",
    "ModBinaryKey",
    "LogoKey",
    "LogoVersionKey",
    "GalleryImageKey",
    "TeamKey",
    "UserKey",
    "GameProfileKey",
    "AuthStateKey",
    "EntityKey",
    "DOWNLOAD_SUFFIX",
    "PROFILE_FILE",
    "RECORD_EXT",
]
