"""Core configuration, exceptions and entity records."""

from .config import CacheConfig, default_cache_dir, default_image_cache_dir
from .exceptions import (
    ConfigurationError,
    DecodeError,
    DownloadError,
    EncodeError,
    LocalIOError,
    ModCacheError,
    TransportError,
)
from .types import (
    AuthenticatedUser,
    GalleryImageLocator,
    GalleryImageSize,
    GameProfile,
    LogoLocator,
    LogoSize,
    Modfile,
    ModfileLocator,
    ModProfile,
    TeamMember,
    UserProfile,
)

__all__ = [
    "CacheConfig",
    "default_cache_dir",
    "default_image_cache_dir",
    "ModCacheError",
    "ConfigurationError",
    "DecodeError",
    "EncodeError",
    "DownloadError",
    "TransportError",
    "LocalIOError",
    "LogoSize",
    "GalleryImageSize",
    "LogoLocator",
    "GalleryImageLocator",
    "ModfileLocator",
    "Modfile",
    "ModProfile",
    "TeamMember",
    "UserProfile",
    "GameProfile",
    "AuthenticatedUser",
]
