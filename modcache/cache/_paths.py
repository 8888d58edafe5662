"""Entity keys and the deterministic on-disk layout.

Every cached entity lives at a path derived only from its key, so no
index is needed to find anything. Keys validate their ids when they are
built; :class:`PathNamer` therefore never sees a malformed id.

Layout (``cache_dir`` is durable, ``image_cache_dir`` is purgeable)::

    cache_dir/
        game_profile.data
        user.data
        users/{user_id}.data
        mods/{mod_id}/profile.data
        mods/{mod_id}/team.data
        mods/{mod_id}/binaries/{modfile_id}.data
        mods/{mod_id}/binaries/{modfile_id}.zip
        mods/{mod_id}/logo/{size}.png
        mods/{mod_id}/logo/versionInfo.data
    image_cache_dir/
        mod_images/{mod_id}/{size}/{file_name_stem}.png
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Union

from modcache.core.types import GalleryImageSize, LogoSize

__all__ = [
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
    "PathNamer",
    "DOWNLOAD_SUFFIX",
    "PROFILE_FILE",
    "RECORD_EXT",
]

DOWNLOAD_SUFFIX = ".download"

MODS_DIR = "mods"
USERS_DIR = "users"
BINARIES_DIR = "binaries"
LOGO_DIR = "logo"
GALLERY_DIR = "mod_images"
RECORD_EXT = ".data"
PROFILE_FILE = f"profile{RECORD_EXT}"


def require_id(value: int, name: str = "id") -> int:
    """Return ``value`` if it is a positive integer, else raise ``ValueError``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class ModKey:
    """Directory holding everything cached for one mod."""

    mod_id: int

    def __post_init__(self):
        require_id(self.mod_id, "mod_id")


@dataclass(frozen=True)
class ModProfileKey(ModKey):
    pass


@dataclass(frozen=True)
class TeamKey(ModKey):
    pass


@dataclass(frozen=True)
class ModfileKey:
    """Metadata record of one modfile."""

    mod_id: int
    modfile_id: int

    def __post_init__(self):
        require_id(self.mod_id, "mod_id")
        require_id(self.modfile_id, "modfile_id")


@dataclass(frozen=True)
class ModBinaryKey(ModfileKey):
    """Zip payload of one modfile."""

    pass


@dataclass(frozen=True)
class LogoKey:
    mod_id: int
    size: LogoSize

    def __post_init__(self):
        require_id(self.mod_id, "mod_id")
        object.__setattr__(self, "size", LogoSize(self.size))


@dataclass(frozen=True)
class LogoVersionKey(ModKey):
    """Per-mod index mapping logo size to source file name."""

    pass


@dataclass(frozen=True)
class GalleryImageKey:
    """Gallery image rendition, identified by the stem of its source file name.

    ``file_name`` is normalized to its stem, so ``shot.jpg`` and
    ``shot.png`` name the same key.
    """

    mod_id: int
    file_name: str
    size: GalleryImageSize

    def __post_init__(self):
        require_id(self.mod_id, "mod_id")
        object.__setattr__(self, "size", GalleryImageSize(self.size))
        # Only the final component counts; directories in a remote name are ignored
        stem = PurePosixPath(str(self.file_name or "").replace("\\", "/")).stem
        if not stem:
            raise ValueError("gallery image file_name cannot be empty")
        object.__setattr__(self, "file_name", stem)


@dataclass(frozen=True)
class UserKey:
    user_id: int

    def __post_init__(self):
        require_id(self.user_id, "user_id")


@dataclass(frozen=True)
class GameProfileKey:
    """Singleton game profile."""

    pass


@dataclass(frozen=True)
class AuthStateKey:
    """Singleton authenticated-user record."""

    pass


EntityKey = Union[
    ModKey,
    ModfileKey,
    LogoKey,
    GalleryImageKey,
    UserKey,
    GameProfileKey,
    AuthStateKey,
]


class PathNamer:
    """Map entity keys to canonical paths. Pure; performs no I/O.

    Parameters
    ----------
    cache_dir : Path or str
        Durable cache root.
    image_cache_dir : Path or str
        Volatile root for gallery images.
    """

    def __init__(self, cache_dir: Path | str, image_cache_dir: Path | str):
        self.cache_dir = Path(cache_dir)
        self.image_cache_dir = Path(image_cache_dir)

    def relative_path(self, key: EntityKey) -> PurePosixPath:
        """Path of ``key`` relative to the root it belongs to."""
        # Subclasses before their bases
        if isinstance(key, ModBinaryKey):
            return self._binaries(key.mod_id) / f"{key.modfile_id}.zip"
        if isinstance(key, ModfileKey):
            return self._binaries(key.mod_id) / f"{key.modfile_id}{RECORD_EXT}"
        if isinstance(key, ModProfileKey):
            return self._mod(key.mod_id) / PROFILE_FILE
        if isinstance(key, TeamKey):
            return self._mod(key.mod_id) / f"team{RECORD_EXT}"
        if isinstance(key, LogoVersionKey):
            return self._mod(key.mod_id) / LOGO_DIR / f"versionInfo{RECORD_EXT}"
        if isinstance(key, ModKey):
            return self._mod(key.mod_id)
        if isinstance(key, LogoKey):
            return self._mod(key.mod_id) / LOGO_DIR / f"{key.size.value}.png"
        if isinstance(key, GalleryImageKey):
            return (
                PurePosixPath(GALLERY_DIR)
                / str(key.mod_id)
                / key.size.value
                / f"{key.file_name}.png"
            )
        if isinstance(key, UserKey):
            return PurePosixPath(USERS_DIR) / f"{key.user_id}{RECORD_EXT}"
        if isinstance(key, GameProfileKey):
            return PurePosixPath(f"game_profile{RECORD_EXT}")
        if isinstance(key, AuthStateKey):
            return PurePosixPath(f"user{RECORD_EXT}")
        raise TypeError(f"unsupported entity key: {key!r}")

    def path(self, key: EntityKey) -> Path:
        """Absolute path of ``key`` under its root."""
        root = self.image_cache_dir if isinstance(key, GalleryImageKey) else self.cache_dir
        return root / self.relative_path(key)

    # Convenience wrappers used by the resource cache and the downloader

    def mods_directory(self) -> Path:
        return self.cache_dir / MODS_DIR

    def users_directory(self) -> Path:
        return self.cache_dir / USERS_DIR

    def mod_directory(self, mod_id: int) -> Path:
        return self.path(ModKey(mod_id))

    def mod_profile(self, mod_id: int) -> Path:
        return self.path(ModProfileKey(mod_id))

    def mod_binaries_directory(self, mod_id: int) -> Path:
        return self.cache_dir / self._binaries(require_id(mod_id, "mod_id"))

    def modfile(self, mod_id: int, modfile_id: int) -> Path:
        return self.path(ModfileKey(mod_id, modfile_id))

    def mod_binary_zip(self, mod_id: int, modfile_id: int) -> Path:
        return self.path(ModBinaryKey(mod_id, modfile_id))

    def mod_binary_download(self, mod_id: int, modfile_id: int) -> Path:
        """Temporary path a binary streams into before it is committed."""
        final = self.mod_binary_zip(mod_id, modfile_id)
        return final.with_name(final.name + DOWNLOAD_SUFFIX)

    def mod_logo_directory(self, mod_id: int) -> Path:
        return self.mod_directory(mod_id) / LOGO_DIR

    def mod_logo(self, mod_id: int, size: LogoSize) -> Path:
        return self.path(LogoKey(mod_id, size))

    def mod_logo_version_info(self, mod_id: int) -> Path:
        return self.path(LogoVersionKey(mod_id))

    def mod_gallery_directory(self, mod_id: int) -> Path:
        return self.image_cache_dir / GALLERY_DIR / str(require_id(mod_id, "mod_id"))

    def mod_gallery_image(self, mod_id: int, file_name: str, size: GalleryImageSize) -> Path:
        return self.path(GalleryImageKey(mod_id, file_name, size))

    def mod_team(self, mod_id: int) -> Path:
        return self.path(TeamKey(mod_id))

    def user_profile(self, user_id: int) -> Path:
        return self.path(UserKey(user_id))

    def game_profile(self) -> Path:
        return self.path(GameProfileKey())

    def authenticated_user(self) -> Path:
        return self.path(AuthStateKey())

    @staticmethod
    def _mod(mod_id: int) -> PurePosixPath:
        return PurePosixPath(MODS_DIR) / str(mod_id)

    @classmethod
    def _binaries(cls, mod_id: int) -> PurePosixPath:
        return cls._mod(mod_id) / BINARIES_DIR
