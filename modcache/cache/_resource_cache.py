"""Domain cache for mod profiles, modfiles, images, teams, users and auth state.

:class:`ResourceCache` is a façade over :class:`~modcache.io.ObjectCache`
and :class:`~modcache.cache.PathNamer`. It owns the rules that go beyond
plain storage:

- **Fail soft**: ``load_*`` returns ``None`` on any miss (absent, unreadable
  or corrupt) and ``save_*`` returns ``False`` when nothing was written.
  Only invalid ids raise (``ValueError``).
- **Singletons**: the game profile and the authenticated-user record are
  written wholesale. Updating one field of the auth record loads it (or
  starts from an empty record), changes that field and writes the whole
  record back. Each write is atomic on disk, but two uncoordinated
  updates of different fields can still lose one of them; callers
  updating the auth record from several threads must serialize.
- **Enumeration**: ``iterate_all_*`` are lazy generators that list the
  directory when they start, decode each entry independently, and skip
  (with a warning) entries that fail to decode.
- **Logo versions**: saving a logo also records its source file name in
  the per-mod version index. Loading a logo returns the stored bytes
  without consulting the index; freshness checks belong to the caller.

Examples
--------
>>> from modcache.cache import ResourceCache
>>> cache = ResourceCache(CacheConfig(cache_dir="/tmp/modcache"))
>>> cache.save_mod_profile(profile)
True
>>> cache.load_mod_profile(profile.id) == profile
True
>>> for p in cache.iterate_all_mod_profiles():
...     print(p.id, p.name)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace
from pathlib import Path
from typing import Any

from modcache.core.config import CacheConfig
from modcache.core.types import (
    AuthenticatedUser,
    GalleryImageSize,
    GameProfile,
    LogoSize,
    Modfile,
    ModProfile,
    TeamMember,
    UserProfile,
)
from modcache.io import FileStore, JSONSerializer, ObjectCache, PNGCodec, RawCodec
from modcache.utils import get_logger

from ._paths import PROFILE_FILE, RECORD_EXT, PathNamer, require_id

logger = get_logger("modcache.cache")

__all__ = ["ResourceCache"]


def _team_from_json(data: Any) -> list[TeamMember]:
    if not isinstance(data, list):
        raise TypeError(f"team must be a JSON array, got {type(data).__name__}")
    return [TeamMember.from_dict(member) for member in data]


def _logo_versions_from_json(data: Any) -> dict[LogoSize, str]:
    if not isinstance(data, dict):
        raise TypeError(f"logo version info must be a JSON object, got {type(data).__name__}")
    return {LogoSize(size): str(file_name) for size, file_name in data.items()}


class ResourceCache:
    """Save, load and delete cached entities under one cache root.

    Parameters
    ----------
    config : CacheConfig, optional
        Roots and settings. Defaults to :meth:`CacheConfig.from_env`.
    store : FileStore, optional
        Byte-level store shared by every encoding.
    serializer : Serializer, optional
        Encoding for records. Defaults to JSON.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        store: FileStore | None = None,
        serializer=None,
    ):
        # Own copy; root switches stay local to this cache
        self.config = replace(config) if config is not None else CacheConfig.from_env()
        self.store = store or FileStore()
        self.records = ObjectCache(self.store, serializer or JSONSerializer())
        self.images = ObjectCache(self.store, PNGCodec())
        self.binaries = ObjectCache(self.store, RawCodec())
        self.paths = PathNamer(self.config.cache_dir, self.config.image_cache_dir)

        result = self.store.ensure_directory(self.config.cache_dir)
        if not result.ok:
            logger.warning(f"Failed to create cache directory {self.config.cache_dir}: {result.describe()}")
        logger.debug(f"Initialized resource cache at {self.config.cache_dir}")

    # ---------[ ROOTS ]---------

    @property
    def cache_dir(self) -> Path:
        return self.config.cache_dir

    @property
    def image_cache_dir(self) -> Path:
        return self.config.image_cache_dir

    def set_cache_dir(self, directory: Path | str) -> bool:
        """Switch the durable cache root, creating it if needed.

        Returns False and keeps the current root when the directory cannot
        be created.
        """
        directory = Path(directory).expanduser()
        result = self.store.ensure_directory(directory)
        if not result.ok:
            logger.warning(f"Failed to set cache directory {directory}: {result.describe()}")
            return False

        self.config = replace(self.config, cache_dir=directory)
        self.paths = PathNamer(directory, self.config.image_cache_dir)
        logger.info(f"Set cache directory to {directory}")
        return True

    def set_image_cache_dir(self, directory: Path | str) -> bool:
        """Switch the gallery image root. Same contract as :meth:`set_cache_dir`."""
        directory = Path(directory).expanduser()
        result = self.store.ensure_directory(directory)
        if not result.ok:
            logger.warning(f"Failed to set image cache directory {directory}: {result.describe()}")
            return False

        self.config = replace(self.config, image_cache_dir=directory)
        self.paths = PathNamer(self.config.cache_dir, directory)
        return True

    # ---------[ AUTHENTICATED USER ]---------

    def load_authenticated_user(self) -> AuthenticatedUser | None:
        return self.records.read_object(self.paths.authenticated_user(), AuthenticatedUser.from_dict)

    def save_authenticated_user(self, user: AuthenticatedUser) -> bool:
        """Replace the whole authenticated-user record."""
        return self.records.write_object(self.paths.authenticated_user(), user)

    def _update_authenticated_user(self, update: Callable[[AuthenticatedUser], None]) -> bool:
        user = self.load_authenticated_user() or AuthenticatedUser()
        update(user)
        return self.save_authenticated_user(user)

    def save_authenticated_user_token(self, oauth_token: str | None) -> bool:
        def update(user: AuthenticatedUser) -> None:
            user.oauth_token = oauth_token

        return self._update_authenticated_user(update)

    def load_authenticated_user_token(self) -> str | None:
        user = self.load_authenticated_user()
        return user.oauth_token if user is not None else None

    def save_authenticated_user_profile(self, profile: UserProfile) -> bool:
        """Cache ``profile`` with the other users and record its id as the signed-in user."""
        require_id(profile.id, "user_id")
        saved = self.save_user_profile(profile)

        def update(user: AuthenticatedUser) -> None:
            user.user_id = profile.id

        return self._update_authenticated_user(update) and saved

    def load_authenticated_user_profile(self) -> UserProfile | None:
        user = self.load_authenticated_user()
        if user is None or user.user_id <= 0:
            return None
        return self.load_user_profile(user.user_id)

    def save_authenticated_user_subscriptions(self, subscribed_mod_ids: Iterable[int]) -> bool:
        ids = [require_id(mod_id, "mod_id") for mod_id in subscribed_mod_ids]

        def update(user: AuthenticatedUser) -> None:
            user.subscribed_mod_ids = ids

        return self._update_authenticated_user(update)

    def load_authenticated_user_subscriptions(self) -> list[int] | None:
        user = self.load_authenticated_user()
        return list(user.subscribed_mod_ids) if user is not None else None

    def save_authenticated_user_mods(self, mod_ids: Iterable[int]) -> bool:
        ids = [require_id(mod_id, "mod_id") for mod_id in mod_ids]

        def update(user: AuthenticatedUser) -> None:
            user.mod_ids = ids

        return self._update_authenticated_user(update)

    def load_authenticated_user_mods(self) -> list[int] | None:
        user = self.load_authenticated_user()
        return list(user.mod_ids) if user is not None else None

    def delete_authenticated_user(self) -> bool:
        """Remove the auth record. The user's profile stays cached."""
        return self.records.delete(self.paths.authenticated_user())

    # ---------[ GAME PROFILE ]---------

    def save_game_profile(self, profile: GameProfile) -> bool:
        return self.records.write_object(self.paths.game_profile(), profile)

    def load_game_profile(self) -> GameProfile | None:
        return self.records.read_object(self.paths.game_profile(), GameProfile.from_dict)

    def delete_game_profile(self) -> bool:
        return self.records.delete(self.paths.game_profile())

    # ---------[ MOD PROFILES ]---------

    def save_mod_profile(self, profile: ModProfile) -> bool:
        require_id(profile.id, "mod_id")
        return self.records.write_object(self.paths.mod_profile(profile.id), profile)

    def load_mod_profile(self, mod_id: int) -> ModProfile | None:
        return self.records.read_object(self.paths.mod_profile(mod_id), ModProfile.from_dict)

    def save_mod_profiles(self, profiles: Iterable[ModProfile]) -> int:
        """Save every profile. Returns the number actually written."""
        return sum(1 for profile in profiles if self.save_mod_profile(profile))

    def iterate_all_mod_profiles(self) -> Iterator[ModProfile]:
        """Lazily yield every decodable mod profile in the cache."""
        for mod_dir in self.store.iter_directories(self.paths.mods_directory()):
            profile_path = mod_dir / PROFILE_FILE
            if not self.store.exists(profile_path):
                continue
            profile = self.records.read_object(profile_path, ModProfile.from_dict)
            if profile is None:
                logger.warning(f"Skipping unreadable mod profile {profile_path}")
                continue
            yield profile

    def delete_mod(self, mod_id: int) -> bool:
        """Remove everything cached for a mod: profile, team, modfiles, binaries and logos.

        Gallery images live under the image cache root and are removed by
        :meth:`delete_mod_gallery_images`.
        """
        mod_dir = self.paths.mod_directory(mod_id)
        result = self.store.delete_directory(mod_dir)
        if not result.ok:
            logger.warning(f"Failed to delete mod directory {mod_dir}: {result.describe()}")
            return False
        logger.debug(f"Deleted cached mod {mod_id}")
        return True

    # ---------[ MODFILES ]---------

    def save_modfile(self, modfile: Modfile) -> bool:
        path = self.paths.modfile(modfile.mod_id, modfile.id)
        return self.records.write_object(path, modfile)

    def load_modfile(self, mod_id: int, modfile_id: int) -> Modfile | None:
        return self.records.read_object(self.paths.modfile(mod_id, modfile_id), Modfile.from_dict)

    def save_mod_binary_zip(self, mod_id: int, modfile_id: int, data: bytes) -> bool:
        return self.binaries.write_object(self.paths.mod_binary_zip(mod_id, modfile_id), data)

    def load_mod_binary_zip(self, mod_id: int, modfile_id: int) -> bytes | None:
        return self.binaries.read_object(self.paths.mod_binary_zip(mod_id, modfile_id))

    def has_mod_binary_zip(self, mod_id: int, modfile_id: int) -> bool:
        return self.store.exists(self.paths.mod_binary_zip(mod_id, modfile_id))

    def delete_modfile_and_binary_zip(self, mod_id: int, modfile_id: int) -> bool:
        """Delete the modfile record and its zip as two independent deletes.

        A record left without its zip is harmless: the downloader treats a
        missing zip as a miss.
        """
        record_deleted = self.records.delete(self.paths.modfile(mod_id, modfile_id))
        zip_deleted = self.binaries.delete(self.paths.mod_binary_zip(mod_id, modfile_id))
        return record_deleted and zip_deleted

    # ---------[ LOGOS ]---------

    def save_mod_logo(self, mod_id: int, file_name: str, size: LogoSize, data: bytes) -> bool:
        """Store logo bytes for ``size`` and record ``file_name`` as their version.

        The index entry is only updated when the image itself was written.
        """
        require_id(mod_id, "mod_id")
        if not file_name:
            raise ValueError("file_name is required; it identifies the logo version")
        size = LogoSize(size)

        if not self.images.write_object(self.paths.mod_logo(mod_id, size), data):
            return False

        versions = self.load_mod_logo_version_info(mod_id) or {}
        versions[size] = file_name
        return self.records.write_object(self.paths.mod_logo_version_info(mod_id), versions)

    def load_mod_logo(self, mod_id: int, size: LogoSize) -> bytes | None:
        # The version index is not consulted; stale bytes are the caller's call
        return self.images.read_object(self.paths.mod_logo(mod_id, size))

    def load_mod_logo_version_info(self, mod_id: int) -> dict[LogoSize, str] | None:
        """Map of logo size to the source file name cached for it."""
        return self.records.read_object(
            self.paths.mod_logo_version_info(mod_id), _logo_versions_from_json
        )

    def load_mod_logo_version(self, mod_id: int, size: LogoSize) -> str | None:
        versions = self.load_mod_logo_version_info(mod_id) or {}
        return versions.get(LogoSize(size))

    # ---------[ GALLERY IMAGES ]---------

    def save_mod_gallery_image(
        self, mod_id: int, image_file_name: str, size: GalleryImageSize, data: bytes
    ) -> bool:
        path = self.paths.mod_gallery_image(mod_id, image_file_name, size)
        return self.images.write_object(path, data)

    def load_mod_gallery_image(
        self, mod_id: int, image_file_name: str, size: GalleryImageSize
    ) -> bytes | None:
        return self.images.read_object(self.paths.mod_gallery_image(mod_id, image_file_name, size))

    def delete_mod_gallery_images(self, mod_id: int) -> bool:
        gallery_dir = self.paths.mod_gallery_directory(mod_id)
        result = self.store.delete_directory(gallery_dir)
        if not result.ok:
            logger.warning(f"Failed to delete gallery directory {gallery_dir}: {result.describe()}")
            return False
        return True

    # ---------[ TEAMS ]---------

    def save_mod_team(self, mod_id: int, members: Iterable[TeamMember]) -> bool:
        return self.records.write_object(self.paths.mod_team(mod_id), list(members))

    def load_mod_team(self, mod_id: int) -> list[TeamMember] | None:
        return self.records.read_object(self.paths.mod_team(mod_id), _team_from_json)

    def delete_mod_team(self, mod_id: int) -> bool:
        return self.records.delete(self.paths.mod_team(mod_id))

    # ---------[ USERS ]---------

    def save_user_profile(self, profile: UserProfile) -> bool:
        require_id(profile.id, "user_id")
        return self.records.write_object(self.paths.user_profile(profile.id), profile)

    def load_user_profile(self, user_id: int) -> UserProfile | None:
        return self.records.read_object(self.paths.user_profile(user_id), UserProfile.from_dict)

    def iterate_all_user_profiles(self) -> Iterator[UserProfile]:
        """Lazily yield every decodable user profile in the cache."""
        for profile_path in self.store.iter_files(self.paths.users_directory()):
            if profile_path.suffix != RECORD_EXT:
                continue
            profile = self.records.read_object(profile_path, UserProfile.from_dict)
            if profile is None:
                logger.warning(f"Skipping unreadable user profile {profile_path}")
                continue
            yield profile

    def delete_user_profile(self, user_id: int) -> bool:
        return self.records.delete(self.paths.user_profile(user_id))
