"""Entity records cached by modcache.

Each record is a plain dataclass with ``to_dict()`` / ``from_dict()`` so the
JSON serializer can store it. ``from_dict`` raises ``KeyError``,
``TypeError`` or ``ValueError`` on malformed input; the object cache turns
those into cache misses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from typing_extensions import Self

__all__ = [
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


class LogoSize(str, Enum):
    """Logo renditions served by the remote API. Values are the on-disk names."""

    ORIGINAL = "Original"
    THUMBNAIL_320X180 = "Thumbnail_320x180"
    THUMBNAIL_640X360 = "Thumbnail_640x360"
    THUMBNAIL_1280X720 = "Thumbnail_1280x720"


class GalleryImageSize(str, Enum):
    """Gallery image renditions. Values are the on-disk names."""

    ORIGINAL = "Original"
    THUMBNAIL_320X180 = "Thumbnail_320x180"


def _check_dict(data: Any, kind: str) -> dict:
    if not isinstance(data, dict):
        raise TypeError(f"{kind} must be a JSON object, got {type(data).__name__}")
    return data


def _int_list(values: Any) -> list[int]:
    if values is None:
        return []
    if not isinstance(values, list):
        raise TypeError(f"expected a list of ids, got {type(values).__name__}")
    return [int(v) for v in values]


@dataclass
class LogoLocator:
    """Source file name and per-size URLs of a mod logo."""

    file_name: str
    urls: dict[LogoSize, str] = field(default_factory=dict)

    def get_url(self, size: LogoSize) -> str | None:
        return self.urls.get(LogoSize(size))

    def to_dict(self) -> dict[str, Any]:
        return {"file_name": self.file_name, "urls": {s.value: u for s, u in self.urls.items()}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "logo locator")
        urls = {LogoSize(k): str(v) for k, v in (data.get("urls") or {}).items()}
        return cls(file_name=str(data["file_name"]), urls=urls)


@dataclass
class GalleryImageLocator:
    """Source file name and per-size URLs of a gallery image."""

    file_name: str
    urls: dict[GalleryImageSize, str] = field(default_factory=dict)

    def get_url(self, size: GalleryImageSize) -> str | None:
        return self.urls.get(GalleryImageSize(size))

    def to_dict(self) -> dict[str, Any]:
        return {"file_name": self.file_name, "urls": {s.value: u for s, u in self.urls.items()}}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "gallery image locator")
        urls = {GalleryImageSize(k): str(v) for k, v in (data.get("urls") or {}).items()}
        return cls(file_name=str(data["file_name"]), urls=urls)


@dataclass
class ModfileLocator:
    """Signed binary URL of a modfile. The URL expires, so it is never reused."""

    binary_url: str
    date_expires: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"binary_url": self.binary_url, "date_expires": self.date_expires}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "modfile locator")
        return cls(binary_url=str(data["binary_url"]), date_expires=int(data.get("date_expires", 0)))


@dataclass
class Modfile:
    """Metadata of one uploaded build of a mod."""

    id: int
    mod_id: int
    version: str = ""
    filename: str = ""
    filesize: int = 0
    date_added: int = 0
    md5: str = ""
    download: ModfileLocator | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "mod_id": self.mod_id,
            "version": self.version,
            "filename": self.filename,
            "filesize": self.filesize,
            "date_added": self.date_added,
            "md5": self.md5,
            "download": self.download.to_dict() if self.download else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "modfile")
        download = data.get("download")
        return cls(
            id=int(data["id"]),
            mod_id=int(data["mod_id"]),
            version=str(data.get("version") or ""),
            filename=str(data.get("filename") or ""),
            filesize=int(data.get("filesize") or 0),
            date_added=int(data.get("date_added") or 0),
            md5=str(data.get("md5") or ""),
            download=ModfileLocator.from_dict(download) if download else None,
        )


@dataclass
class ModProfile:
    """Public profile of a mod."""

    id: int
    name: str = ""
    name_id: str = ""
    summary: str = ""
    date_updated: int = 0
    logo: LogoLocator | None = None
    gallery_images: list[GalleryImageLocator] = field(default_factory=list)
    current_build: Modfile | None = None

    def get_gallery_image(self, file_name: str) -> GalleryImageLocator | None:
        for image in self.gallery_images:
            if image.file_name == file_name:
                return image
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "name_id": self.name_id,
            "summary": self.summary,
            "date_updated": self.date_updated,
            "logo": self.logo.to_dict() if self.logo else None,
            "gallery_images": [image.to_dict() for image in self.gallery_images],
            "current_build": self.current_build.to_dict() if self.current_build else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "mod profile")
        logo = data.get("logo")
        build = data.get("current_build")
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            name_id=str(data.get("name_id") or ""),
            summary=str(data.get("summary") or ""),
            date_updated=int(data.get("date_updated") or 0),
            logo=LogoLocator.from_dict(logo) if logo else None,
            gallery_images=[GalleryImageLocator.from_dict(i) for i in data.get("gallery_images") or []],
            current_build=Modfile.from_dict(build) if build else None,
        )


@dataclass
class TeamMember:
    """Member of a mod's team."""

    id: int
    user_id: int
    username: str = ""
    level: int = 0
    position: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "username": self.username,
            "level": self.level,
            "position": self.position,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "team member")
        return cls(
            id=int(data["id"]),
            user_id=int(data["user_id"]),
            username=str(data.get("username") or ""),
            level=int(data.get("level") or 0),
            position=str(data.get("position") or ""),
        )


@dataclass
class UserProfile:
    """Public profile of a user."""

    id: int
    username: str = ""
    name_id: str = ""
    date_online: int = 0
    profile_url: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "name_id": self.name_id,
            "date_online": self.date_online,
            "profile_url": self.profile_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "user profile")
        return cls(
            id=int(data["id"]),
            username=str(data.get("username") or ""),
            name_id=str(data.get("name_id") or ""),
            date_online=int(data.get("date_online") or 0),
            profile_url=str(data.get("profile_url") or ""),
        )


@dataclass
class GameProfile:
    """Profile of the game the cache belongs to."""

    id: int
    name: str = ""
    name_id: str = ""
    summary: str = ""
    api_access_options: int = 0
    date_updated: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "name_id": self.name_id,
            "summary": self.summary,
            "api_access_options": self.api_access_options,
            "date_updated": self.date_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "game profile")
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            name_id=str(data.get("name_id") or ""),
            summary=str(data.get("summary") or ""),
            api_access_options=int(data.get("api_access_options") or 0),
            date_updated=int(data.get("date_updated") or 0),
        )


@dataclass
class AuthenticatedUser:
    """Singleton record holding the signed-in user's state.

    The user's profile is not part of this record; only its id is kept
    here and the profile lives with the other user profiles.
    """

    oauth_token: str | None = None
    user_id: int = 0
    mod_ids: list[int] = field(default_factory=list)
    subscribed_mod_ids: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "oauth_token": self.oauth_token,
            "user_id": self.user_id,
            "mod_ids": list(self.mod_ids),
            "subscribed_mod_ids": list(self.subscribed_mod_ids),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        data = _check_dict(data, "authenticated user")
        token = data.get("oauth_token")
        return cls(
            oauth_token=str(token) if token is not None else None,
            user_id=int(data.get("user_id") or 0),
            mod_ids=_int_list(data.get("mod_ids")),
            subscribed_mod_ids=_int_list(data.get("subscribed_mod_ids")),
        )
