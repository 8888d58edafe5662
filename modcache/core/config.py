"""Runtime configuration for the cache and download layers.

A :class:`CacheConfig` is owned by each :class:`~modcache.cache.ResourceCache`
instance, so several independent cache roots can live side by side (tests
create one per ``tmp_path``).

Examples
--------
>>> config = CacheConfig(cache_dir="~/.cache/mygame", game_id=42, api_key="...")
>>> config.save("modcache.json")
>>> CacheConfig.load("modcache.json").game_id
42
"""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from typing_extensions import Self

from .exceptions import ConfigurationError

__all__ = ["CacheConfig", "default_cache_dir", "default_image_cache_dir"]

NAMESPACE = "modcache"
DEFAULT_API_URL = "https://api.mod.io/v1"


def default_cache_dir() -> Path:
    """Durable cache root, following the XDG Base Directory specification."""
    xdg_cache = os.environ.get("XDG_CACHE_HOME") or (Path.home() / ".cache")
    return Path(xdg_cache) / NAMESPACE


def default_image_cache_dir() -> Path:
    """Volatile image cache root under the system temp directory."""
    return Path(tempfile.gettempdir()) / NAMESPACE


@dataclass
class CacheConfig:
    """Configuration shared by the resource cache and the downloader.

    Attributes
    ----------
    cache_dir : Path
        Durable cache root (profiles, binaries, logos, users, auth state).
    image_cache_dir : Path
        Purgeable root for gallery images.
    api_url : str
        Base URL of the remote API, without trailing slash.
    game_id : int
        Game the remote requests are scoped to.
    api_key : str
        Key sent with every remote request.
    request_timeout : float
        Seconds before a single HTTP request is abandoned.
    chunk_size : int
        Bytes per chunk when streaming binaries to disk.
    max_workers : int
        Threads used by the HTTP transport.
    lock_timeout : float
        Seconds to wait for another download of the same binary to commit.
    show_progress : bool
        Draw a tqdm progress bar while streaming binaries.
    """

    cache_dir: Path = field(default_factory=default_cache_dir)
    image_cache_dir: Path = field(default_factory=default_image_cache_dir)
    api_url: str = DEFAULT_API_URL
    game_id: int = 0
    api_key: str = ""
    request_timeout: float = 30
    chunk_size: int = 8192
    max_workers: int = 4
    lock_timeout: float = 300
    show_progress: bool = False

    def __post_init__(self):
        self.cache_dir = Path(self.cache_dir).expanduser()
        self.image_cache_dir = Path(self.image_cache_dir).expanduser()
        self.api_url = self.api_url.rstrip("/")

    def validate(self) -> Self:
        """Check value ranges, raising :class:`ConfigurationError` on the first problem."""
        if self.request_timeout <= 0:
            raise ConfigurationError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.chunk_size <= 0:
            raise ConfigurationError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_workers <= 0:
            raise ConfigurationError(f"max_workers must be positive, got {self.max_workers}")
        if self.lock_timeout <= 0:
            raise ConfigurationError(f"lock_timeout must be positive, got {self.lock_timeout}")
        if self.game_id < 0:
            raise ConfigurationError(f"game_id cannot be negative, got {self.game_id}")
        return self

    @classmethod
    def from_env(cls, **overrides: Any) -> Self:
        """Build a config from ``MODCACHE_*`` environment variables.

        Keyword overrides win over the environment.
        """
        env = os.environ
        values: dict[str, Any] = {}
        if env.get("MODCACHE_CACHE_DIR"):
            values["cache_dir"] = env["MODCACHE_CACHE_DIR"]
        if env.get("MODCACHE_IMAGE_CACHE_DIR"):
            values["image_cache_dir"] = env["MODCACHE_IMAGE_CACHE_DIR"]
        if env.get("MODCACHE_API_URL"):
            values["api_url"] = env["MODCACHE_API_URL"]
        if env.get("MODCACHE_API_KEY"):
            values["api_key"] = env["MODCACHE_API_KEY"]
        try:
            if env.get("MODCACHE_GAME_ID"):
                values["game_id"] = int(env["MODCACHE_GAME_ID"])
            if env.get("MODCACHE_REQUEST_TIMEOUT"):
                values["request_timeout"] = float(env["MODCACHE_REQUEST_TIMEOUT"])
        except ValueError as e:
            raise ConfigurationError(f"invalid numeric value in environment: {e}") from e

        values.update(overrides)
        return cls(**values).validate()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cache_dir"] = str(self.cache_dir)
        data["image_cache_dir"] = str(self.image_cache_dir)
        return data

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str | Path) -> Self:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found at {path}")

        with open(path, encoding="utf-8") as f:
            config_dict = json.load(f)

        # Ignore keys written by newer versions
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in config_dict.items() if k in known}).validate()
