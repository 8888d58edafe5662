"""Remote collaborator port and its HTTP adapter.

The orchestrator only talks to a :class:`RemoteFetcher`. Every call
returns a :class:`concurrent.futures.Future` immediately; the transport
decides which thread resolves it. :class:`HTTPRemoteFetcher` is the
production implementation, built on a shared ``requests.Session`` and a
small thread pool. It makes a single attempt per request.
"""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import requests
from requests.adapters import HTTPAdapter

from modcache.core.config import CacheConfig
from modcache.core.exceptions import TransportError
from modcache.core.types import Modfile
from modcache.utils import get_logger

logger = get_logger("modcache.download")

__all__ = [
    "ByteStream",
    "BytesStream",
    "MetadataRequest",
    "RemoteFetcher",
    "ResponseStream",
    "HTTPRemoteFetcher",
]


@dataclass(frozen=True)
class MetadataRequest:
    """One metadata GET, relative to the API root.

    ``endpoint`` is joined under ``/games/{game_id}/`` unless
    ``game_scoped`` is False (e.g. ``me/subscribed``).
    """

    endpoint: str
    params: dict[str, Any] = field(default_factory=dict, hash=False)
    game_scoped: bool = True


@runtime_checkable
class ByteStream(Protocol):
    """Chunked response body."""

    content_length: int | None

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield body chunks. Raises :class:`TransportError` if the stream breaks."""
        ...

    def close(self) -> None: ...


class RemoteFetcher(Protocol):
    """Port for everything the downloader needs from the remote API."""

    def fetch_metadata(self, request: MetadataRequest) -> Future[Any]:
        """Resolve to the decoded JSON record for ``request``."""
        ...

    def fetch_binary(self, url: str) -> Future[ByteStream]:
        """Resolve to an open byte stream of ``url`` once headers arrived."""
        ...

    def resolve_binary_locator(self, mod_id: int, modfile_id: int) -> Future[Modfile]:
        """Resolve to the modfile record, including a fresh signed download URL."""
        ...


class BytesStream:
    """In-memory :class:`ByteStream`."""

    def __init__(self, data: bytes):
        self._data = bytes(data)
        self.content_length = len(self._data)
        self.closed = False

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        for start in range(0, len(self._data), chunk_size):
            yield self._data[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


class ResponseStream:
    """:class:`ByteStream` over a streaming ``requests.Response``."""

    def __init__(self, response: requests.Response):
        self.response = response
        length = response.headers.get("Content-Length")
        self.content_length = int(length) if length and length.isdigit() else None

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        try:
            for chunk in self.response.iter_content(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        except requests.RequestException as e:
            raise TransportError(f"stream interrupted: {e}", url=self.response.url) from e

    def close(self) -> None:
        self.response.close()


class HTTPRemoteFetcher:
    """mod.io REST adapter implementing :class:`RemoteFetcher`.

    Parameters
    ----------
    config : CacheConfig
        Supplies ``api_url``, ``game_id``, ``api_key``, ``request_timeout``
        and ``max_workers``.
    session : requests.Session, optional
        Session to issue requests on. One with a pooled adapter is created
        when omitted.
    executor : ThreadPoolExecutor, optional
        Pool that resolves the returned futures. Owned (and shut down by
        :meth:`close`) only when created here.
    oauth_token : str, optional
        Bearer token for user-scoped endpoints.

    Examples
    --------
    >>> with HTTPRemoteFetcher(CacheConfig.from_env()) as remote:
    ...     modfile = remote.resolve_binary_locator(7, 42).result()
    """

    def __init__(
        self,
        config: CacheConfig,
        *,
        session: requests.Session | None = None,
        executor: ThreadPoolExecutor | None = None,
        oauth_token: str | None = None,
    ):
        self.config = config
        self.oauth_token = oauth_token
        self.session = session or self._create_session(config.max_workers)
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="modcache-http"
        )

    @staticmethod
    def _create_session(pool_size: int) -> requests.Session:
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def __enter__(self) -> HTTPRemoteFetcher:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=True)
        self.session.close()

    # ---------[ RemoteFetcher ]---------

    def fetch_metadata(self, request: MetadataRequest) -> Future[Any]:
        return self._executor.submit(self._get_json, request)

    def fetch_binary(self, url: str) -> Future[ByteStream]:
        return self._executor.submit(self._open_stream, url)

    def resolve_binary_locator(self, mod_id: int, modfile_id: int) -> Future[Modfile]:
        return self._executor.submit(self._get_modfile, mod_id, modfile_id)

    # ---------[ WORKERS ]---------

    def endpoint_url(self, request: MetadataRequest) -> str:
        endpoint = request.endpoint.lstrip("/")
        if request.game_scoped:
            return f"{self.config.api_url}/games/{self.config.game_id}/{endpoint}"
        return f"{self.config.api_url}/{endpoint}"

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.oauth_token:
            headers["Authorization"] = f"Bearer {self.oauth_token}"
        return headers

    def _get_json(self, request: MetadataRequest) -> Any:
        url = self.endpoint_url(request)
        params = dict(request.params)
        if self.config.api_key:
            params.setdefault("api_key", self.config.api_key)

        logger.debug(f"GET {url}")
        try:
            response = self.session.get(
                url, params=params, headers=self._headers(), timeout=self.config.request_timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"request failed: {e}", url=url) from e

        self._raise_for_status(response, url)
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(
                f"response is not valid JSON: {e}", status_code=response.status_code, url=url
            ) from e

    def _open_stream(self, url: str) -> ByteStream:
        logger.info(f"Downloading: {url}")
        try:
            response = self.session.get(url, stream=True, timeout=self.config.request_timeout)
        except requests.RequestException as e:
            raise TransportError(f"request failed: {e}", url=url) from e

        try:
            self._raise_for_status(response, url)
        except TransportError:
            response.close()
            raise
        return ResponseStream(response)

    def _get_modfile(self, mod_id: int, modfile_id: int) -> Modfile:
        data = self._get_json(MetadataRequest(f"mods/{mod_id}/files/{modfile_id}"))
        try:
            return Modfile.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise TransportError(f"unexpected modfile payload: {e!r}") from e

    @staticmethod
    def _raise_for_status(response: requests.Response, url: str) -> None:
        if response.status_code < 400:
            return
        message = response.reason or "request failed"
        try:
            payload = response.json()
        except ValueError:
            payload = None
        # mod.io error body: {"error": {"code": ..., "message": ...}}
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            message = payload["error"].get("message") or message
        raise TransportError(message, status_code=response.status_code, url=url)
