"""HttpObjectStore — object store over a homeserver's HTTP interface."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from pubfs.fs.exceptions import AccessDeniedError, StorageError
from pubfs.fs.utils import parse_key

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

DEFAULT_URL_TEMPLATE = "https://{owner}.pubky.app"
DEFAULT_TIMEOUT = 30.0

_DENIED = frozenset({401, 403})


class HttpObjectStore:
    """Maps keys to URLs and object operations to HTTP verbs.

    ``<scheme>://<owner>/<path>`` resolves to ``url_template`` formatted
    with the owner, followed by the path. GET reads, PUT writes, DELETE
    removes. Listing is a GET on the directory URL answering one full key
    per line.

    A client passed in is shared and left open on :meth:`close`.
    """

    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
    ) -> None:
        self.url_template = url_template.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        self._headers = dict(headers or {})
        self._cookies = dict(cookies or {})

    def resolve_url(self, key: str) -> str:
        """Translate a full key into the HTTP URL serving it."""
        parsed = parse_key(key)
        return self.url_template.format(owner=parsed.owner_id) + parsed.path

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=self._headers,
                cookies=self._cookies,
            )
        return self._client

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        self._get_client()

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        key: str,
        *,
        content: bytes | None = None,
        params: dict[str, str] | None = None,
    ) -> httpx.Response:
        url = self.resolve_url(key)
        try:
            response = await self._get_client().request(method, url, content=content, params=params)
        except httpx.TimeoutException as e:
            raise StorageError(f"{method} {url} timed out") from e
        except httpx.HTTPError as e:
            raise StorageError(f"{method} {url} failed: {e}") from e

        if response.status_code in _DENIED:
            raise AccessDeniedError(f"{method} {url} denied ({response.status_code})")
        return response

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def get(self, key: str) -> bytes | None:
        response = await self._request("GET", key)
        if response.status_code == 404:
            return None
        if not response.is_success:
            raise StorageError(f"GET {key} returned {response.status_code}")
        return response.content

    async def put(self, key: str, data: bytes) -> bool:
        response = await self._request("PUT", key, content=bytes(data))
        if not response.is_success:
            logger.warning("PUT %s returned %d", key, response.status_code)
            return False
        return True

    async def delete(self, key: str) -> bool:
        response = await self._request("DELETE", key)
        if response.status_code == 404:
            return False
        if not response.is_success:
            logger.warning("DELETE %s returned %d", key, response.status_code)
            return False
        return True

    async def list(
        self,
        prefix: str,
        cursor: str | None = None,
        reverse: bool = False,
        limit: int | None = None,
    ) -> list[str]:
        params: dict[str, str] = {}
        if cursor is not None:
            params["cursor"] = cursor
        if reverse:
            params["reverse"] = "true"
        if limit is not None:
            params["limit"] = str(limit)

        response = await self._request("GET", prefix, params=params)
        if response.status_code == 404:
            return []
        if not response.is_success:
            raise StorageError(f"LIST {prefix} returned {response.status_code}")
        return [line.strip() for line in response.text.splitlines() if line.strip()]
