from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from .errors import NotConfigured

logger = logging.getLogger(__name__)

DROPBOX_TOKEN_URL = "https://api.dropbox.com/oauth2/token"
DROPBOX_API_URL = "https://api.dropboxapi.com/2"
DEFAULT_TOKEN_TTL_SECONDS = 3.5 * 60 * 60


@dataclass(frozen=True, slots=True)
class DropboxEntry:
    tag: str
    id: str
    name: str
    path_display: str
    size: int = 0

    @property
    def is_file(self) -> bool:
        return self.tag == "file"

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> DropboxEntry:
        return cls(
            tag=str(raw.get(".tag", "")),
            id=str(raw.get("id", "")),
            name=str(raw.get("name", "")),
            path_display=str(raw.get("path_display") or ""),
            size=int(raw.get("size") or 0),
        )


@dataclass(frozen=True, slots=True)
class ListFolderPage:
    entries: list[DropboxEntry]
    cursor: str
    has_more: bool


class DropboxClient:
    """Minimal Dropbox API v2 client over a shared httpx client."""

    def __init__(self, http: httpx.AsyncClient, access_token: str, api_url: str = DROPBOX_API_URL) -> None:
        self._http = http
        self._access_token = access_token
        self._api_url = api_url.rstrip("/")

    async def list_folder(self, path: str, recursive: bool = True) -> ListFolderPage:
        # Dropbox addresses the root folder as "".
        normalized = "" if path in ("", "/") else path
        data = await self._rpc("files/list_folder", {"path": normalized, "recursive": recursive})
        return self._page(data)

    async def list_folder_continue(self, cursor: str) -> ListFolderPage:
        data = await self._rpc("files/list_folder/continue", {"cursor": cursor})
        return self._page(data)

    async def get_temporary_link(self, path: str) -> str:
        data = await self._rpc("files/get_temporary_link", {"path": path})
        link = data.get("link")
        if not isinstance(link, str) or not link:
            raise httpx.DecodingError(f"Dropbox returned no temporary link for {path}")
        return link

    async def download(self, path: str) -> bytes:
        link = await self.get_temporary_link(path)
        response = await self._http.get(link)
        response.raise_for_status()
        return response.content

    async def _rpc(self, endpoint: str, body: dict[str, Any]) -> dict[str, Any]:
        response = await self._http.post(
            f"{self._api_url}/{endpoint}",
            headers={"Authorization": f"Bearer {self._access_token}"},
            json=body,
        )
        response.raise_for_status()
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            raise httpx.DecodingError(f"Invalid JSON from Dropbox {endpoint}") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _page(data: dict[str, Any]) -> ListFolderPage:
        raw_entries = data.get("entries")
        entries = [
            DropboxEntry.from_api(item)
            for item in (raw_entries if isinstance(raw_entries, list) else [])
            if isinstance(item, dict)
        ]
        return ListFolderPage(
            entries=entries,
            cursor=str(data.get("cursor") or ""),
            has_more=bool(data.get("has_more")),
        )


class DropboxTokenProvider:
    """Caches a short-lived access token minted from a long-lived refresh token."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        app_key: str,
        app_secret: str,
        refresh_token: str,
        token_url: str = DROPBOX_TOKEN_URL,
        api_url: str = DROPBOX_API_URL,
        ttl_seconds: float = DEFAULT_TOKEN_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._http = http
        self._app_key = app_key
        self._app_secret = app_secret
        self._refresh_token = refresh_token
        self._token_url = token_url
        self._api_url = api_url
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached_token: str | None = None
        self._cached_at = 0.0

    async def get_client(self) -> DropboxClient:
        token = await self.get_token()
        return DropboxClient(self._http, token, api_url=self._api_url)

    async def get_token(self) -> str:
        if self._cached_token and self._clock() - self._cached_at < self.ttl_seconds:
            return self._cached_token

        if not (self._app_key and self._app_secret and self._refresh_token):
            raise NotConfigured("Dropbox credentials missing")

        response = await self._http.post(
            self._token_url,
            data={"grant_type": "refresh_token", "refresh_token": self._refresh_token},
            auth=(self._app_key, self._app_secret),
        )
        response.raise_for_status()
        try:
            token = response.json().get("access_token")
        except (json.JSONDecodeError, AttributeError):
            token = None
        if not isinstance(token, str) or not token:
            raise httpx.DecodingError("Unable to refresh Dropbox access token")

        logger.info("Refreshed Dropbox access token")
        self._cached_token = token
        self._cached_at = self._clock()
        return token

    def invalidate(self) -> None:
        self._cached_token = None
        self._cached_at = 0.0
