from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path, PurePosixPath
from typing import Iterable

import httpx

from .dropbox import DropboxClient, DropboxEntry, DropboxTokenProvider
from .errors import PartialItemFailure, RemoteUnavailable
from .models import AssetStatus, SourceAsset, SyncItemOutcome, SyncResult
from .notifications import BackgroundDispatcher, LoggingSideChannels, SideChannels
from .retry import with_retries
from .store import SQLiteStore

logger = logging.getLogger(__name__)

VIDEO_EXTENSIONS = frozenset({".mp4", ".mov", ".m4v", ".avi", ".mkv", ".webm"})
DEFAULT_GROUP = "general"
DEFAULT_PERIOD = "unassigned"

_UNSAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_-]")


def sanitize_segment(segment: str | None, fallback: str) -> str:
    raw = (segment or "").strip()
    if not raw:
        return fallback
    return _UNSAFE_SEGMENT.sub("-", raw)


def parse_folder_path(file_path: str) -> tuple[str, str]:
    """Derive (group, period) from ``/<root>/<group>/<period>/<file>``."""
    segments = [part for part in PurePosixPath(file_path).parent.parts if part != "/"]
    group = segments[1] if len(segments) > 1 else None
    period = segments[2] if len(segments) > 2 else None
    return sanitize_segment(group, DEFAULT_GROUP), sanitize_segment(period, DEFAULT_PERIOD)


def _write_file(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


class SourceSync:
    """Incremental Dropbox ingestion into the local media library."""

    def __init__(
        self,
        tokens: DropboxTokenProvider,
        store: SQLiteStore,
        media_root: str | Path,
        *,
        side_channels: SideChannels | None = None,
        dispatcher: BackgroundDispatcher | None = None,
        attempts: int = 3,
        attempt_delay: float = 2.0,
        video_extensions: Iterable[str] = VIDEO_EXTENSIONS,
    ) -> None:
        self._tokens = tokens
        self._store = store
        self.media_root = Path(media_root)
        self._side_channels = side_channels or LoggingSideChannels()
        self._dispatcher = dispatcher or BackgroundDispatcher()
        self._attempts = attempts
        self._attempt_delay = attempt_delay
        self._video_extensions = frozenset(ext.lower() for ext in video_extensions)

    def is_video(self, file_name: str) -> bool:
        return PurePosixPath(file_name).suffix.lower() in self._video_extensions

    async def sync(self, remote_path: str) -> SyncResult:
        try:
            client = await self._tokens.get_client()
            new_assets, resumed = await self._discover(client, remote_path)
        except httpx.HTTPError as exc:
            self._drop_rejected_token(exc)
            raise RemoteUnavailable(
                f"Dropbox listing failed for {remote_path}",
                details={"cause": str(exc), "path": remote_path},
            ) from exc

        outcomes: list[SyncItemOutcome] = []
        for asset in new_assets:
            outcomes.append(await self._download(client, asset, retried=False))
        for asset in resumed:
            outcomes.append(await self._download(client, asset, retried=True))

        result = SyncResult(new_item_count=len(new_assets), created_items=outcomes)
        logger.info(
            "Dropbox sync of %s: %s new, %s downloaded, %s failed, %s tracked",
            remote_path,
            result.new_item_count,
            result.downloaded,
            len(outcomes) - result.downloaded,
            self._store.count_assets(),
        )
        self._announce(result)
        return result

    async def _discover(
        self, client: DropboxClient, remote_path: str
    ) -> tuple[list[SourceAsset], list[SourceAsset]]:
        new_assets: list[SourceAsset] = []
        resumed: list[SourceAsset] = []
        seen: set[str] = set()
        cursor: str | None = None
        has_more = True

        while has_more:
            if cursor is None:
                page = await with_retries(
                    lambda: client.list_folder(remote_path, recursive=True),
                    attempts=self._attempts,
                    delay=self._attempt_delay,
                    description=f"Dropbox list_folder {remote_path}",
                )
            else:
                next_cursor = cursor
                page = await with_retries(
                    lambda: client.list_folder_continue(next_cursor),
                    attempts=self._attempts,
                    delay=self._attempt_delay,
                    description="Dropbox list_folder/continue",
                )
            cursor = page.cursor
            has_more = page.has_more and bool(cursor)

            for entry in page.entries:
                if not entry.is_file or not self.is_video(entry.name):
                    continue
                # Listings may repeat an entry across pages.
                if entry.id in seen:
                    continue
                seen.add(entry.id)
                existing = self._store.get_asset(entry.id)
                if existing is not None:
                    if existing.status is not AssetStatus.DOWNLOADED:
                        resumed.append(existing)
                    continue
                asset = self._placeholder(entry)
                if self._store.create_asset(asset):
                    new_assets.append(asset)

        return new_assets, resumed

    def _placeholder(self, entry: DropboxEntry) -> SourceAsset:
        return SourceAsset(
            external_id=entry.id,
            file_name=entry.name,
            folder_path=entry.path_display,
            size=entry.size,
            status=AssetStatus.PENDING,
        )

    async def _download(self, client: DropboxClient, asset: SourceAsset, *, retried: bool) -> SyncItemOutcome:
        group, period = parse_folder_path(asset.folder_path)
        try:
            local_path = await self._fetch_to_disk(client, asset, group, period)
        except PartialItemFailure as failure:
            logger.error("Failed to download Dropbox media asset %s: %s", asset.external_id, failure, exc_info=failure)
            self._store.upsert_asset(
                asset.model_copy(update={"group": group, "period": period, "status": AssetStatus.FAILED})
            )
            return SyncItemOutcome(
                external_id=asset.external_id,
                file_name=asset.file_name,
                group=group,
                period=period,
                retried=retried,
                error=failure.message,
            )

        self._store.upsert_asset(
            asset.model_copy(
                update={
                    "group": group,
                    "period": period,
                    "local_path": str(local_path),
                    "status": AssetStatus.DOWNLOADED,
                }
            )
        )
        return SyncItemOutcome(
            external_id=asset.external_id,
            file_name=asset.file_name,
            local_path=str(local_path),
            group=group,
            period=period,
            retried=retried,
        )

    async def _fetch_to_disk(self, client: DropboxClient, asset: SourceAsset, group: str, period: str) -> Path:
        try:
            content = await with_retries(
                lambda: client.download(asset.external_id),
                attempts=self._attempts,
                delay=self._attempt_delay,
                description=f"Dropbox download {asset.external_id}",
            )
            target_dir = self.media_root / group / period
            local_path = target_dir / PurePosixPath(asset.file_name).name
            await asyncio.to_thread(_write_file, local_path, content)
        except (httpx.HTTPError, OSError) as exc:
            self._drop_rejected_token(exc)
            raise PartialItemFailure(
                str(exc) or type(exc).__name__,
                details={"external_id": asset.external_id, "file_name": asset.file_name},
            ) from exc
        return local_path

    def _drop_rejected_token(self, exc: Exception) -> None:
        if isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code == 401:
            logger.warning("Dropbox rejected the cached access token; refreshing on next call")
            self._tokens.invalidate()

    def _announce(self, result: SyncResult) -> None:
        if result.new_item_count > 0:
            self._dispatcher.fire(
                self._side_channels.notify(
                    "dropbox:new-file",
                    "New Dropbox Videos Ready",
                    f"{result.new_item_count} new video(s) detected in Dropbox",
                ),
                "Dropbox new-file notification",
            )
        for item in result.created_items:
            if item.error is None:
                self._dispatcher.fire(
                    self._side_channels.caption_for(item.external_id),
                    f"Caption generation for {item.external_id}",
                )
