from __future__ import annotations

import json
from typing import Any

from ..errors import RemoteUnavailable
from ..models import StepOutcome, SyncItemOutcome
from ..retry import RetryScheduler
from ..sync import SourceSync
from .base import NodeBlueprint

DEFAULT_RETRY_DELAY_SECONDS = 30 * 60


class MediaFetcher:
    """Runs the Dropbox ingestion for every source folder of a node."""

    def __init__(
        self,
        sync: SourceSync,
        retries: RetryScheduler,
        retry_delay: float = DEFAULT_RETRY_DELAY_SECONDS,
    ) -> None:
        self._sync = sync
        self._retries = retries
        self._retry_delay = retry_delay

    async def __call__(self, blueprint: NodeBlueprint, payload: Any = None) -> StepOutcome:
        paths = blueprint.source_paths or ("/",)
        total_new = 0
        downloads: list[dict[str, Any]] = []
        items: list[SyncItemOutcome] = []

        for path in paths:
            try:
                result = await self._sync.sync(path)
            except RemoteUnavailable as exc:
                self._retries.schedule_retry(blueprint.code, self._retry_delay)
                minutes = max(1, round(self._retry_delay / 60))
                raise RemoteUnavailable(
                    f"Dropbox is unreachable. Monitoring connection and retrying in {minutes} minutes.",
                    details={"cause": exc.message, "path": path},
                ) from exc

            total_new += result.new_item_count
            items.extend(result.created_items)
            downloads.append(
                {
                    "path": path,
                    "downloaded": result.downloaded,
                    "files": [item.model_dump(exclude_none=True) for item in result.created_items],
                }
            )

        if total_new > 0:
            summary = f"{total_new} new video(s) ingested from Dropbox."
        else:
            summary = "No new videos detected."

        if items:
            logs = "\n".join(json.dumps(item.model_dump(exclude_none=True)) for item in items)
        else:
            logs = "Checked Dropbox folders - no new media found."

        return StepOutcome(
            summary=summary,
            result={"total_new": total_new, "downloads": downloads},
            logs=logs,
        )
