from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Protocol

logger = logging.getLogger(__name__)


class SideChannels(Protocol):
    async def notify(self, event: str, title: str, body: str) -> None: ...

    async def caption_for(self, asset_id: str) -> None: ...


class LoggingSideChannels:
    """Default side channels when no push or caption service is wired in."""

    async def notify(self, event: str, title: str, body: str) -> None:
        logger.info("Notification %s: %s - %s", event, title, body)

    async def caption_for(self, asset_id: str) -> None:
        logger.info("Caption generation requested for asset %s", asset_id)


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def fire(self, coro: Coroutine[Any, Any, Any], description: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finish(done, description))
        return task

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _finish(self, task: asyncio.Task[Any], description: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("%s failed: %s", description, exc, exc_info=exc)
