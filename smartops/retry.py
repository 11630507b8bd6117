from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Protocol, TypeVar

import httpx

from .models import utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryTarget = Callable[[str], Awaitable[Any]]


async def with_retries(
    operation: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    delay: float = 2.0,
    retry_on: tuple[type[BaseException], ...] = (httpx.HTTPError,),
    description: str = "operation",
) -> T:
    """Await ``operation`` up to ``attempts`` times with a fixed pause between tries."""
    attempts = max(1, int(attempts))
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt == attempts:
                raise
            logger.warning(
                "%s failed (attempt %s/%s): %s. Retrying in %.1fs",
                description,
                attempt,
                attempts,
                exc,
                delay,
            )
            if delay > 0:
                await asyncio.sleep(delay)
    raise AssertionError("unreachable")


@dataclass(frozen=True, slots=True)
class RetryJob:
    code: str
    not_before: datetime
    source: str = "retry"


class DelayedJobQueue(Protocol):
    def enqueue(self, job: RetryJob) -> None: ...


class RetryScheduler:
    """One-shot delayed re-runs of a node after a transient failure.

    When a durable queue is supplied the job is handed to it; otherwise the
    retry lives in an in-process timer and is lost on restart.
    """

    def __init__(self, target: RetryTarget | None = None, queue: DelayedJobQueue | None = None) -> None:
        self._target = target
        self._queue = queue
        self._timers: dict[int, tuple[str, asyncio.TimerHandle]] = {}
        self._tasks: set[asyncio.Task[None]] = set()
        self._next_id = 0

    def bind(self, target: RetryTarget) -> None:
        self._target = target

    def schedule_retry(self, code: str, delay: float) -> bool:
        if not isinstance(delay, (int, float)) or not math.isfinite(delay) or delay <= 0:
            logger.warning("Ignoring retry for automation %s with invalid delay %r", code, delay)
            return False

        minutes = max(1, round(delay / 60))
        logger.warning("Scheduling retry for automation %s in %s minute(s)", code, minutes)

        if self._queue is not None:
            self._queue.enqueue(RetryJob(code=code, not_before=utcnow() + timedelta(seconds=delay)))
            return True

        loop = asyncio.get_running_loop()
        timer_id = self._next_id
        self._next_id += 1
        handle = loop.call_later(delay, self._fire, timer_id, code)
        self._timers[timer_id] = (code, handle)
        return True

    def pending(self) -> list[str]:
        return [code for code, _ in self._timers.values()]

    def cancel_all(self) -> None:
        for _, handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def _fire(self, timer_id: int, code: str) -> None:
        self._timers.pop(timer_id, None)
        task = asyncio.get_running_loop().create_task(self._run(code))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, code: str) -> None:
        if self._target is None:
            logger.error("Retry for automation %s dropped: no target bound", code)
            return
        try:
            await self._target(code)
        except Exception:
            logger.exception("Retry for automation %s failed", code)
