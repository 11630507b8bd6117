import asyncio
import math
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from smartops.errors import RemoteUnavailable
from smartops.retry import RetryJob, RetryScheduler, with_retries


@pytest.mark.asyncio
async def test_with_retries_recovers_from_transient_errors():
    operation = AsyncMock(side_effect=[httpx.ConnectError("down"), httpx.ReadTimeout("slow"), "page"])
    assert await with_retries(operation, attempts=3, delay=0) == "page"
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_with_retries_reraises_after_last_attempt():
    operation = AsyncMock(side_effect=httpx.ConnectError("down"))
    with pytest.raises(httpx.ConnectError):
        await with_retries(operation, attempts=3, delay=0)
    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_with_retries_does_not_retry_other_errors():
    operation = AsyncMock(side_effect=KeyError("bug"))
    with pytest.raises(KeyError):
        await with_retries(operation, attempts=3, delay=0)
    assert operation.await_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("delay", [0, -5, math.nan, math.inf, -math.inf])
async def test_invalid_delays_are_rejected(delay):
    target = AsyncMock()
    scheduler = RetryScheduler(target)
    assert scheduler.schedule_retry("MDF", delay) is False
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_timer_fires_target_once():
    target = AsyncMock()
    scheduler = RetryScheduler(target)

    assert scheduler.schedule_retry("MDF", 0.01) is True
    assert scheduler.pending() == ["MDF"]

    await asyncio.sleep(0.1)

    target.assert_awaited_once_with("MDF")
    assert scheduler.pending() == []


@pytest.mark.asyncio
async def test_retry_failures_are_logged_not_raised(caplog):
    target = AsyncMock(side_effect=RemoteUnavailable("still down"))
    scheduler = RetryScheduler(target)

    scheduler.schedule_retry("MDF", 0.01)
    await asyncio.sleep(0.1)

    target.assert_awaited_once_with("MDF")
    assert "Retry for automation MDF failed" in caplog.text


@pytest.mark.asyncio
async def test_cancel_all_disarms_pending_timers():
    target = AsyncMock()
    scheduler = RetryScheduler(target)

    scheduler.schedule_retry("MDF", 0.05)
    scheduler.cancel_all()
    await asyncio.sleep(0.1)

    target.assert_not_awaited()


@pytest.mark.asyncio
async def test_bind_sets_target_after_construction():
    target = AsyncMock()
    scheduler = RetryScheduler()
    scheduler.bind(target)

    scheduler.schedule_retry("ENS", 0.01)
    await asyncio.sleep(0.1)

    target.assert_awaited_once_with("ENS")


def test_durable_queue_receives_job_instead_of_timer():
    queue = MagicMock()
    scheduler = RetryScheduler(AsyncMock(), queue=queue)

    assert scheduler.schedule_retry("MDF", 1800) is True

    job = queue.enqueue.call_args.args[0]
    assert isinstance(job, RetryJob)
    assert job.code == "MDF"
    assert job.source == "retry"
    assert scheduler.pending() == []
