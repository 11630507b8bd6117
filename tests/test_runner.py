import asyncio

import pytest

from smartops.errors import AutomationFailure, NotFound, RemoteRejected, Uncategorized
from smartops.models import AutomationStatus, ExecutionStatus, StepOutcome
from smartops.nodes import NodeKind
from smartops.runner import ExecutionRunner


def _runner(registry, store, handler) -> ExecutionRunner:
    for blueprint in registry:
        store.ensure_automation(blueprint.code)
    return ExecutionRunner(registry, store, {NodeKind.WEBHOOK: handler})


@pytest.mark.asyncio
async def test_success_finalizes_execution_and_automation(chain_registry, store, scripted_handler):
    handler = scripted_handler()
    runner = _runner(chain_registry, store, handler)

    result = await runner.execute("a", payload={"x": 1}, source="manual")

    assert handler.calls == [("A", {"x": 1})]
    assert result.ok
    assert result.summary == "A done"
    assert result.execution.status is ExecutionStatus.SUCCESS
    assert result.execution.result == {"code": "A"}
    assert result.execution.logs == "ran A\nTriggered by: manual."
    assert result.execution.finished_at is not None

    record = store.get_automation("A")
    assert record.status == "operational"
    assert record.metadata["summary"] == "A done"
    assert record.last_run_at is not None


@pytest.mark.asyncio
async def test_typed_failure_is_recorded_and_reraised(chain_registry, store, scripted_handler):
    rejected = RemoteRejected.from_response(503, {"message": "busy"})
    runner = _runner(chain_registry, store, scripted_handler({"A": rejected}))

    with pytest.raises(RemoteRejected) as excinfo:
        await runner.execute("A", source="cascade:X")

    assert excinfo.value is rejected
    execution = excinfo.value.execution
    assert execution.status is ExecutionStatus.ERROR
    assert execution.result == {"error": "n8n responded with status 503"}
    assert execution.logs.endswith("Source: cascade:X.")

    record = store.get_automation("A")
    assert record.status == AutomationStatus.WARNING.value
    assert record.metadata["summary"] == "n8n responded with status 503"


@pytest.mark.asyncio
async def test_unexpected_exception_is_wrapped_as_uncategorized(chain_registry, store, scripted_handler):
    runner = _runner(chain_registry, store, scripted_handler({"A": RuntimeError("disk full")}))

    with pytest.raises(Uncategorized) as excinfo:
        await runner.execute("A")

    assert excinfo.value.http_status == 500
    assert excinfo.value.severity is AutomationStatus.ERROR
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert store.get_automation("A").status == "error"
    assert "RuntimeError: disk full" in excinfo.value.execution.logs


@pytest.mark.asyncio
async def test_unknown_code_is_not_found(chain_registry, store, scripted_handler):
    runner = _runner(chain_registry, store, scripted_handler())

    with pytest.raises(NotFound) as excinfo:
        await runner.execute("ZZZ")
    assert excinfo.value.http_status == 404


@pytest.mark.asyncio
async def test_uninitialised_record_is_not_found(chain_registry, store, scripted_handler):
    runner = ExecutionRunner(chain_registry, store, {NodeKind.WEBHOOK: scripted_handler()})

    with pytest.raises(NotFound, match="not initialised"):
        await runner.execute("A")
    assert store.list_executions("A") == []


@pytest.mark.asyncio
async def test_missing_handler_is_not_configured(chain_registry, store):
    for blueprint in chain_registry:
        store.ensure_automation(blueprint.code)
    runner = ExecutionRunner(chain_registry, store, {})

    with pytest.raises(AutomationFailure) as excinfo:
        await runner.execute("A")
    assert excinfo.value.severity is AutomationStatus.MONITORING


@pytest.mark.asyncio
async def test_runs_of_the_same_node_do_not_overlap(chain_registry, store):
    active = 0
    peak = 0

    async def slow_handler(blueprint, payload=None):
        nonlocal active, peak
        active += 1
        peak = max(peak, active)
        await asyncio.sleep(0.02)
        active -= 1
        return StepOutcome(summary="ok")

    runner = _runner(chain_registry, store, slow_handler)

    await asyncio.gather(runner.execute("A", source="manual"), runner.execute("A", source="retry"))

    assert peak == 1
    executions = store.list_executions("A")
    assert len(executions) == 2
    older, newer = executions[1], executions[0]
    assert older.finished_at <= newer.started_at
