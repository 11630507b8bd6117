from __future__ import annotations

import asyncio
import logging
import traceback
from collections import defaultdict
from typing import Any, Awaitable, Callable, Mapping

from .errors import AutomationFailure, NotConfigured, NotFound, Uncategorized
from .models import ExecutionStatus, NodeView, StepOutcome, StepResult, utcnow
from .nodes.base import BlueprintRegistry, NodeBlueprint, NodeKind
from .store import SQLiteStore

logger = logging.getLogger(__name__)

NodeHandler = Callable[[NodeBlueprint, Any], Awaitable[StepOutcome]]


class ExecutionRunner:
    """Executes a single automation node and records the outcome."""

    def __init__(
        self,
        registry: BlueprintRegistry,
        store: SQLiteStore,
        handlers: Mapping[NodeKind, NodeHandler],
    ) -> None:
        self.registry = registry
        self.store = store
        self._handlers = dict(handlers)
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def resolve(self, code: str) -> NodeBlueprint:
        normalized = code.upper()
        blueprint = self.registry.find(normalized)
        if blueprint is None:
            raise NotFound(f"Automation node {normalized} was not found.")
        if self.store.get_automation(blueprint.code) is None:
            raise NotFound(f"Automation node {normalized} is not initialised.")
        return blueprint

    async def execute(self, code: str, payload: Any = None, source: str = "manual") -> StepResult:
        blueprint = self.resolve(code)
        # Runs of the same node are serialised; a retry waits for a manual run.
        async with self._locks[blueprint.code]:
            return await self._execute(blueprint, payload, source)

    async def _execute(self, blueprint: NodeBlueprint, payload: Any, source: str) -> StepResult:
        execution = self.store.create_execution(blueprint.code)
        try:
            handler = self._handlers.get(blueprint.kind)
            if handler is None:
                raise NotConfigured(f"No handler configured for {blueprint.kind.value} nodes.")
            outcome = await handler(blueprint, payload)
        except Exception as exc:
            failure = exc if isinstance(exc, AutomationFailure) else Uncategorized(
                str(exc) or "Unknown automation failure"
            )
            trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            failure.execution = self.store.finish_execution(
                execution.id,
                ExecutionStatus.ERROR,
                logs=f"{trace}Source: {source}.",
                result={"error": failure.message},
            )
            self.store.update_automation(blueprint.code, failure.severity, failure.message, utcnow())
            logger.warning(
                "Automation %s failed (%s, source=%s): %s",
                blueprint.code,
                failure.severity.value,
                source,
                failure.message,
            )
            if failure is exc:
                raise
            raise failure from exc

        logs = f"{outcome.logs}\nTriggered by: {source}." if outcome.logs else f"Triggered by: {source}."
        finished = self.store.finish_execution(
            execution.id,
            ExecutionStatus.SUCCESS,
            logs=logs,
            result=outcome.result,
        )
        record = self.store.update_automation(blueprint.code, outcome.status, outcome.summary, utcnow())
        logger.info("Automation %s succeeded (source=%s): %s", blueprint.code, source, outcome.summary)

        if finished is None or record is None:
            raise Uncategorized("Automation record disappeared after execution.")
        return StepResult(
            automation=NodeView.from_records(blueprint, record),
            execution=finished,
            summary=outcome.summary,
        )
