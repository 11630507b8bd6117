from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from .errors import AutomationFailure, NotFound
from .graph import DependencyGraph
from .models import ExecutionRecord, NodeDetails, NodeView, RunResult, StepResult
from .nodes.base import BlueprintRegistry, NodeBlueprint
from .runner import ExecutionRunner
from .store import SQLiteStore

logger = logging.getLogger(__name__)

EndpointResolver = Callable[[str | None], str | None]


class AutomationEngine:
    """Runs a node and cascades through its dependents in dependency order."""

    def __init__(
        self,
        registry: BlueprintRegistry,
        store: SQLiteStore,
        runner: ExecutionRunner,
        endpoint_resolver: EndpointResolver | None = None,
    ) -> None:
        self.registry = registry
        self.store = store
        self.runner = runner
        self.graph = DependencyGraph.build(registry)
        self._endpoint_resolver = endpoint_resolver or (lambda _template: None)

    def validate(self) -> list[str]:
        return self.graph.topological_order(self.registry.codes())

    def ensure_records(self) -> None:
        for blueprint in self.registry:
            self.store.ensure_automation(
                blueprint.code,
                self._endpoint_resolver(blueprint.endpoint_template),
            )

    async def run(
        self,
        code: str,
        payload: Any = None,
        cascade: bool = True,
        source: str = "manual",
    ) -> RunResult:
        self.ensure_records()
        primary = await self.runner.execute(code, payload=payload, source=source)

        steps: list[StepResult] = []
        if cascade:
            steps = await self._cascade(primary.automation.code)

        return RunResult(automation=primary.automation, execution=primary.execution, cascade=steps)

    async def run_pipeline(self, start_code: str = "ACP", source: str = "scheduled") -> RunResult:
        return await self.run(start_code, cascade=True, source=source)

    async def retry(self, code: str) -> RunResult:
        return await self.run(code, cascade=False, source="retry")

    async def _cascade(self, trigger: str) -> list[StepResult]:
        remaining = self.graph.reachable_from(trigger)
        remaining.discard(trigger)
        visited = {trigger}
        steps: list[StepResult] = []

        while remaining:
            wave = sorted(
                (self.registry.get(code) for code in remaining if code in self.registry),
                key=lambda blueprint: blueprint.sequence,
            )
            remaining.intersection_update(blueprint.code for blueprint in wave)
            eligible = [blueprint for blueprint in wave if set(blueprint.dependencies) <= visited]
            if not eligible:
                break

            remaining.difference_update(blueprint.code for blueprint in eligible)
            results = await asyncio.gather(
                *(self._cascade_step(blueprint, trigger) for blueprint in eligible)
            )
            for blueprint, result in zip(eligible, results):
                steps.append(result)
                if result.ok:
                    visited.add(blueprint.code)

        if remaining:
            logger.info("Cascade from %s left %s unreached", trigger, sorted(remaining))
        return steps

    async def _cascade_step(self, blueprint: NodeBlueprint, trigger: str) -> StepResult:
        source = f"cascade:{'+'.join(blueprint.dependencies) or trigger}"
        try:
            return await self.runner.execute(blueprint.code, source=source)
        except AutomationFailure as failure:
            record = self.store.get_automation(blueprint.code)
            if record is None or failure.execution is None:
                raise
            return StepResult(
                automation=NodeView.from_records(blueprint, record),
                execution=failure.execution,
                summary=failure.message,
                error=failure.message,
            )

    def list_nodes(self) -> list[NodeView]:
        self.ensure_records()
        records = self.store.list_automations()
        return [
            NodeView.from_records(blueprint, records[blueprint.code])
            for blueprint in self.registry
            if blueprint.code in records
        ]

    def get_node(self, code: str, limit: int = 25) -> NodeDetails:
        blueprint = self.runner.resolve(code)
        record = self.store.get_automation(blueprint.code)
        if record is None:
            raise NotFound(f"Automation node {blueprint.code} is not initialised.")
        metadata: dict[str, Any] = {
            "headline": blueprint.headline,
            "dependencies": list(blueprint.dependencies),
            "status_label": blueprint.status_label,
            "sequence": blueprint.sequence,
        }
        if blueprint.source_paths:
            metadata["source_paths"] = list(blueprint.source_paths)
        metadata.update(record.metadata)
        view = NodeView.from_records(blueprint, record)
        return NodeDetails(
            **view.model_dump(),
            metadata=metadata,
            executions=self.store.list_executions(blueprint.code, limit=limit),
        )

    def get_execution(self, execution_id: int) -> ExecutionRecord:
        execution = self.store.get_execution(execution_id)
        if execution is None:
            raise NotFound(f"Execution {execution_id} was not found.")
        return execution
