"""Shared fixtures for the automation engine tests."""

from __future__ import annotations

from typing import Any

import pytest

from smartops.models import StepOutcome
from smartops.nodes import BlueprintRegistry, NodeBlueprint, NodeKind, register_builtin_nodes
from smartops.store import SQLiteStore


@pytest.fixture
def store(tmp_path):
    return SQLiteStore(tmp_path / "smartops.db")


@pytest.fixture
def builtin_registry() -> BlueprintRegistry:
    registry = BlueprintRegistry()
    register_builtin_nodes(registry)
    return registry


@pytest.fixture
def chain_registry() -> BlueprintRegistry:
    """A -> B -> C, where C depends on B and B depends on A."""
    registry = BlueprintRegistry()
    registry.register(NodeBlueprint("A", "Alpha", NodeKind.WEBHOOK, 1, endpoint_template="/hooks/a"))
    registry.register(NodeBlueprint("B", "Beta", NodeKind.WEBHOOK, 2, ("A",), endpoint_template="/hooks/b"))
    registry.register(NodeBlueprint("C", "Gamma", NodeKind.WEBHOOK, 3, ("B",), endpoint_template="/hooks/c"))
    return registry


@pytest.fixture
def diamond_registry() -> BlueprintRegistry:
    """ROOT fans out to LEFT and RIGHT, JOIN needs both."""
    registry = BlueprintRegistry()
    registry.register(NodeBlueprint("ROOT", "Root", NodeKind.WEBHOOK, 1))
    registry.register(NodeBlueprint("LEFT", "Left", NodeKind.WEBHOOK, 2, ("ROOT",)))
    registry.register(NodeBlueprint("RIGHT", "Right", NodeKind.WEBHOOK, 3, ("ROOT",)))
    registry.register(NodeBlueprint("JOIN", "Join", NodeKind.WEBHOOK, 4, ("LEFT", "RIGHT")))
    return registry


class ScriptedHandler:
    """Node handler double: succeeds unless a code is scripted to raise."""

    def __init__(self, failures: dict[str, Exception] | None = None) -> None:
        self.failures = failures or {}
        self.calls: list[tuple[str, Any]] = []

    async def __call__(self, blueprint: NodeBlueprint, payload: Any = None) -> StepOutcome:
        self.calls.append((blueprint.code, payload))
        failure = self.failures.get(blueprint.code)
        if failure is not None:
            raise failure
        return StepOutcome(
            summary=f"{blueprint.code} done",
            result={"code": blueprint.code},
            logs=f"ran {blueprint.code}",
        )

    @property
    def codes(self) -> list[str]:
        return [code for code, _ in self.calls]


@pytest.fixture
def scripted_handler():
    return ScriptedHandler
