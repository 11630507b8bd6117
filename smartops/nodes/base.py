from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterator


class NodeKind(str, Enum):
    WEBHOOK = "webhook"
    SOURCE_SYNC = "source-sync"


@dataclass(frozen=True, slots=True)
class NodeBlueprint:
    code: str
    name: str
    kind: NodeKind
    sequence: int
    dependencies: tuple[str, ...] = ()
    endpoint_template: str | None = None
    headline: str = ""
    description: str = ""
    status_label: str = ""
    source_paths: tuple[str, ...] = ()


class BlueprintRegistry:
    """Static table of automation nodes keyed by code."""

    def __init__(self) -> None:
        self._nodes: dict[str, NodeBlueprint] = {}

    def register(self, blueprint: NodeBlueprint) -> None:
        code = blueprint.code.upper()
        if code in self._nodes:
            raise ValueError(f"Automation node {code} is already registered")
        self._nodes[code] = blueprint

    def get(self, code: str) -> NodeBlueprint:
        normalized = code.upper()
        if normalized not in self._nodes:
            raise KeyError(f"Unknown automation node: {normalized}")
        return self._nodes[normalized]

    def find(self, code: str) -> NodeBlueprint | None:
        return self._nodes.get(code.upper())

    def codes(self) -> list[str]:
        return [blueprint.code for blueprint in self.ordered()]

    def ordered(self) -> list[NodeBlueprint]:
        return sorted(self._nodes.values(), key=lambda blueprint: blueprint.sequence)

    def __iter__(self) -> Iterator[NodeBlueprint]:
        return iter(self.ordered())

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and code.upper() in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)
