from __future__ import annotations

from collections import defaultdict, deque
from typing import Iterable

from .nodes.base import NodeBlueprint


class DependencyGraph:
    """Forward edges from each dependency to the nodes that declare it."""

    def __init__(self, edges: dict[str, set[str]]) -> None:
        self._edges = edges

    @classmethod
    def build(cls, blueprints: Iterable[NodeBlueprint]) -> DependencyGraph:
        edges: dict[str, set[str]] = defaultdict(set)
        for blueprint in blueprints:
            for dependency in blueprint.dependencies:
                edges[dependency].add(blueprint.code)
        return cls(dict(edges))

    def dependents(self, code: str) -> set[str]:
        return set(self._edges.get(code, ()))

    def reachable_from(self, start: str) -> set[str]:
        reachable = {start}
        queue = deque([start])
        while queue:
            current = queue.popleft()
            for target in self._edges.get(current, ()):
                if target not in reachable:
                    reachable.add(target)
                    queue.append(target)
        return reachable

    def topological_order(self, codes: Iterable[str]) -> list[str]:
        nodes = list(codes)
        known = set(nodes)
        indegree = {code: 0 for code in nodes}

        for source, targets in self._edges.items():
            if source not in known:
                raise ValueError(f"Unknown dependency in automation table: {source}")
            for target in targets:
                if target not in known:
                    raise ValueError(f"Unknown automation node in edges: {target}")
                indegree[target] += 1

        queue = deque(code for code in nodes if indegree[code] == 0)
        order: list[str] = []

        while queue:
            code = queue.popleft()
            order.append(code)
            for target in sorted(self._edges.get(code, ())):
                indegree[target] -= 1
                if indegree[target] == 0:
                    queue.append(target)

        if len(order) != len(nodes):
            raise ValueError("Automation dependency graph has a cycle")

        return order
