"""Dependency graph utilities."""

from __future__ import annotations

import heapq
from typing import TYPE_CHECKING

from circleci_provisioner.engine.errors import DependencyCycleError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class DependencyGraph:
    """Directed graph of addresses; an edge ``a -> b`` means *a* depends on *b*.

    Dependencies on nodes outside the graph are ignored. Ordering is
    deterministic: among ready nodes the lowest priority runs first, ties
    broken lexicographically.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = frozenset(nodes)
        self._priorities = dict(priorities or {})
        self._deps: dict[str, frozenset[str]] = {
            node: frozenset(d for d in dependencies.get(node, ()) if d in self._nodes)
            for node in self._nodes
        }
        self._dependents: dict[str, set[str]] = {node: set() for node in self._nodes}
        for node, deps in self._deps.items():
            for dep in deps:
                self._dependents[dep].add(node)

    def _key(self, node: str) -> tuple[int, str]:
        return self._priorities.get(node, 0), node

    def topological_order(self) -> list[str]:
        """Dependencies before dependents."""
        pending = {node: len(deps) for node, deps in self._deps.items()}
        ready = [self._key(n) for n, count in pending.items() if count == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, node = heapq.heappop(ready)
            order.append(node)
            for child in self._dependents[node]:
                pending[child] -= 1
                if pending[child] == 0:
                    heapq.heappush(ready, self._key(child))

        if len(order) != len(self._nodes):
            raise DependencyCycleError(self._cyclic_nodes(set(self._nodes) - set(order)))
        return order

    def reverse_topological_order(self) -> list[str]:
        """Dependents before dependencies (deletion order)."""
        order = self.topological_order()
        order.reverse()
        return order

    def transitive_dependents(self, node: str) -> set[str]:
        """Every node that depends on *node*, directly or indirectly."""
        seen: set[str] = set()
        stack = list(self._dependents.get(node, ()))
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependents[current])
        return seen

    def _cyclic_nodes(self, unresolved: set[str]) -> list[str]:
        # Drop nodes that are only blocked behind a cycle, keep the cycle members.
        remaining = set(unresolved)
        changed = True
        while changed:
            changed = False
            for node in sorted(remaining):
                if not (self._dependents[node] & remaining):
                    remaining.discard(node)
                    changed = True
        return sorted(remaining or unresolved)
