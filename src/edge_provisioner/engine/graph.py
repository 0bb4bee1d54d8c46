"""Dependency graph utilities."""

from __future__ import annotations

from typing import TYPE_CHECKING

from edge_provisioner.errors import CyclicDependencyError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from edge_provisioner.resources.base import Resource

_UNVISITED, _VISITING, _DONE = 0, 1, 2


class DependencyGraph:
    """A directed graph where nodes depend on other nodes.

    An edge ``a -> b`` (``b`` in ``dependencies[a]``) means ``b`` must be
    applied before ``a``.
    """

    def __init__(
        self,
        nodes: Iterable[str],
        dependencies: Mapping[str, Iterable[str]],
        priorities: Mapping[str, int] | None = None,
    ) -> None:
        self._nodes = set(nodes)
        self._priorities = priorities or {}
        # node -> filtered deps within graph
        self._deps: dict[str, set[str]] = {}
        for node in self._nodes:
            deps = set(dependencies.get(node, []))
            self._deps[node] = {d for d in deps if d in self._nodes}

    def _sort_key(self, node: str) -> tuple[int, str]:
        return (self._priorities.get(node, 0), node)

    def dependencies(self, node: str) -> list[str]:
        return sorted(self._deps.get(node, set()), key=self._sort_key)

    def dependents(self, node: str) -> list[str]:
        return sorted((n for n, deps in self._deps.items() if node in deps), key=self._sort_key)

    def topological_order(self) -> list[str]:
        """Return deterministic topo order (priority, then lexicographic tie-break).

        Depth-first post-order: a node is emitted once all of its dependencies
        have been emitted.  A back edge raises ``CyclicDependencyError`` naming
        the cycle.
        """
        marks: dict[str, int] = dict.fromkeys(self._nodes, _UNVISITED)
        order: list[str] = []
        path: list[str] = []

        def visit(node: str) -> None:
            marks[node] = _VISITING
            path.append(node)
            for dep in self.dependencies(node):
                if marks[dep] == _VISITING:
                    start = path.index(dep)
                    raise CyclicDependencyError([*path[start:], dep])
                if marks[dep] == _UNVISITED:
                    visit(dep)
            path.pop()
            marks[node] = _DONE
            order.append(node)

        for node in sorted(self._nodes, key=self._sort_key):
            if marks[node] == _UNVISITED:
                visit(node)
        return order

    def reverse_topological_order(self) -> list[str]:
        order = self.topological_order()
        order.reverse()
        return order


def build_dependency_graph(resources: Iterable[Resource]) -> DependencyGraph:
    """Derive the graph from each descriptor's references and ``depends_on``."""
    resources = list(resources)
    return DependencyGraph(
        nodes=[r.id for r in resources],
        dependencies={r.id: r.references() for r in resources},
        priorities={r.id: r.plan_priority for r in resources},
    )
