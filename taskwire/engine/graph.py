"""Task graph construction: closure, ordering edges and a deterministic schedule."""

from __future__ import annotations

import heapq
from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Literal, Mapping, TypeAlias

from .tasks import TaskSpec

EdgeKind: TypeAlias = Literal["depends_on", "finalized_by", "should_run_after"]


@dataclass(frozen=True)
class Edge:
    kind: EdgeKind
    before: str
    after: str


def _reachable(adjacency: Mapping[str, set[str]], start: str, target: str) -> bool:
    stack = [start]
    seen: set[str] = set()
    while stack:
        node = stack.pop()
        if node == target:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(adjacency.get(node, ()))
    return False


def _find_cycle(nodes: Iterable[str], adjacency: Mapping[str, set[str]]) -> list[str] | None:
    white, grey, black = 0, 1, 2
    color: dict[str, int] = {node: white for node in nodes}
    parent: dict[str, str] = {}

    for root in sorted(color):
        if color[root] != white:
            continue
        stack: list[tuple[str, list[str]]] = [(root, sorted(adjacency.get(root, ())))]
        color[root] = grey
        while stack:
            node, children = stack[-1]
            if not children:
                color[node] = black
                stack.pop()
                continue
            child = children.pop(0)
            if color.get(child, white) == grey:
                cycle = [child, node]
                while cycle[-1] != child:
                    cycle.append(parent[cycle[-1]])
                return list(reversed(cycle))
            if color.get(child, white) == white:
                color[child] = grey
                parent[child] = node
                stack.append((child, sorted(adjacency.get(child, ()))))
    return None


class TaskGraph:
    """The subset of registered tasks needed to run the requested ones.

    Built once per invocation; the same specs and requests always produce the
    same edges and the same order.
    """

    def __init__(self, specs: Mapping[str, TaskSpec], edges: tuple[Edge, ...]) -> None:
        self._specs = dict(specs)
        self._edges = edges

        self._hard_preds: dict[str, set[str]] = defaultdict(set)
        self._soft_preds: dict[str, set[str]] = defaultdict(set)
        self._hard_succs: dict[str, set[str]] = defaultdict(set)
        for edge in edges:
            if edge.kind == "should_run_after":
                self._soft_preds[edge.after].add(edge.before)
            else:
                self._hard_preds[edge.after].add(edge.before)
                self._hard_succs[edge.before].add(edge.after)

        self._order = self._topological_order()

    @classmethod
    def build(cls, specs: Iterable[TaskSpec], requested: Iterable[str]) -> "TaskGraph":
        by_path: dict[str, TaskSpec] = {}
        for spec in specs:
            if spec.path in by_path:
                raise ValueError(f"Duplicate task path: {spec.path}")
            by_path[spec.path] = spec

        requested_list = list(requested)
        if not requested_list:
            raise ValueError("No tasks requested")

        selected: dict[str, TaskSpec] = {}
        queue: list[tuple[str, str]] = [(path, "<requested>") for path in requested_list]
        while queue:
            path, referrer = queue.pop(0)
            if path in selected:
                continue
            spec = by_path.get(path)
            if spec is None:
                raise ValueError(f"Unknown task {path} (referenced by {referrer})")
            selected[path] = spec
            for dep in (*spec.depends_on, *spec.finalized_by):
                queue.append((dep, path))

        hard: list[Edge] = []
        soft: list[Edge] = []
        for path in sorted(selected):
            spec = selected[path]
            for dep in spec.depends_on:
                hard.append(Edge("depends_on", dep, path))
            for finalizer in spec.finalized_by:
                hard.append(Edge("finalized_by", path, finalizer))
            for earlier in spec.should_run_after:
                if earlier in selected:
                    soft.append(Edge("should_run_after", earlier, path))

        adjacency: dict[str, set[str]] = defaultdict(set)
        for edge in hard:
            adjacency[edge.before].add(edge.after)
        cycle = _find_cycle(selected.keys(), adjacency)
        if cycle:
            raise ValueError(f"Task dependency cycle: {' -> '.join(cycle)}")

        kept_soft: list[Edge] = []
        for edge in sorted(soft, key=lambda e: (e.after, e.before)):
            # Soft ordering never wins over a hard edge pointing the other way.
            if _reachable(adjacency, edge.after, edge.before):
                continue
            adjacency[edge.before].add(edge.after)
            kept_soft.append(edge)

        edges = tuple(
            sorted((*hard, *kept_soft), key=lambda e: (e.before, e.after, e.kind))
        )
        return cls(selected, edges)

    def _topological_order(self) -> tuple[str, ...]:
        indegree: dict[str, int] = {path: 0 for path in self._specs}
        succs: dict[str, set[str]] = defaultdict(set)
        for edge in self._edges:
            if edge.after not in succs[edge.before]:
                succs[edge.before].add(edge.after)
                indegree[edge.after] += 1

        ready = [path for path, degree in indegree.items() if degree == 0]
        heapq.heapify(ready)
        order: list[str] = []
        while ready:
            path = heapq.heappop(ready)
            order.append(path)
            for succ in sorted(succs[path]):
                indegree[succ] -= 1
                if indegree[succ] == 0:
                    heapq.heappush(ready, succ)
        if len(order) != len(self._specs):
            raise ValueError("Task graph contains a cycle")
        return tuple(order)

    def __contains__(self, path: object) -> bool:
        return path in self._specs

    def __len__(self) -> int:
        return len(self._specs)

    @property
    def edges(self) -> tuple[Edge, ...]:
        return self._edges

    def order(self) -> tuple[str, ...]:
        return self._order

    def spec(self, path: str) -> TaskSpec:
        return self._specs[path]

    def hard_predecessors(self, path: str) -> tuple[str, ...]:
        return tuple(sorted(self._hard_preds.get(path, ())))

    def soft_predecessors(self, path: str) -> tuple[str, ...]:
        return tuple(sorted(self._soft_preds.get(path, ())))

    def hard_successors(self, path: str) -> tuple[str, ...]:
        return tuple(sorted(self._hard_succs.get(path, ())))

    def describe(self) -> tuple[dict[str, object], ...]:
        rows: list[dict[str, object]] = []
        for path in self._order:
            spec = self._specs[path]
            rows.append(
                {
                    "path": path,
                    "group": spec.group,
                    "description": spec.description,
                    "after": list(self.hard_predecessors(path)),
                    "soft_after": list(self.soft_predecessors(path)),
                }
            )
        return tuple(rows)
