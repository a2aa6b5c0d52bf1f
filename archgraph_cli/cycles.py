"""Circular dependency detection over the built graph."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, FrozenSet, List, Optional, Set, Tuple

from .config import DEFAULT_CYCLE_BUDGET
from .errors import CycleDetectionTimeout
from .graph import DependencyGraph
from .models import ABSOLUTE, ALIAS, RELATIVE, Cycle, CycleReport

if TYPE_CHECKING:
    from .scanner import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_EDGE_KINDS: FrozenSet[str] = frozenset({RELATIVE, ABSOLUTE, ALIAS})

_WHITE, _GRAY, _BLACK = 0, 1, 2
_DONE = -1
_CANCEL_CHECK_INTERVAL = 4096


class CycleDetector:
    """Depth-first cycle search with a recursion stack and path reconstruction.

    Every edge reaching a node that is still on the recursion stack closes a
    cycle, which is the path slice from that node's position to the current
    node. Nodes and successors are visited in id order so the output is
    deterministic. Each followed edge costs one step; when ``budget`` steps
    are spent the search stops and the report is marked ``truncated``.
    """

    def __init__(
        self,
        budget: int = DEFAULT_CYCLE_BUDGET,
        edge_kinds: FrozenSet[str] = DEFAULT_EDGE_KINDS,
        token: Optional["CancellationToken"] = None,
    ) -> None:
        self.budget = budget
        self.edge_kinds = frozenset(edge_kinds)
        self.token = token
        self._steps = 0

    def find_cycles(self, graph: DependencyGraph) -> CycleReport:
        if self.token is not None:
            self.token.raise_if_cancelled()

        self._steps = 0
        cycles: List[Cycle] = []
        seen: Set[Tuple[str, ...]] = set()
        truncated = False
        try:
            self._search(graph, cycles, seen)
        except CycleDetectionTimeout as exc:
            logger.warning("Cycle detection stopped early: %s", exc)
            truncated = True

        logger.info("Found %d cycle(s) in %d steps", len(cycles), self._steps)
        return CycleReport(cycles=cycles, truncated=truncated, steps=self._steps)

    def _step(self) -> None:
        if self._steps >= self.budget:
            raise CycleDetectionTimeout(self._steps)
        self._steps += 1
        if self.token is not None and self._steps % _CANCEL_CHECK_INTERVAL == 0:
            self.token.raise_if_cancelled()

    def _search(self, graph: DependencyGraph, cycles: List[Cycle], seen: Set[Tuple[str, ...]]) -> None:
        adjacency = graph.adjacency(self.edge_kinds)
        nodes = graph.nodes
        state = [_WHITE] * len(nodes)

        for start in sorted(range(len(nodes)), key=lambda i: nodes[i].id):
            if state[start] != _WHITE or not adjacency[start]:
                continue

            path: List[int] = [start]
            position = {start: 0}
            stack = [(start, iter(adjacency[start]))]
            state[start] = _GRAY

            while stack:
                node, successors = stack[-1]
                nxt = next(successors, _DONE)
                if nxt == _DONE:
                    stack.pop()
                    path.pop()
                    del position[node]
                    state[node] = _BLACK
                    continue

                self._step()
                if state[nxt] == _GRAY:
                    cycle = Cycle(tuple(nodes[i].id for i in path[position[nxt]:]))
                    if cycle.key() not in seen:
                        seen.add(cycle.key())
                        cycles.append(cycle)
                elif state[nxt] == _WHITE:
                    state[nxt] = _GRAY
                    position[nxt] = len(path)
                    path.append(nxt)
                    stack.append((nxt, iter(adjacency[nxt])))


def find_cycles(
    graph: DependencyGraph,
    budget: int = DEFAULT_CYCLE_BUDGET,
    edge_kinds: FrozenSet[str] = DEFAULT_EDGE_KINDS,
    token: Optional["CancellationToken"] = None,
) -> CycleReport:
    """Enumerate circular dependency chains in *graph*."""
    return CycleDetector(budget=budget, edge_kinds=edge_kinds, token=token).find_cycles(graph)
