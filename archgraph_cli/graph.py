"""Dependency graph assembly.

The graph is an arena: nodes live in a list, a side table maps canonical ids
to list indices and adjacency is one ``set`` of successor indices per node.
Several import specifiers between the same pair are kept as separate
:class:`GraphEdge` records, but the adjacency sets hold each distinct
``(src, dst)`` pair once, which is what the analysis passes read.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from .config import DEFAULT_ALIAS_MAP
from .models import FileFacts, GraphEdge, GraphNode, ImportRef, is_external_id
from .parser import detect_language
from .resolver import PathResolver, external_node_id

logger = logging.getLogger(__name__)


class DependencyGraph:
    """Read-only graph produced by :meth:`GraphBuilder.build`."""

    def __init__(
        self,
        nodes: List[GraphNode],
        index: Dict[str, int],
        successors: List[Set[int]],
        edges: Set[GraphEdge],
        pair_kinds: Dict[Tuple[int, int], Set[str]],
        root: Optional[str] = None,
    ) -> None:
        self.nodes = nodes
        self.index = index
        self.successors = successors
        self.edges = edges
        self.pair_kinds = pair_kinds
        self.root = root

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.index

    def node(self, node_id: str) -> GraphNode:
        return self.nodes[self.index[node_id]]

    def successor_ids(self, node_id: str) -> List[str]:
        return sorted(self.nodes[i].id for i in self.successors[self.index[node_id]])

    def internal_nodes(self) -> Iterator[GraphNode]:
        return (n for n in self.nodes if not n.is_external)

    def scanned_nodes(self) -> Iterator[GraphNode]:
        return (n for n in self.nodes if n.scanned)

    def distinct_pairs(self) -> Iterator[Tuple[int, int]]:
        for src, targets in enumerate(self.successors):
            for dst in targets:
                yield src, dst

    def edge_count(self) -> int:
        return sum(len(targets) for targets in self.successors)

    def adjacency(self, kinds: Optional[FrozenSet[str]] = None) -> List[List[int]]:
        """Successor lists ordered by node id, optionally keeping only pairs with an edge of *kinds*."""
        result: List[List[int]] = []
        for src, targets in enumerate(self.successors):
            kept = [
                dst for dst in targets
                if kinds is None or self.pair_kinds.get((src, dst), set()) & kinds
            ]
            kept.sort(key=lambda i: self.nodes[i].id)
            result.append(kept)
        return result

    def sorted_edges(self) -> List[GraphEdge]:
        return sorted(self.edges, key=lambda e: (e.src, e.dst, e.kind, e.specifier))

    def display(self, node_id: str) -> str:
        """Node id relative to the scan root, for messages and tables."""
        if self.root and not is_external_id(node_id):
            prefix = self.root.rstrip("/") + "/"
            if node_id.startswith(prefix):
                return node_id[len(prefix):]
        return node_id

    def relative_parts(self, node_id: str) -> List[str]:
        return [p for p in self.display(node_id).split("/") if p]


class GraphBuilder:
    """Single-writer accumulator of :class:`FileFacts` into a :class:`DependencyGraph`.

    ``add_fact`` for an id that already exists replaces the node attributes;
    edges accumulate in a set, so adding the same edge twice is a no-op.
    Imports that were never resolved (empty ``kind``) are resolved at
    :meth:`build` time against every scanned file, using *alias_map*.
    """

    def __init__(self, root: Optional[str] = None, alias_map: Optional[Mapping[str, str]] = None) -> None:
        self.root = root
        self.alias_map = dict(DEFAULT_ALIAS_MAP if alias_map is None else alias_map)
        self._pending: List[Tuple[str, ImportRef]] = []
        self._nodes: List[GraphNode] = []
        self._index: Dict[str, int] = {}
        self._successors: List[Set[int]] = []
        self._edges: Set[GraphEdge] = set()
        self._pair_kinds: Dict[Tuple[int, int], Set[str]] = {}

    def _ensure_node(self, node_id: str) -> int:
        idx = self._index.get(node_id)
        if idx is None:
            idx = len(self._nodes)
            external = is_external_id(node_id)
            self._nodes.append(GraphNode(
                id=node_id,
                index=idx,
                language="external" if external else _language_hint(node_id),
                is_external=external,
            ))
            self._index[node_id] = idx
            self._successors.append(set())
        return idx

    def add_fact(self, facts: FileFacts) -> None:
        idx = self._ensure_node(facts.id)
        node = self._nodes[idx]
        self._nodes[idx] = replace(
            node,
            language=facts.language,
            lines=facts.lines,
            size=facts.size,
            complexity=facts.complexity,
            is_external=False,
            scanned=True,
            facts=facts,
        )
        for ref in facts.imports:
            if not ref.kind:
                self._pending.append((facts.id, ref))
                continue
            target = ref.resolved_target_id or external_node_id(ref.raw_specifier)
            self.add_edge(facts.id, target, ref.kind, ref.raw_specifier)

    def add_edge(self, src: str, dst: str, kind: str, specifier: str = "") -> None:
        edge = GraphEdge(src=src, dst=dst, kind=kind, specifier=specifier)
        if edge in self._edges:
            return
        self._edges.add(edge)
        s, d = self._ensure_node(src), self._ensure_node(dst)
        self._successors[s].add(d)
        self._pair_kinds.setdefault((s, d), set()).add(kind)

    def add_facts(self, facts: Iterable[FileFacts]) -> None:
        for item in facts:
            self.add_fact(item)

    def _resolve_pending(self) -> None:
        if not self._pending:
            return
        resolver = PathResolver(
            self.root or "/",
            alias_map=self.alias_map,
            known_ids=[n.id for n in self._nodes if n.scanned],
        )
        for src, ref in self._pending:
            res = resolver.resolve(ref.raw_specifier, src)
            self.add_edge(src, res.node_id, res.kind, ref.raw_specifier)
        logger.debug("Resolved %d import(s) at build time", len(self._pending))
        self._pending = []

    def build(self) -> DependencyGraph:
        self._resolve_pending()
        logger.info("Built graph: %d nodes, %d edges", len(self._nodes), len(self._edges))
        return DependencyGraph(
            nodes=list(self._nodes),
            index=dict(self._index),
            successors=[set(s) for s in self._successors],
            edges=set(self._edges),
            pair_kinds={k: set(v) for k, v in self._pair_kinds.items()},
            root=self.root,
        )


def _language_hint(node_id: str) -> str:
    if not posixpath.splitext(node_id)[1]:
        return ""
    return detect_language(node_id)
