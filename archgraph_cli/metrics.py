"""Per-node and per-graph dependency metrics."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from .config import ScanConfig
from .graph import DependencyGraph
from .models import GraphNode, MetricsReport, NodeMetrics

if TYPE_CHECKING:
    from .scanner import CancellationToken

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Architecture layers
# ---------------------------------------------------------------------------
# Best-effort path heuristics: the first layer whose keyword appears in a
# path segment wins; anything unmatched is infrastructure. Short keywords
# must equal a whole segment to avoid matching inside longer words.
LAYER_KEYWORDS: Sequence = (
    ("presentation", ("component", "page", "view", "layout", "screen", "ui")),
    ("business", ("service", "business", "logic", "hook", "store", "domain")),
    ("data", ("model", "data", "api", "database", "repositor", "schema")),
    ("shared", ("shared", "common", "util", "helper", "lib")),
)
DEFAULT_LAYER = "infrastructure"
_SHORT_KEYWORD = 3

_HOOK_NAME = re.compile(r"^use[A-Z]")
_TEST_NAME = re.compile(r"(\.|_)(test|spec)$|^test_")


def _segment_matches(segment: str, keyword: str) -> bool:
    if len(keyword) <= _SHORT_KEYWORD:
        return segment == keyword
    return keyword in segment


def classify_layer(parts: Sequence[str]) -> str:
    """Architecture layer for a root-relative path split into segments."""
    segments = [p.lower().rsplit(".", 1)[0] if i == len(parts) - 1 else p.lower() for i, p in enumerate(parts)]
    for layer, keywords in LAYER_KEYWORDS:
        for segment in segments:
            if any(_segment_matches(segment, kw) for kw in keywords):
                return layer
    return DEFAULT_LAYER


def categorize(node: GraphNode, parts: Sequence[str]) -> str:
    """Coarse file category from its name and directories."""
    if node.is_external:
        return "external"
    if not parts:
        return "file"
    filename = parts[-1]
    stem = filename.split(".", 1)[0]
    full_stem = filename.rsplit(".", 1)[0]
    dirs = [p.lower() for p in parts[:-1]]

    if _TEST_NAME.search(full_stem) or {"test", "tests", "__tests__", "spec"} & set(dirs):
        return "test"
    if "config" in full_stem.lower() or filename.startswith("."):
        return "config"
    if stem in ("index", "__init__", "mod"):
        return "index"
    if _HOOK_NAME.match(stem) or "hooks" in dirs:
        return "hook"
    if "pages" in dirs or "page" in stem.lower():
        return "page"
    if "components" in dirs or (filename.endswith((".jsx", ".tsx")) and stem[:1].isupper()):
        return "component"
    if "services" in dirs or "service" in stem.lower():
        return "service"
    if "models" in dirs or "model" in stem.lower():
        return "model"
    if {"utils", "helpers", "lib"} & set(dirs) or stem.lower() in ("utils", "helpers"):
        return "utility"
    return "file"


class MetricsEngine:
    """Derive fan-in/fan-out, coupling, complexity buckets, layers and aggregates."""

    def __init__(self, config: Optional[ScanConfig] = None, token: Optional["CancellationToken"] = None) -> None:
        self.config = config or ScanConfig()
        self.token = token

    def compute(self, graph: DependencyGraph) -> MetricsReport:
        if self.token is not None:
            self.token.raise_if_cancelled()

        coupling = self.config.coupling_thresholds
        complexity = self.config.complexity_thresholds

        fan_in = [0] * len(graph.nodes)
        for src, dst in graph.distinct_pairs():
            if src != dst:
                fan_in[dst] += 1

        report = MetricsReport()
        external_usage: Dict[str, List[str]] = {}

        for node in graph.nodes:
            parts = graph.relative_parts(node.id)
            fan_out = len(graph.successors[node.index])
            total = fan_in[node.index] + fan_out
            report.nodes[node.id] = NodeMetrics(
                node_id=node.id,
                fan_in=fan_in[node.index],
                fan_out=fan_out,
                coupling_score=fan_out,
                coupling_level=coupling.level(fan_out),
                complexity=node.complexity,
                complexity_bucket=complexity.bucket(node.complexity),
                instability=round(fan_out / total, 4) if total else 0.0,
                layer=None if node.is_external else classify_layer(parts),
                category=categorize(node, parts),
            )
            if node.scanned:
                report.total_files += 1
                report.total_lines += node.lines
            for dst in graph.successors[node.index]:
                target = graph.nodes[dst]
                if target.is_external:
                    external_usage.setdefault(target.id, []).append(node.id)

        report.total_dependencies = graph.edge_count()
        report.external_usage = {k: sorted(v) for k, v in sorted(external_usage.items())}

        internal = [m for m in report.nodes.values() if graph.node(m.node_id).scanned]
        # Hotspots are files past the medium bound, i.e. in the high or critical bucket.
        report.hotspots = [
            m.node_id
            for m in sorted(internal, key=lambda m: (-m.complexity, m.node_id))
            if m.complexity > complexity.medium
        ]
        report.hubs = [
            m.node_id
            for m in sorted(internal, key=lambda m: (-m.fan_out, m.node_id))
            if m.fan_out > coupling.very_tight
        ]
        report.layer_distribution = self._layer_distribution(internal)

        logger.info(
            "Metrics: %d files, %d hotspots, %d hubs",
            report.total_files, len(report.hotspots), len(report.hubs),
        )
        return report

    @staticmethod
    def _layer_distribution(metrics: List[NodeMetrics]) -> Dict[str, Dict[str, float]]:
        buckets: Dict[str, List[int]] = {}
        for m in metrics:
            if m.layer is not None:
                buckets.setdefault(m.layer, []).append(m.complexity)
        return {
            layer: {
                "files": len(values),
                "avg_complexity": round(sum(values) / len(values), 2),
            }
            for layer, values in sorted(buckets.items())
        }


def compute_metrics(
    graph: DependencyGraph,
    config: Optional[ScanConfig] = None,
    token: Optional["CancellationToken"] = None,
) -> MetricsReport:
    return MetricsEngine(config, token).compute(graph)
