"""Graph export helpers: visualization JSON, store batches and Graphviz DOT."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .graph import DependencyGraph
from .models import (
    CIRCULAR_DEPENDENCY,
    ISOLATED_FILE,
    CycleReport,
    Issue,
    MetricsReport,
    ScanResult,
)


def node_payload(graph: DependencyGraph, metrics: MetricsReport, node_id: str) -> Dict[str, Any]:
    node = graph.node(node_id)
    m = metrics.get(node_id)
    facts = node.facts
    return {
        "id": node.id,
        "label": graph.display(node.id),
        "language": node.language,
        "external": node.is_external,
        "scanned": node.scanned,
        "lines": node.lines,
        "size": node.size,
        "complexity": node.complexity,
        "complexityBucket": m.complexity_bucket,
        "fanIn": m.fan_in,
        "fanOut": m.fan_out,
        "couplingScore": m.coupling_score,
        "couplingLevel": m.coupling_level,
        "instability": m.instability,
        "layer": m.layer,
        "category": m.category,
        "exports": [e.name for e in facts.exports] if facts else [],
        "functions": len(facts.functions) if facts else 0,
    }


def edge_payload(graph: DependencyGraph) -> List[Dict[str, Any]]:
    return [
        {
            "from": e.src,
            "to": e.dst,
            "kind": e.kind,
            "specifier": e.specifier,
        }
        for e in graph.sorted_edges()
    ]


def to_payload(
    graph: DependencyGraph,
    metrics: MetricsReport,
    issues: Sequence[Issue],
    cycles: Optional[CycleReport] = None,
) -> Dict[str, Any]:
    """Serialize to ``{nodes, edges, metadata}`` for the visualization layer."""
    cycles = cycles or CycleReport()
    isolated = [i.node_ids[0] for i in issues if i.type == ISOLATED_FILE]
    return {
        "nodes": [node_payload(graph, metrics, node_id) for node_id in sorted(graph.index)],
        "edges": edge_payload(graph),
        "issues": [i.to_dict() for i in issues],
        "metadata": {
            "totalFiles": metrics.total_files,
            "totalLines": metrics.total_lines,
            "totalDependencies": metrics.total_dependencies,
            "conflicts": len(issues),
            "circularDependencies": sum(1 for i in issues if i.type == CIRCULAR_DEPENDENCY),
            "cyclesTruncated": cycles.truncated,
            "isolatedFiles": sorted(isolated),
            "highlyConnectedFiles": list(metrics.hubs),
            "complexityHotspots": list(metrics.hotspots),
            "layerDistribution": metrics.layer_distribution,
            "externalDependencies": metrics.external_usage,
        },
    }


def result_payload(result: ScanResult) -> Dict[str, Any]:
    if not result.ok:
        raise ValueError("Cannot serialize a cancelled or empty scan")
    return to_payload(result.graph, result.metrics, result.issues, result.cycles)


def to_json(payload: Dict[str, Any], indent: Optional[int] = 2) -> str:
    return json.dumps(payload, indent=indent, sort_keys=True, ensure_ascii=False)


def to_store_batch(result: ScanResult, project_id: str) -> Dict[str, List[Dict[str, Any]]]:
    """Rows for a bulk upsert keyed by ``(project_id, node_id)``."""
    payload = result_payload(result)
    return {
        "nodes": [{"project_id": project_id, "node_id": n["id"], **n} for n in payload["nodes"]],
        "edges": [{"project_id": project_id, **e} for e in payload["edges"]],
        "issues": [{"project_id": project_id, **i} for i in payload["issues"]],
    }


def export_json(result: ScanResult, output_file: Path) -> None:
    output_file.write_text(to_json(result_payload(result)), encoding="utf-8")


def to_dot(graph: DependencyGraph, metrics: Optional[MetricsReport] = None, include_external: bool = True) -> str:
    lines = ["digraph ArchGraph {"]
    lines.append("  rankdir=LR;")

    for node_id in sorted(graph.index):
        node = graph.node(node_id)
        if node.is_external and not include_external:
            continue
        attrs = [f'label="{_esc(graph.display(node_id))}"']
        if node.is_external:
            attrs.append("shape=box")
            attrs.append("style=dashed")
        elif metrics is not None and node_id in metrics.hotspots:
            attrs.append('color="red"')
        lines.append(f'  "{_esc(node_id)}" [{", ".join(attrs)}];')

    for src_idx, dst_idx in sorted(graph.distinct_pairs(), key=lambda p: (graph.nodes[p[0]].id, graph.nodes[p[1]].id)):
        src, dst = graph.nodes[src_idx], graph.nodes[dst_idx]
        if dst.is_external and not include_external:
            continue
        kinds = ",".join(sorted(graph.pair_kinds[(src_idx, dst_idx)]))
        lines.append(f'  "{_esc(src.id)}" -> "{_esc(dst.id)}" [label="{_esc(kinds)}"];')

    lines.append("}")
    return "\n".join(lines)


def export_dot(result: ScanResult, output_file: Path, include_external: bool = True) -> None:
    if not result.ok:
        raise ValueError("Cannot export a cancelled or empty scan")
    output_file.write_text(to_dot(result.graph, result.metrics, include_external), encoding="utf-8")


def _esc(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"')
