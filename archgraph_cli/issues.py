"""Classify graph anomalies into a uniform, deterministically ordered issue list."""

from __future__ import annotations

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .config import ScanConfig
from .graph import DependencyGraph
from .models import (
    CIRCULAR_DEPENDENCY,
    DUPLICATE_DEPENDENCY_PATTERN,
    HIGH_COUPLING_HUB,
    ISOLATED_FILE,
    PARSE_FAILURE,
    SEVERITY_ERROR,
    SEVERITY_WARNING,
    Cycle,
    CycleReport,
    Issue,
    MetricsReport,
)

logger = logging.getLogger(__name__)


def circular_dependency_issues(graph: DependencyGraph, cycles: Sequence[Cycle]) -> List[Issue]:
    issues = []
    for cycle in cycles:
        chain = " → ".join(graph.display(n) for n in cycle.nodes + (cycle.nodes[0],))
        issues.append(Issue(
            type=CIRCULAR_DEPENDENCY,
            severity=SEVERITY_ERROR,
            message=f"Circular dependency detected: {chain}",
            node_ids=cycle.nodes,
        ))
    return issues


def isolated_file_issues(graph: DependencyGraph, metrics: MetricsReport) -> List[Issue]:
    issues = []
    for node in sorted(graph.internal_nodes(), key=lambda n: n.id):
        m = metrics.get(node.id)
        if m.fan_in == 0 and m.fan_out == 0:
            issues.append(Issue(
                type=ISOLATED_FILE,
                severity=SEVERITY_WARNING,
                message=f"Isolated file: {graph.display(node.id)} has no dependencies and is not imported",
                node_ids=(node.id,),
            ))
    return issues


def duplicate_pattern_issues(graph: DependencyGraph) -> List[Issue]:
    groups: Dict[Tuple[str, ...], List[str]] = {}
    for node in graph.scanned_nodes():
        targets = tuple(graph.successor_ids(node.id))
        if targets:
            groups.setdefault(targets, []).append(node.id)

    issues = []
    for targets, members in sorted(groups.items(), key=lambda item: sorted(item[1])):
        if len(members) < 2:
            continue
        members = sorted(members)
        names = ", ".join(graph.display(m) for m in members)
        issues.append(Issue(
            type=DUPLICATE_DEPENDENCY_PATTERN,
            severity=SEVERITY_WARNING,
            message=f"Files share identical dependencies ({len(targets)} targets): {names}",
            node_ids=tuple(members),
        ))
    return issues


def hub_issues(graph: DependencyGraph, metrics: MetricsReport, config: ScanConfig) -> List[Issue]:
    """Scanned files whose fan-out exceeds the very-tight threshold of *config*."""
    threshold = config.coupling_thresholds.very_tight
    hubs = sorted(
        node.id for node in graph.scanned_nodes()
        if metrics.get(node.id).fan_out > threshold
    )
    return [
        Issue(
            type=HIGH_COUPLING_HUB,
            severity=SEVERITY_WARNING,
            message=(
                f"High coupling hub: {graph.display(node_id)} depends on "
                f"{metrics.get(node_id).fan_out} modules (threshold {threshold})"
            ),
            node_ids=(node_id,),
        )
        for node_id in hubs
    ]


def parse_failure_issues(graph: DependencyGraph, parse_failures: Mapping[str, str]) -> List[Issue]:
    return [
        Issue(
            type=PARSE_FAILURE,
            severity=SEVERITY_WARNING,
            message=f"Could not extract facts from {graph.display(path)}: {reason}",
            node_ids=(path,),
        )
        for path, reason in sorted(parse_failures.items())
    ]


def detect(
    graph: DependencyGraph,
    cycles: Union[CycleReport, Sequence[Cycle]],
    metrics: MetricsReport,
    config: Optional[ScanConfig] = None,
    parse_failures: Optional[Mapping[str, str]] = None,
) -> List[Issue]:
    """All issues in a stable order: cycles, isolated files, duplicates, hubs, parse failures."""
    config = config or ScanConfig()
    cycle_list = cycles.cycles if isinstance(cycles, CycleReport) else list(cycles)

    issues: List[Issue] = []
    issues.extend(circular_dependency_issues(graph, cycle_list))
    issues.extend(isolated_file_issues(graph, metrics))
    issues.extend(duplicate_pattern_issues(graph))
    issues.extend(hub_issues(graph, metrics, config))
    issues.extend(parse_failure_issues(graph, parse_failures or {}))

    logger.info("Detected %d issue(s)", len(issues))
    return issues
