"""Core data models shared by extraction, graph assembly, analysis and export."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

if TYPE_CHECKING:
    from .graph import DependencyGraph

# Import kinds
RELATIVE = "relative"
ABSOLUTE = "absolute"
ALIAS = "alias"
EXTERNAL = "external"

EXTERNAL_PREFIX = "external:"

# Issue types
CIRCULAR_DEPENDENCY = "circular_dependency"
ISOLATED_FILE = "isolated_file"
DUPLICATE_DEPENDENCY_PATTERN = "duplicate_dependency_pattern"
HIGH_COUPLING_HUB = "high_coupling_hub"
PARSE_FAILURE = "parse_failure"

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


def is_external_id(node_id: str) -> bool:
    return node_id.startswith(EXTERNAL_PREFIX)


@dataclass(frozen=True)
class ImportRef:
    raw_specifier: str
    # kind, resolved_target_id and low_confidence are filled in by the resolver
    kind: str = ""
    resolved_target_id: Optional[str] = None
    is_dynamic: bool = False
    line: int = 0
    low_confidence: bool = False


@dataclass(frozen=True)
class ExportRef:
    name: str
    export_type: str = "variable"
    is_default: bool = False


@dataclass(frozen=True)
class Symbol:
    name: str
    line: int = 0
    params: int = 0


@dataclass(frozen=True)
class FileFacts:
    """Structural facts extracted from one source file during one scan."""

    id: str
    language: str
    lines: int = 0
    size: int = 0
    complexity: int = 0
    imports: Tuple[ImportRef, ...] = ()
    exports: Tuple[ExportRef, ...] = ()
    functions: Tuple[Symbol, ...] = ()
    variables: Tuple[Symbol, ...] = ()


@dataclass
class GraphNode:
    id: str
    index: int
    language: str = ""
    lines: int = 0
    size: int = 0
    complexity: int = 0
    is_external: bool = False
    scanned: bool = False
    facts: Optional[FileFacts] = None


@dataclass(frozen=True)
class GraphEdge:
    src: str
    dst: str
    kind: str
    specifier: str = ""


@dataclass(frozen=True)
class Cycle:
    """Closed path of node ids; the last node imports the first."""

    nodes: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.nodes)

    def key(self) -> Tuple[str, ...]:
        return tuple(sorted(self.nodes))

    def describe(self) -> str:
        return " → ".join(self.nodes + (self.nodes[0],))


@dataclass
class CycleReport:
    cycles: List[Cycle] = field(default_factory=list)
    truncated: bool = False
    steps: int = 0


@dataclass(frozen=True)
class Issue:
    type: str
    severity: str
    message: str
    node_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "type": self.type,
            "severity": self.severity,
            "message": self.message,
            "nodeIds": list(self.node_ids),
        }


@dataclass
class NodeMetrics:
    node_id: str
    fan_in: int = 0
    fan_out: int = 0
    coupling_score: int = 0
    coupling_level: str = "loose"
    complexity: int = 0
    complexity_bucket: str = "low"
    instability: float = 0.0
    layer: Optional[str] = None
    category: str = "file"


@dataclass
class MetricsReport:
    nodes: Dict[str, NodeMetrics] = field(default_factory=dict)
    hotspots: List[str] = field(default_factory=list)
    hubs: List[str] = field(default_factory=list)
    layer_distribution: Dict[str, Dict[str, float]] = field(default_factory=dict)
    external_usage: Dict[str, List[str]] = field(default_factory=dict)
    total_files: int = 0
    total_lines: int = 0
    total_dependencies: int = 0

    def get(self, node_id: str) -> NodeMetrics:
        return self.nodes[node_id]


@dataclass
class ScanResult:
    """Outcome of one scan. A cancelled scan carries no graph, metrics or issues."""

    root: str
    graph: Optional["DependencyGraph"] = None
    cycles: Optional[CycleReport] = None
    metrics: Optional[MetricsReport] = None
    issues: List[Issue] = field(default_factory=list)
    parse_failures: Dict[str, str] = field(default_factory=dict)
    low_confidence: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.cancelled and self.graph is not None
