"""Scan configuration defaults and local archgraph paths."""

from __future__ import annotations

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Tuple

BASE_DIR = Path(os.environ.get("ARCHGRAPH_HOME", str(Path.home() / ".archgraph"))).expanduser()
USER_CONFIG_FILE = BASE_DIR / "config.toml"
PROJECT_CONFIG_NAME = ".archgraph.toml"

DEFAULT_MAX_FILE_SIZE = 1024 * 1024
DEFAULT_CYCLE_BUDGET = 1_000_000

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "node_modules", "dist", "build", "target", "bin", "__pycache__",
    ".git", ".venv", "venv",
)

DEFAULT_ALIAS_MAP: Dict[str, str] = {
    "@": "src",
    "~": "",
    "@app": "src/app",
    "@components": "src/components",
    "@utils": "src/utils",
    "@types": "src/types",
}

DEFAULT_EXTENSIONS: Tuple[str, ...] = (
    ".js", ".jsx", ".mjs", ".cjs", ".ts", ".tsx",
    ".py", ".go", ".rs", ".java", ".c", ".cc", ".cpp", ".cxx",
    ".cs", ".php", ".rb", ".swift", ".kt", ".kts",
)


def _default_workers() -> int:
    return max(1, min(8, os.cpu_count() or 1))


@dataclass(frozen=True)
class CouplingThresholds:
    """Fan-out bounds: <=loose, <=moderate, <=very_tight ("tight"), above is very tight."""

    loose: int = 2
    moderate: int = 10
    very_tight: int = 20

    def level(self, fan_out: int) -> str:
        if fan_out <= self.loose:
            return "loose"
        if fan_out <= self.moderate:
            return "moderate"
        if fan_out <= self.very_tight:
            return "tight"
        return "very_tight"


@dataclass(frozen=True)
class ComplexityThresholds:
    """Upper bounds of the low, medium and high buckets; above high is critical."""

    low: int = 5
    medium: int = 15
    high: int = 30

    def bucket(self, complexity: int) -> str:
        if complexity <= self.low:
            return "low"
        if complexity <= self.medium:
            return "medium"
        if complexity <= self.high:
            return "high"
        return "critical"


@dataclass(frozen=True)
class ScanConfig:
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    exclude_patterns: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    alias_map: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ALIAS_MAP))
    coupling_thresholds: CouplingThresholds = field(default_factory=CouplingThresholds)
    complexity_thresholds: ComplexityThresholds = field(default_factory=ComplexityThresholds)
    max_workers: int = field(default_factory=_default_workers)
    cycle_budget: int = DEFAULT_CYCLE_BUDGET
    cycle_edge_kinds: FrozenSet[str] = frozenset({"relative", "absolute", "alias"})
    extensions: Tuple[str, ...] = DEFAULT_EXTENSIONS

    def to_dict(self) -> Dict[str, object]:
        return {
            "scan": {
                "max_file_size": self.max_file_size,
                "exclude_patterns": list(self.exclude_patterns),
                "max_workers": self.max_workers,
                "cycle_budget": self.cycle_budget,
                "extensions": list(self.extensions),
            },
            "aliases": dict(self.alias_map),
            "thresholds": {
                "coupling": {
                    "loose": self.coupling_thresholds.loose,
                    "moderate": self.coupling_thresholds.moderate,
                    "very_tight": self.coupling_thresholds.very_tight,
                },
                "complexity": {
                    "low": self.complexity_thresholds.low,
                    "medium": self.complexity_thresholds.medium,
                    "high": self.complexity_thresholds.high,
                },
            },
        }


def excluded(path_parts: List[str], patterns: Tuple[str, ...]) -> bool:
    """Match a root-relative path against exclude patterns.

    Plain names match whole path components (``node_modules`` also covers
    ``node_modules/**``), patterns with a slash match a path fragment and
    patterns with wildcards are matched with :func:`fnmatch.fnmatch` against
    the relative path and each component.
    """
    joined = "/".join(path_parts)
    for pattern in patterns:
        pattern = pattern.removesuffix("/**").strip("/")
        if not pattern:
            continue
        if any(ch in pattern for ch in "*?["):
            if fnmatch.fnmatch(joined, pattern) or any(fnmatch.fnmatch(p, pattern) for p in path_parts):
                return True
        elif "/" in pattern:
            if f"/{pattern}/" in f"/{joined}/":
                return True
        elif pattern in path_parts:
            return True
    return False
