"""Configuration manager for archgraph scans using TOML files."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import toml

from . import config
from .config import ComplexityThresholds, CouplingThresholds, ScanConfig

logger = logging.getLogger(__name__)


def find_config_file(root: Optional[Path] = None, explicit: Optional[Path] = None) -> Optional[Path]:
    """Locate the config file to use.

    Lookup order: *explicit* path, ``<root>/.archgraph.toml``, then the
    user-level ``$ARCHGRAPH_HOME/config.toml``.
    """
    if explicit is not None:
        return explicit
    if root is not None:
        candidate = root / config.PROJECT_CONFIG_NAME
        if candidate.exists():
            return candidate
    if config.USER_CONFIG_FILE.exists():
        return config.USER_CONFIG_FILE
    return None


def load_full_config(path: Path) -> Dict[str, Any]:
    """Load the entire TOML document, or an empty dict when unreadable."""
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read config %s: %s", path, exc)
        return {}


def _section(data: Any, key: str) -> Dict[str, Any]:
    value = data.get(key, {}) if isinstance(data, dict) else {}
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("Ignoring config section [%s]: expected a table, got %r", key, value)
        return {}
    return value


def _int(section: Dict[str, Any], key: str, default: int) -> int:
    if key not in section:
        return default
    try:
        return int(section[key])
    except (TypeError, ValueError):
        logger.warning("Invalid integer for %s = %r; using default %d", key, section[key], default)
        return default


def _strings(section: Dict[str, Any], key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    value = section.get(key, default)
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return tuple(value)
    logger.warning("Invalid list for %s = %r; using default", key, value)
    return default


def config_from_dict(data: Dict[str, Any]) -> ScanConfig:
    """Build a :class:`ScanConfig` from the TOML sections, keeping defaults for gaps.

    Values of the wrong type are logged and replaced by their default.
    """
    defaults = ScanConfig()
    scan = _section(data, "scan")
    thresholds = _section(data, "thresholds")
    coupling = _section(thresholds, "coupling")
    complexity = _section(thresholds, "complexity")

    alias_map = dict(defaults.alias_map)
    if "aliases" in data:
        alias_map = {str(k): str(v) for k, v in _section(data, "aliases").items()}

    return ScanConfig(
        max_file_size=_int(scan, "max_file_size", defaults.max_file_size),
        exclude_patterns=_strings(scan, "exclude_patterns", defaults.exclude_patterns),
        alias_map=alias_map,
        coupling_thresholds=CouplingThresholds(
            loose=_int(coupling, "loose", defaults.coupling_thresholds.loose),
            moderate=_int(coupling, "moderate", defaults.coupling_thresholds.moderate),
            very_tight=_int(coupling, "very_tight", defaults.coupling_thresholds.very_tight),
        ),
        complexity_thresholds=ComplexityThresholds(
            low=_int(complexity, "low", defaults.complexity_thresholds.low),
            medium=_int(complexity, "medium", defaults.complexity_thresholds.medium),
            high=_int(complexity, "high", defaults.complexity_thresholds.high),
        ),
        max_workers=max(1, _int(scan, "max_workers", defaults.max_workers)),
        cycle_budget=_int(scan, "cycle_budget", defaults.cycle_budget),
        extensions=_strings(scan, "extensions", defaults.extensions),
    )


def load_scan_config(root: Optional[Path] = None, path: Optional[Path] = None) -> ScanConfig:
    """Load scan configuration; any missing file or section falls back to defaults."""
    found = find_config_file(root, path)
    if found is None:
        return ScanConfig()
    logger.debug("Loading scan config from %s", found)
    return config_from_dict(load_full_config(found))


def save_scan_config(scan_config: ScanConfig, path: Path) -> bool:
    """Write *scan_config* to *path*, preserving unrelated sections in the file."""
    document = load_full_config(path)
    document.update(scan_config.to_dict())
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            toml.dump(document, f)
        return True
    except OSError as exc:
        logger.warning("Could not write config %s: %s", path, exc)
        return False
