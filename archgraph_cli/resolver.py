"""Import specifier resolution.

Turns the raw specifier of an import (``./b``, ``/src/x``, ``@/utils/fmt``,
``react``) into the canonical node id used by the graph.  Resolution never
touches the filesystem: candidates are matched against the set of node ids
known to the scan, and anything unmatched still yields an id so the edge is
recorded.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import DEFAULT_EXTENSIONS
from .models import ABSOLUTE, ALIAS, EXTERNAL, EXTERNAL_PREFIX, RELATIVE

logger = logging.getLogger(__name__)

INDEX_STEMS = ("index", "__init__", "mod")


@dataclass(frozen=True)
class Resolution:
    node_id: str
    kind: str
    low_confidence: bool = False

    @property
    def target_id(self) -> Optional[str]:
        """Resolved target inside the scanned tree; ``None`` for external packages."""
        return None if self.kind == EXTERNAL else self.node_id


def normalize_id(path: str) -> str:
    """Canonical node id for a filesystem path: absolute, posix separators, no dot segments."""
    path = path.replace("\\", "/")
    if not path.startswith("/") and not (len(path) > 1 and path[1] == ":"):
        path = "/" + path
    return posixpath.normpath(path)


def external_node_id(specifier: str) -> str:
    """``external:<package>`` for a bare specifier; scoped packages keep ``@scope/name``."""
    parts = [p for p in specifier.split("/") if p]
    if not parts:
        return EXTERNAL_PREFIX + (specifier or "unknown")
    if parts[0].startswith("@") and len(parts) > 1:
        return f"{EXTERNAL_PREFIX}{parts[0]}/{parts[1]}"
    return EXTERNAL_PREFIX + parts[0]


def _strip_extension(path: str, extensions: Sequence[str]) -> str:
    root, ext = posixpath.splitext(path)
    return root if ext.lower() in extensions else path


class PathResolver:
    """Resolve specifiers relative to a scan root, an alias table and the known node ids."""

    def __init__(
        self,
        root: str,
        alias_map: Optional[Mapping[str, str]] = None,
        known_ids: Iterable[str] = (),
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
    ) -> None:
        self.root = normalize_id(root)
        self.extensions = tuple(e.lower() for e in extensions)
        # Longest prefix first so "@components" wins over "@"
        self.aliases: List[Tuple[str, str]] = sorted(
            (alias_map or {}).items(), key=lambda item: (-len(item[0]), item[0])
        )
        self._known: set = set()
        self._by_stem: Dict[str, List[str]] = {}
        self._by_basename: Dict[str, List[str]] = {}
        for node_id in sorted(known_ids):
            self.add_known(node_id)

    def add_known(self, node_id: str) -> None:
        if node_id in self._known:
            return
        self._known.add(node_id)
        stem = _strip_extension(node_id, self.extensions)
        self._by_stem.setdefault(stem, []).append(node_id)
        name = posixpath.basename(stem)
        if name in INDEX_STEMS:
            self._by_stem.setdefault(posixpath.dirname(stem), []).append(node_id)
        self._by_basename.setdefault(name, []).append(node_id)

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def match_alias(self, specifier: str) -> Optional[Tuple[str, str]]:
        for alias, target in self.aliases:
            if specifier == alias or specifier.startswith(alias + "/"):
                return alias, target
        return None

    def classify(self, specifier: str) -> str:
        if specifier in (".", "..") or specifier.startswith(("./", "../")):
            return RELATIVE
        if specifier.startswith("/"):
            return ABSOLUTE
        if self.match_alias(specifier) is not None:
            return ALIAS
        return EXTERNAL

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def resolve(self, specifier: str, from_file: str) -> Resolution:
        kind = self.classify(specifier)
        if kind == RELATIVE:
            base = posixpath.dirname(normalize_id(from_file))
            candidate = posixpath.normpath(posixpath.join(base, specifier))
        elif kind == ABSOLUTE:
            candidate = posixpath.normpath(posixpath.join(self.root, specifier.lstrip("/")))
        elif kind == ALIAS:
            alias, target = self.match_alias(specifier)
            rest = specifier[len(alias):].lstrip("/")
            candidate = posixpath.normpath(posixpath.join(self.root, target, rest))
        else:
            return Resolution(external_node_id(specifier), EXTERNAL)

        node_id, low_confidence = self._match(candidate)
        if low_confidence:
            logger.debug("Low-confidence resolution of %r from %s -> %s", specifier, from_file, node_id)
        return Resolution(node_id, kind, low_confidence)

    def _match(self, candidate: str) -> Tuple[str, bool]:
        """Find the known node for *candidate*; ``(id, low_confidence)``.

        Exact path, then extension-less / index-file equality, then a
        basename-suffix search. Zero or several matches are first-match-wins
        over sorted candidates and flagged as low confidence.
        """
        if candidate in self._known:
            return candidate, False

        stem_matches = self._by_stem.get(_strip_extension(candidate, self.extensions), [])
        if stem_matches:
            return stem_matches[0], len(stem_matches) > 1

        name = posixpath.basename(_strip_extension(candidate, self.extensions))
        suffix_matches = self._by_basename.get(name, [])
        if suffix_matches:
            return suffix_matches[0], True

        # Unknown target; the builder creates the node on demand.
        return candidate, True
