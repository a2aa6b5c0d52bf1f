"""Scan orchestration: discovery, parallel fact extraction and the analysis pipeline.

One :class:`Scanner.scan` call owns a fresh :class:`ScanContext` and graph;
nothing is shared between scans. Fact extraction runs on a thread pool, graph
assembly and the analysis passes run on the calling thread afterwards.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional, Tuple

from .config import ScanConfig, excluded
from .cycles import CycleDetector
from .errors import ParseFailure, ScanCancelled, ScanFailure
from .graph import DependencyGraph, GraphBuilder
from .issues import detect
from .metrics import MetricsEngine
from .models import FileFacts, ScanResult
from .parser import FactExtractor
from .resolver import PathResolver, normalize_id

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class CancellationToken:
    """Thread-safe flag checked at file boundaries and at the start of each phase."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ScanCancelled("scan cancelled")


@dataclass
class ScanContext:
    """Per-scan state threaded through every phase."""

    root: str
    config: ScanConfig
    token: CancellationToken
    files: List[str] = field(default_factory=list)
    facts: Dict[str, FileFacts] = field(default_factory=dict)
    parse_failures: Dict[str, str] = field(default_factory=dict)
    low_confidence: List[Tuple[str, str]] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# File discovery
# ---------------------------------------------------------------------------

def discover_files(root: Path, config: ScanConfig, skipped: Optional[List[str]] = None) -> List[Path]:
    """Sorted source files under *root*, honoring excludes, extensions and the size cutoff."""
    extensions = {e.lower() for e in config.extensions}
    found: List[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        rel_dir = Path(dirpath).relative_to(root).parts
        dirnames[:] = sorted(
            d for d in dirnames if not excluded(list(rel_dir) + [d], config.exclude_patterns)
        )
        for name in sorted(filenames):
            path = Path(dirpath) / name
            if path.suffix.lower() not in extensions:
                continue
            if excluded(list(rel_dir) + [name], config.exclude_patterns):
                continue
            try:
                size = path.stat().st_size
            except OSError as exc:
                logger.warning("Cannot stat %s: %s", path, exc)
                continue
            if size > config.max_file_size:
                logger.debug("Skipping %s (%d bytes > %d)", path, size, config.max_file_size)
                if skipped is not None:
                    skipped.append(normalize_id(path.as_posix()))
                continue
            found.append(path)
    return sorted(found)


def read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ParseFailure(normalize_id(path.as_posix()), f"not valid UTF-8 ({exc.reason})") from exc
    except OSError as exc:
        raise ParseFailure(normalize_id(path.as_posix()), str(exc)) from exc


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class Scanner:
    """Run the full pipeline: extract, resolve, build, detect cycles, metrics and issues."""

    def __init__(
        self,
        config: Optional[ScanConfig] = None,
        extractor: Optional[FactExtractor] = None,
        token: Optional[CancellationToken] = None,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.config = config or ScanConfig()
        self.extractor = extractor or FactExtractor()
        self.token = token or CancellationToken()
        self.progress = progress

    def scan(self, root: Path) -> ScanResult:
        """Scan every source file below *root*."""
        root = Path(root).resolve()
        ctx = self._context(root.as_posix())
        try:
            self.token.raise_if_cancelled()
            paths = discover_files(root, self.config, ctx.skipped)
            jobs = [(normalize_id(p.as_posix()), _file_loader(p)) for p in paths]
            return self._run(ctx, jobs)
        except ScanCancelled:
            logger.info("Scan of %s cancelled", root)
            return ScanResult(root=ctx.root, cancelled=True)

    def scan_sources(self, root: str, sources: Mapping[str, str]) -> ScanResult:
        """Scan already-read files given as ``{absolute path: text}``."""
        ctx = self._context(root)
        jobs = []
        for path, text in sorted(sources.items()):
            node_id = normalize_id(path)
            if len(text.encode("utf-8")) > self.config.max_file_size:
                ctx.skipped.append(node_id)
                continue
            jobs.append((node_id, _text_loader(text)))
        try:
            return self._run(ctx, jobs)
        except ScanCancelled:
            logger.info("Scan of %s cancelled", root)
            return ScanResult(root=ctx.root, cancelled=True)

    def _context(self, root: str) -> ScanContext:
        return ScanContext(root=normalize_id(root), config=self.config, token=self.token)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _run(self, ctx: ScanContext, jobs: List[Tuple[str, Callable[[], str]]]) -> ScanResult:
        started = time.perf_counter()
        try:
            ctx.files = [node_id for node_id, _ in jobs]
            logger.info("Extracting facts from %d file(s) with %d worker(s)", len(jobs), self.config.max_workers)
            self._extract_all(ctx, jobs)

            self.token.raise_if_cancelled()
            self._resolve_imports(ctx)

            self.token.raise_if_cancelled()
            graph = self._assemble(ctx)

            cycles = CycleDetector(
                budget=self.config.cycle_budget,
                edge_kinds=self.config.cycle_edge_kinds,
                token=self.token,
            ).find_cycles(graph)
            metrics = MetricsEngine(self.config, self.token).compute(graph)

            self.token.raise_if_cancelled()
            issues = detect(graph, cycles, metrics, self.config, ctx.parse_failures)
        except MemoryError as exc:
            raise ScanFailure(f"Out of memory while scanning {ctx.root}") from exc

        logger.info("Scan of %s finished in %.2fs", ctx.root, time.perf_counter() - started)
        return ScanResult(
            root=ctx.root,
            graph=graph,
            cycles=cycles,
            metrics=metrics,
            issues=issues,
            parse_failures=dict(ctx.parse_failures),
            low_confidence=list(ctx.low_confidence),
            skipped=sorted(ctx.skipped),
        )

    def _extract_one(self, node_id: str, load: Callable[[], str]) -> Tuple[str, Optional[FileFacts], str]:
        self.token.raise_if_cancelled()
        try:
            facts = self.extractor.extract(node_id, load())
        except ParseFailure as exc:
            return node_id, None, exc.reason
        return node_id, facts, ""

    def _extract_all(self, ctx: ScanContext, jobs: List[Tuple[str, Callable[[], str]]]) -> None:
        total = len(jobs)
        done = 0
        with ThreadPoolExecutor(max_workers=max(1, self.config.max_workers)) as executor:
            futures: Dict[Future, str] = {
                executor.submit(self._extract_one, node_id, load): node_id
                for node_id, load in jobs
            }
            try:
                for future in as_completed(futures):
                    node_id, facts, reason = self._collect(future, futures[future])
                    if facts is not None:
                        ctx.facts[node_id] = facts
                    else:
                        logger.warning("Failed to parse %s: %s", node_id, reason)
                        ctx.parse_failures[node_id] = reason
                    done += 1
                    if self.progress is not None:
                        self.progress(done, total)
                    self.token.raise_if_cancelled()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise

    @staticmethod
    def _collect(future: Future, node_id: str) -> Tuple[str, Optional[FileFacts], str]:
        try:
            return future.result()
        except (ScanCancelled, MemoryError):
            raise
        except Exception as exc:
            raise ScanFailure(f"Worker crashed on {node_id}: {exc}") from exc

    def _resolve_imports(self, ctx: ScanContext) -> None:
        resolver = PathResolver(
            ctx.root,
            alias_map=self.config.alias_map,
            known_ids=ctx.facts.keys(),
            extensions=self.config.extensions,
        )
        for node_id in sorted(ctx.facts):
            facts = ctx.facts[node_id]
            refs = []
            for ref in facts.imports:
                res = resolver.resolve(ref.raw_specifier, node_id)
                if res.low_confidence:
                    ctx.low_confidence.append((node_id, ref.raw_specifier))
                refs.append(replace(
                    ref,
                    kind=res.kind,
                    resolved_target_id=res.target_id,
                    low_confidence=res.low_confidence,
                ))
            ctx.facts[node_id] = replace(facts, imports=tuple(refs))

    def _assemble(self, ctx: ScanContext) -> DependencyGraph:
        builder = GraphBuilder(root=ctx.root, alias_map=self.config.alias_map)
        for node_id in sorted(ctx.facts):
            builder.add_fact(ctx.facts[node_id])
        return builder.build()


def _file_loader(path: Path) -> Callable[[], str]:
    return lambda: read_source(path)


def _text_loader(text: str) -> Callable[[], str]:
    return lambda: text


def scan(root: Path, config: Optional[ScanConfig] = None, token: Optional[CancellationToken] = None) -> ScanResult:
    return Scanner(config=config, token=token).scan(root)
