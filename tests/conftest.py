"""Pytest configuration and fixtures for archgraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Iterable, Tuple

import pytest

from archgraph_cli.graph import DependencyGraph, GraphBuilder
from archgraph_cli.models import EXTERNAL, RELATIVE, FileFacts, ImportRef


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project.

    ``a -> b -> c -> a`` form a cycle, ``d`` is isolated and ``e``/``f``
    both depend on exactly ``g`` and ``h``.
    """
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def write_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` under a fresh project root."""

    def _write(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        for rel, text in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return root

    return _write


def make_facts(node_id: str, targets: Iterable[str] = (), complexity: int = 1, lines: int = 10) -> FileFacts:
    """FileFacts whose imports are already resolved.

    Targets starting with ``/`` are internal relative imports, anything else
    is an external package.
    """
    refs = []
    for target in targets:
        if target.startswith("/"):
            refs.append(ImportRef(raw_specifier=target, kind=RELATIVE, resolved_target_id=target))
        else:
            refs.append(ImportRef(raw_specifier=target, kind=EXTERNAL))
    return FileFacts(
        id=node_id,
        language="javascript",
        lines=lines,
        size=lines * 20,
        complexity=complexity,
        imports=tuple(refs),
    )


def build_graph(edges: Dict[str, Tuple[str, ...]], root: str = "/p", **complexity: int) -> DependencyGraph:
    """Graph from ``{file: (targets...)}`` with optional per-file complexity keyed by basename."""
    builder = GraphBuilder(root=root)
    for node_id, targets in edges.items():
        name = node_id.rsplit("/", 1)[-1].split(".")[0]
        builder.add_fact(make_facts(node_id, targets, complexity=complexity.get(name, 1)))
    return builder.build()


@pytest.fixture
def facts_factory() -> Callable[..., FileFacts]:
    return make_facts


@pytest.fixture
def graph_factory() -> Callable[..., DependencyGraph]:
    return build_graph


@pytest.fixture
def scenario_graph() -> DependencyGraph:
    """The canonical scenario: a cycle, one isolated file and a duplicate pattern."""
    return build_graph({
        "/p/a.js": ("/p/b.js",),
        "/p/b.js": ("/p/c.js",),
        "/p/c.js": ("/p/a.js",),
        "/p/d.js": (),
        "/p/e.js": ("/p/g.js", "/p/h.js"),
        "/p/f.js": ("/p/g.js", "/p/h.js"),
        "/p/g.js": (),
        "/p/h.js": (),
    })

