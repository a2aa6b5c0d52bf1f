"""Tests for import specifier resolution."""

import pytest

from archgraph_cli.models import ABSOLUTE, ALIAS, EXTERNAL, RELATIVE
from archgraph_cli.resolver import PathResolver, external_node_id, normalize_id

KNOWN = [
    "/p/src/a.js",
    "/p/src/b.ts",
    "/p/src/components/Button.tsx",
    "/p/src/components/index.js",
    "/p/src/utils/format.js",
    "/p/lib/format.js",
    "/p/src/dup.js",
    "/p/src/dup.ts",
]


@pytest.fixture
def resolver() -> PathResolver:
    return PathResolver(
        "/p",
        alias_map={"@": "src", "@components": "src/components", "~": ""},
        known_ids=KNOWN,
    )


@pytest.mark.parametrize("spec,kind", [
    ("./a", RELATIVE),
    ("../x", RELATIVE),
    (".", RELATIVE),
    ("/src/a", ABSOLUTE),
    ("@/utils/format", ALIAS),
    ("@components/Button", ALIAS),
    ("~/lib/format", ALIAS),
    ("react", EXTERNAL),
    ("@babel/core", EXTERNAL),
    ("@", ALIAS),
])
def test_classify(resolver: PathResolver, spec, kind):
    """Test specifier classification."""
    assert resolver.classify(spec) == kind


def test_relative_with_extension_inference(resolver: PathResolver):
    """Test extension-less relative imports."""
    res = resolver.resolve("./b", "/p/src/a.js")
    assert res.node_id == "/p/src/b.ts"
    assert res.kind == RELATIVE
    assert res.low_confidence is False
    assert res.target_id == "/p/src/b.ts"


def test_relative_exact_and_parent(resolver: PathResolver):
    """Test exact and parent-directory relative imports."""
    assert resolver.resolve("./a.js", "/p/src/b.ts").node_id == "/p/src/a.js"
    assert resolver.resolve("../utils/format", "/p/src/components/Button.tsx").node_id == "/p/src/utils/format.js"


def test_directory_import_resolves_index(resolver: PathResolver):
    """Test directory imports resolve to index files."""
    res = resolver.resolve("./components", "/p/src/a.js")
    assert res.node_id == "/p/src/components/index.js"
    assert not res.low_confidence


def test_absolute_resolves_against_root(resolver: PathResolver):
    """Test absolute specifiers resolve against the root."""
    res = resolver.resolve("/lib/format", "/p/src/a.js")
    assert res.node_id == "/p/lib/format.js"
    assert res.kind == ABSOLUTE


def test_alias_longest_prefix_wins(resolver: PathResolver):
    """Test the longest alias prefix wins."""
    res = resolver.resolve("@components/Button", "/p/src/a.js")
    assert res.node_id == "/p/src/components/Button.tsx"
    assert res.kind == ALIAS

    res = resolver.resolve("@/utils/format", "/p/lib/format.js")
    assert res.node_id == "/p/src/utils/format.js"


def test_scoped_package_is_not_an_alias(resolver: PathResolver):
    """Test a scoped package is not an alias."""
    res = resolver.resolve("@babel/core/lib/x", "/p/src/a.js")
    assert res.kind == EXTERNAL
    assert res.node_id == "external:@babel/core"
    assert res.target_id is None


def test_external_package_name():
    """Test external package ids."""
    assert external_node_id("react") == "external:react"
    assert external_node_id("lodash/fp/map") == "external:lodash"
    assert external_node_id("@scope/pkg/sub") == "external:@scope/pkg"
    assert external_node_id("@scope") == "external:@scope"


def test_ambiguous_stem_is_low_confidence(resolver: PathResolver):
    """Test ambiguous matches are low confidence."""
    res = resolver.resolve("./dup", "/p/src/a.js")
    assert res.node_id == "/p/src/dup.js"
    assert res.low_confidence is True


def test_basename_suffix_fallback(resolver: PathResolver):
    """Test the basename fallback."""
    res = resolver.resolve("./format", "/p/src/components/Button.tsx")
    # first match over sorted candidates
    assert res.node_id == "/p/lib/format.js"
    assert res.low_confidence is True


def test_unknown_target_still_yields_node(resolver: PathResolver):
    """Test an unknown target still yields a node id."""
    res = resolver.resolve("./missing/thing", "/p/src/a.js")
    assert res.node_id == "/p/src/missing/thing"
    assert res.kind == RELATIVE
    assert res.low_confidence is True


def test_resolution_is_filesystem_free(temp_dir):
    """Test resolution does not touch the filesystem."""
    resolver = PathResolver(str(temp_dir), known_ids=[])
    res = resolver.resolve("./nope", str(temp_dir / "a.js"))
    assert res.node_id == normalize_id(str(temp_dir / "nope"))


def test_normalize_id():
    """Test node id normalization."""
    assert normalize_id("/p/src/../lib/./x.js") == "/p/lib/x.js"
    assert normalize_id("p\\src\\a.js") == "/p/src/a.js"
