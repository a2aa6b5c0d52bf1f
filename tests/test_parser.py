"""Tests for per-file fact extraction."""

import pytest

from archgraph_cli.errors import ParseFailure
from archgraph_cli.parser import (
    AnalyzerKind,
    FactExtractor,
    GenericFacts,
    LexicalAnalyzer,
    PrimaryFacts,
    TreeSitterAnalyzer,
    analyzer_for,
    detect_language,
    to_file_facts,
)
from archgraph_cli.models import ImportRef, Symbol


@pytest.fixture(scope="module")
def extractor() -> FactExtractor:
    return FactExtractor()


def specifiers(facts):
    return [ref.raw_specifier for ref in facts.imports]


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("path,kind", [
    ("/p/a.js", AnalyzerKind.PRIMARY),
    ("/p/a.jsx", AnalyzerKind.PRIMARY),
    ("/p/a.ts", AnalyzerKind.PRIMARY),
    ("/p/a.tsx", AnalyzerKind.PRIMARY),
    ("/p/a.py", AnalyzerKind.GENERIC),
    ("/p/a.go", AnalyzerKind.GENERIC),
    ("/p/README", AnalyzerKind.GENERIC),
])
def test_analyzer_for_extension(path, kind):
    """Test analyzer dispatch by extension."""
    assert analyzer_for(path) is kind


def test_detect_language():
    """Test language detection."""
    assert detect_language("/p/x.TSX") == "tsx"
    assert detect_language("/p/x.rb") == "ruby"
    assert detect_language("/p/x.unknown") == "generic"


# ---------------------------------------------------------------------------
# Primary analyzer
# ---------------------------------------------------------------------------

def test_es_imports_and_reexports(extractor: FactExtractor):
    """Test ES imports and re-exports."""
    source = (
        "import React from 'react';\n"
        "import { b } from './b';\n"
        "export { c } from '../c';\n"
        "export * from './all';\n"
    )
    facts = extractor.extract("/p/src/a.js", source)
    assert specifiers(facts) == ["react", "./b", "../c", "./all"]
    assert [ref.line for ref in facts.imports] == [1, 2, 3, 4]
    assert not any(ref.is_dynamic for ref in facts.imports)


def test_dynamic_import_and_require(extractor: FactExtractor):
    """Test dynamic import() and require()."""
    source = (
        "const fs = require('fs');\n"
        "async function load() {\n"
        "  const mod = await import('./lazy');\n"
        "  return mod;\n"
        "}\n"
        "const skipped = require(name);\n"
    )
    facts = extractor.extract("/p/a.js", source)
    refs = {ref.raw_specifier: ref for ref in facts.imports}
    assert set(refs) == {"fs", "./lazy"}
    assert refs["./lazy"].is_dynamic is True
    assert refs["fs"].is_dynamic is False


def test_exports(extractor: FactExtractor):
    """Test export extraction."""
    source = (
        "export function one() {}\n"
        "export class Two {}\n"
        "export const three = 3, four = 4;\n"
        "const five = 5;\n"
        "export { five as renamed };\n"
        "export default function main() {}\n"
    )
    facts = extractor.extract("/p/a.js", source)
    by_name = {e.name: e for e in facts.exports}
    assert by_name["one"].export_type == "function"
    assert by_name["Two"].export_type == "class"
    assert {"three", "four", "renamed", "main"} <= set(by_name)
    assert by_name["main"].is_default is True


def test_functions_and_variables(extractor: FactExtractor):
    """Test function and variable extraction."""
    source = (
        "function outer(a, b) {\n"
        "  const inner = (y) => y + 1;\n"
        "  return inner(a) + b;\n"
        "}\n"
        "class Box { open() { return 1; } }\n"
    )
    facts = extractor.extract("/p/a.js", source)
    names = {f.name for f in facts.functions}
    assert {"outer", "inner", "open"} <= names
    outer = next(f for f in facts.functions if f.name == "outer")
    assert outer.params == 2
    assert outer.line == 1
    assert "inner" in {v.name for v in facts.variables}


def test_complexity_counts_branches(extractor: FactExtractor):
    """Test complexity counts branching constructs."""
    source = (
        "function check(a, b) {\n"
        "  if (a && b) { return 1; }\n"
        "  for (let i = 0; i < 3; i++) {\n"
        "    while (b) { b--; }\n"
        "  }\n"
        "  try { a(); } catch (e) { return 0; }\n"
        "  return a ? 2 : 3;\n"
        "}\n"
    )
    facts = extractor.extract("/p/a.js", source)
    # 1 + if + && + for + while + catch + ternary
    assert facts.complexity == 7


def test_complexity_excludes_nested_functions(extractor: FactExtractor):
    """Test nested functions are counted separately."""
    source = (
        "function outer(x) {\n"
        "  const inner = (y) => { if (y) { return 1; } return 0; };\n"
        "  if (x) { return inner(x); }\n"
        "  return 0;\n"
        "}\n"
    )
    facts = extractor.extract("/p/a.js", source)
    # outer: 1 + if, inner: 1 + if
    assert facts.complexity == 4


def test_switch_cases_and_logical_or(extractor: FactExtractor):
    """Test switch cases and logical operators."""
    source = (
        "function pick(k) {\n"
        "  switch (k) {\n"
        "    case 'a': return 1;\n"
        "    case 'b': return 2;\n"
        "    default: return k || 0;\n"
        "  }\n"
        "}\n"
    )
    facts = extractor.extract("/p/a.js", source)
    assert facts.complexity == 4


def test_typescript_and_tsx(extractor: FactExtractor):
    """Test TypeScript and TSX parsing."""
    ts = (
        "import type { Props } from './types';\n"
        "export interface Shape { size: number }\n"
        "export function area(s: Shape): number { return s.size > 0 ? s.size : 0; }\n"
    )
    facts = extractor.extract("/p/shape.ts", ts)
    assert facts.language == "typescript"
    assert specifiers(facts) == ["./types"]
    assert {e.name for e in facts.exports} >= {"Shape", "area"}
    assert facts.complexity == 2

    tsx = (
        "import { Button } from '@/components/Button';\n"
        "export const Page = () => <Button label=\"x\" />;\n"
    )
    facts = extractor.extract("/p/Page.tsx", tsx)
    assert facts.language == "tsx"
    assert specifiers(facts) == ["@/components/Button"]


def test_syntax_errors_still_yield_facts(extractor: FactExtractor):
    """Test a file with syntax errors still yields facts."""
    source = "import { a } from './a';\nfunction broken( {\n"
    facts = extractor.extract("/p/broken.js", source)
    assert "./a" in specifiers(facts)


def test_line_and_size_counts(extractor: FactExtractor):
    """Test line and byte counts."""
    facts = extractor.extract("/p/a.js", "const a = 'é';\nconst b = 2;\n")
    assert facts.lines == 3
    assert facts.size == len("const a = 'é';\nconst b = 2;\n".encode("utf-8"))


def test_missing_grammar_is_parse_failure():
    """Test a missing grammar raises ParseFailure."""
    analyzer = TreeSitterAnalyzer()
    analyzer._languages.pop("tsx", None)
    with pytest.raises(ParseFailure):
        analyzer.analyze("/p/a.tsx", "const a = 1;")


# ---------------------------------------------------------------------------
# Generic analyzer
# ---------------------------------------------------------------------------

def test_python_imports_map_to_paths():
    """Test Python imports map to paths."""
    source = (
        "import os.path\n"
        "from .models import User\n"
        "from ..core.db import session\n"
        "\n"
        "def handler(request):\n"
        "    if request and request.ok:\n"
        "        return 1\n"
        "    return 0\n"
        "\n"
        "class View:\n"
        "    pass\n"
    )
    facts = LexicalAnalyzer().analyze("/p/app/views.py", source)
    assert specifiers(facts) == ["os/path", "./models", "../core/db"]
    assert [f.name for f in facts.functions] == ["handler"]
    assert [c.name for c in facts.classes] == ["View"]
    # 1 + if + and
    assert facts.complexity == 3


def test_go_import_block():
    """Test Go import blocks."""
    source = (
        "package main\n"
        "\n"
        "import (\n"
        "    \"fmt\"\n"
        "    log \"github.com/sirupsen/logrus\"\n"
        ")\n"
        "import \"os\"\n"
        "\n"
        "func main() {\n"
        "    fmt.Println(\"hi\")\n"
        "}\n"
    )
    facts = LexicalAnalyzer().analyze("/p/main.go", source)
    assert specifiers(facts) == ["fmt", "github.com/sirupsen/logrus", "os"]
    assert [f.name for f in facts.functions] == ["main"]


def test_rust_module_paths():
    """Test Rust module paths."""
    source = (
        "use std::collections::HashMap;\n"
        "use self::parser::Token;\n"
        "use super::config;\n"
        "use crate::graph::Node;\n"
        "mod lexer;\n"
    )
    facts = LexicalAnalyzer().analyze("/p/src/lib.rs", source)
    assert specifiers(facts) == ["std", "./parser", "../config", "/src/graph", "./lexer"]


def test_local_includes_and_relative_requires():
    """Test local includes and relative requires."""
    c_facts = LexicalAnalyzer().analyze("/p/main.c", '#include <stdio.h>\n#include "util/str.h"\n')
    assert specifiers(c_facts) == ["stdio.h", "./util/str.h"]

    rb = "require 'json'\nrequire_relative 'lib/helper'\n"
    rb_facts = LexicalAnalyzer().analyze("/p/app.rb", rb)
    assert specifiers(rb_facts) == ["json", "./lib/helper"]


def test_unknown_extension_uses_line_estimate():
    """Test the line-based estimate for unknown files."""
    facts = LexicalAnalyzer().analyze("/p/notes.xyz", "x\n" * 260)
    assert facts.language == "generic"
    assert facts.imports == []
    assert facts.complexity == 5


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------

def test_to_file_facts_primary():
    """Test mapping primary facts."""
    analysis = PrimaryFacts(
        path="/p/a.js",
        language="javascript",
        lines=4,
        size=40,
        imports=[ImportRef(raw_specifier="./b")],
        functions=[Symbol("f"), Symbol("g")],
        function_complexity=[2, 3],
    )
    facts = to_file_facts(analysis)
    assert facts.id == "/p/a.js"
    assert facts.complexity == 5
    assert facts.imports == (ImportRef(raw_specifier="./b"),)


def test_to_file_facts_generic_merges_classes():
    """Test mapping generic facts."""
    analysis = GenericFacts(
        path="/p/a.py",
        language="python",
        lines=2,
        size=10,
        functions=[Symbol("f")],
        classes=[Symbol("C")],
        complexity=3,
    )
    facts = to_file_facts(analysis)
    assert [s.name for s in facts.functions] == ["f", "C"]
    assert facts.exports == ()
    assert facts.complexity == 3


def test_to_file_facts_rejects_unknown():
    """Test mapping rejects unknown analysis types."""
    with pytest.raises(TypeError):
        to_file_facts(object())
