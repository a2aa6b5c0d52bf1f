"""Per-file fact extraction.

Two analyzers produce structural facts for a single source file:

- **Primary** -- Tree-sitter based, for JavaScript / TypeScript / TSX.
  Error-tolerant concrete syntax trees give reliable imports, exports,
  declared symbols and a per-function cyclomatic complexity.
- **Generic** -- a lexical pass (regular expressions and keyword counts)
  for every other supported language.

The analyzer is chosen by file extension (:func:`analyzer_for`) and both
results are mapped onto the common :class:`~archgraph_cli.models.FileFacts`
record by :func:`to_file_facts`.
"""

from __future__ import annotations

import importlib
import logging
import re
import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import Any, Callable, Dict, List, Pattern, Tuple, Union

from .errors import ParseFailure
from .models import ExportRef, FileFacts, ImportRef, Symbol

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".py": "python",
    ".go": "go",
    ".rs": "rust",
    ".java": "java",
    ".c": "cpp",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".h": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".php": "php",
    ".rb": "ruby",
    ".swift": "swift",
    ".kt": "kotlin",
    ".kts": "kotlin",
}

PRIMARY_LANGUAGES = frozenset({"javascript", "typescript", "tsx"})


def detect_language(path: str) -> str:
    return LANGUAGE_MAP.get(PurePosixPath(path).suffix.lower(), "generic")


class AnalyzerKind(Enum):
    PRIMARY = "primary"
    GENERIC = "generic"


def analyzer_for(path: str) -> AnalyzerKind:
    """Pick the analyzer for *path* from its extension."""
    if detect_language(path) in PRIMARY_LANGUAGES:
        return AnalyzerKind.PRIMARY
    return AnalyzerKind.GENERIC


# ===================================================================
# Analyzer results
# ===================================================================

@dataclass
class PrimaryFacts:
    """Syntax-tree facts for a JavaScript-family file."""

    path: str
    language: str
    lines: int
    size: int
    imports: List[ImportRef] = field(default_factory=list)
    exports: List[ExportRef] = field(default_factory=list)
    functions: List[Symbol] = field(default_factory=list)
    variables: List[Symbol] = field(default_factory=list)
    function_complexity: List[int] = field(default_factory=list)
    has_errors: bool = False


@dataclass
class GenericFacts:
    """Lexical facts for any other language."""

    path: str
    language: str
    lines: int
    size: int
    imports: List[ImportRef] = field(default_factory=list)
    functions: List[Symbol] = field(default_factory=list)
    classes: List[Symbol] = field(default_factory=list)
    complexity: int = 0


Analysis = Union[PrimaryFacts, GenericFacts]


def to_file_facts(analysis: Analysis) -> FileFacts:
    """Map either analyzer result onto the shared :class:`FileFacts` shape."""
    if isinstance(analysis, PrimaryFacts):
        return FileFacts(
            id=analysis.path,
            language=analysis.language,
            lines=analysis.lines,
            size=analysis.size,
            complexity=sum(analysis.function_complexity),
            imports=tuple(analysis.imports),
            exports=tuple(analysis.exports),
            functions=tuple(analysis.functions),
            variables=tuple(analysis.variables),
        )
    if isinstance(analysis, GenericFacts):
        return FileFacts(
            id=analysis.path,
            language=analysis.language,
            lines=analysis.lines,
            size=analysis.size,
            complexity=analysis.complexity,
            imports=tuple(analysis.imports),
            exports=(),
            functions=tuple(analysis.functions) + tuple(analysis.classes),
            variables=(),
        )
    raise TypeError(f"Unknown analysis type: {type(analysis).__name__}")


def _count_lines(source: str) -> int:
    return len(source.split("\n"))


def _byte_size(source: str) -> int:
    return len(source.encode("utf-8"))


# ===================================================================
# Tree-sitter analyzer (primary)
# ===================================================================

# Control-flow node types that each add one decision point
_BRANCH_NODES = frozenset({
    "if_statement",
    "for_statement",
    "for_in_statement",
    "while_statement",
    "do_statement",
    "switch_case",
    "catch_clause",
    "ternary_expression",
})

_LOGICAL_OPERATORS = frozenset({"&&", "||"})

_FUNCTION_NODES = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})


class TreeSitterAnalyzer:
    """Primary analyzer built on Tree-sitter grammars.

    Grammars come from the per-language ``tree-sitter-*`` packages.  Parser
    objects are not shared between threads, so each worker thread lazily
    builds its own set from the shared ``Language`` objects.
    """

    # language -> (grammar module, factory function)
    _GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
        "javascript": ("tree_sitter_javascript", "language"),
        "typescript": ("tree_sitter_typescript", "language_typescript"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
    }

    def __init__(self) -> None:
        self._languages: Dict[str, Any] = {}
        self._local = threading.local()
        self._init_languages()

    def _init_languages(self) -> None:
        from tree_sitter import Language

        for lang, (mod_name, factory) in self._GRAMMAR_MODULES.items():
            try:
                mod = importlib.import_module(mod_name)
                self._languages[lang] = Language(getattr(mod, factory)())
                logger.debug("Loaded tree-sitter grammar for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )

    def supports_language(self, language: str) -> bool:
        return language in self._languages

    def _parser(self, language: str) -> Any:
        from tree_sitter import Parser as TSParser

        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        if language not in parsers:
            parsers[language] = TSParser(self._languages[language])
        return parsers[language]

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def analyze(self, path: str, source: str) -> PrimaryFacts:
        language = detect_language(path)
        if not self.supports_language(language):
            raise ParseFailure(path, f"no tree-sitter grammar for {language}")

        tree = self._parser(language).parse(source.encode("utf-8"))
        root = tree.root_node
        facts = PrimaryFacts(
            path=path,
            language=language,
            lines=_count_lines(source),
            size=_byte_size(source),
            has_errors=root.has_error,
        )
        if root.has_error:
            logger.debug("Syntax errors in %s, extracting what parsed", path)

        stack = [root]
        while stack:
            node = stack.pop()
            self._visit(node, facts)
            stack.extend(reversed(node.children))

        facts.imports.sort(key=lambda ref: ref.line)
        return facts

    def _visit(self, node: Any, facts: PrimaryFacts) -> None:
        kind = node.type
        if kind == "import_statement":
            source = node.child_by_field_name("source")
            if source is not None:
                facts.imports.append(ImportRef(
                    raw_specifier=_string_value(source), line=_line(node),
                ))
        elif kind == "export_statement":
            self._process_export(node, facts)
        elif kind == "call_expression":
            self._process_call(node, facts)
        elif kind in _FUNCTION_NODES:
            facts.functions.append(Symbol(
                name=_function_name(node), line=_line(node), params=_param_count(node),
            ))
            facts.function_complexity.append(function_complexity(node))
        elif kind == "variable_declarator":
            name = node.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                facts.variables.append(Symbol(name=_text(name), line=_line(node)))

    # ------------------------------------------------------------------
    # Exports / calls
    # ------------------------------------------------------------------

    @staticmethod
    def _process_export(node: Any, facts: PrimaryFacts) -> None:
        source = node.child_by_field_name("source")
        if source is not None:
            # export { x } from './y'  /  export * from './y'
            facts.imports.append(ImportRef(raw_specifier=_string_value(source), line=_line(node)))

        is_default = any(child.type == "default" for child in node.children)
        declaration = node.child_by_field_name("declaration")

        if declaration is not None:
            name = declaration.child_by_field_name("name")
            if declaration.type in ("lexical_declaration", "variable_declaration"):
                for child in declaration.named_children:
                    if child.type != "variable_declarator":
                        continue
                    var_name = child.child_by_field_name("name")
                    if var_name is not None:
                        facts.exports.append(ExportRef(name=_text(var_name), export_type="variable"))
            elif name is not None:
                if "class" in declaration.type:
                    export_type = "class"
                elif "function" in declaration.type:
                    export_type = "function"
                else:
                    export_type = "type"
                facts.exports.append(ExportRef(
                    name=_text(name), export_type=export_type, is_default=is_default,
                ))
            elif is_default:
                facts.exports.append(ExportRef(name="default", export_type="default", is_default=True))
            return

        if is_default:
            value = node.child_by_field_name("value")
            name = value.child_by_field_name("name") if value is not None else None
            facts.exports.append(ExportRef(
                name=_text(name) if name is not None else "default",
                export_type="default",
                is_default=True,
            ))
            return

        for child in node.named_children:
            if child.type != "export_clause":
                continue
            for spec in child.named_children:
                if spec.type != "export_specifier":
                    continue
                alias = spec.child_by_field_name("alias")
                name = alias if alias is not None else spec.child_by_field_name("name")
                if name is not None:
                    facts.exports.append(ExportRef(name=_text(name), export_type="named"))

    @staticmethod
    def _process_call(node: Any, facts: PrimaryFacts) -> None:
        func = node.child_by_field_name("function")
        if func is None:
            return
        is_dynamic = func.type == "import"
        is_require = func.type == "identifier" and _text(func) == "require"
        if not (is_dynamic or is_require):
            return
        args = node.child_by_field_name("arguments")
        if args is None or not args.named_children:
            return
        first = args.named_children[0]
        # Only literal specifiers; runtime-built paths are not resolvable.
        if first.type != "string":
            return
        facts.imports.append(ImportRef(
            raw_specifier=_string_value(first), is_dynamic=is_dynamic, line=_line(node),
        ))


def function_complexity(func_node: Any) -> int:
    """1 + decision points inside *func_node*, not counting nested functions."""
    complexity = 1
    stack = list(func_node.children)
    while stack:
        node = stack.pop()
        if node.type in _FUNCTION_NODES:
            continue
        if node.type in _BRANCH_NODES:
            complexity += 1
        elif node.type == "binary_expression":
            operator = node.child_by_field_name("operator")
            if operator is not None and _text(operator) in _LOGICAL_OPERATORS:
                complexity += 1
        stack.extend(node.children)
    return complexity


def _text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def _line(node: Any) -> int:
    return node.start_point[0] + 1


def _string_value(node: Any) -> str:
    raw = _text(node)
    if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0]:
        return raw[1:-1]
    return raw


def _function_name(node: Any) -> str:
    name = node.child_by_field_name("name")
    if name is not None:
        return _text(name)
    parent = node.parent
    if parent is not None and parent.type == "variable_declarator":
        declared = parent.child_by_field_name("name")
        if declared is not None:
            return _text(declared)
    return "<arrow>" if node.type == "arrow_function" else "<anonymous>"


def _param_count(node: Any) -> int:
    params = node.child_by_field_name("parameters")
    if params is not None:
        return params.named_child_count
    return 1 if node.child_by_field_name("parameter") is not None else 0


# ===================================================================
# Lexical analyzer (generic)
# ===================================================================

def _kw(*words: str) -> Tuple[Pattern[str], ...]:
    return tuple(re.compile(rf"\b{w}\b") for w in words)


_LOGICAL = (re.compile(r"&&"), re.compile(r"\|\|"))
_TERNARY = (re.compile(r"\?"),)


def _python_specifiers(module: str) -> List[str]:
    dots = len(module) - len(module.lstrip("."))
    rest = module[dots:].replace(".", "/")
    if dots == 0:
        return [rest]
    prefix = "./" if dots == 1 else "../" * (dots - 1)
    return [prefix + rest] if rest else []


def _dotted_specifiers(module: str) -> List[str]:
    return [module.strip().rstrip(".*").replace(".", "/")]


def _rust_specifiers(path: str) -> List[str]:
    parts = [p.strip() for p in path.strip().split("::") if p.strip()]
    if not parts:
        return []
    head, rest = parts[0], parts[1:2]
    if head == "self":
        return ["./" + rest[0]] if rest else []
    if head == "super":
        return ["../" + rest[0]] if rest else []
    if head == "crate":
        return ["/src/" + rest[0]] if rest else []
    return [head]


def _identity(spec: str) -> List[str]:
    spec = spec.strip()
    return [spec] if spec else []


def _local_path(spec: str) -> List[str]:
    """File-relative path such as a quoted ``#include`` or ``require_relative``."""
    spec = spec.strip()
    if not spec:
        return []
    return [spec] if spec.startswith((".", "/")) else ["./" + spec]


def _namespace_specifiers(spec: str) -> List[str]:
    return [spec.strip().lstrip("\\").replace("\\", "/")]


SpecifierMapper = Callable[[str], List[str]]


@dataclass(frozen=True)
class _LexicalRules:
    imports: Tuple[Tuple[Pattern[str], SpecifierMapper], ...]
    functions: Tuple[Pattern[str], ...]
    classes: Tuple[Pattern[str], ...]
    complexity: Tuple[Pattern[str], ...]


_RULES: Dict[str, _LexicalRules] = {
    "python": _LexicalRules(
        imports=(
            (re.compile(r"^\s*from\s+(\.+[\w.]*|[\w.]+)\s+import\s", re.M), _python_specifiers),
            (re.compile(r"^\s*import\s+([\w.]+)", re.M), _python_specifiers),
        ),
        functions=(re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*\(", re.M),),
        classes=(re.compile(r"^\s*class\s+(\w+)", re.M),),
        complexity=_kw("if", "elif", "else", "for", "while", "try", "except", "and", "or"),
    ),
    "go": _LexicalRules(
        imports=(
            (re.compile(r'^\s*import\s+(?:\w+\s+)?"([^"]+)"', re.M), _identity),
            # lines inside an import ( ... ) block
            (re.compile(r'^[ \t]*(?:[\w.]+[ \t]+)?"([^"]+)"[ \t]*$', re.M), _identity),
        ),
        functions=(re.compile(r"func\s+(?:\([^)]*\)\s+)?(\w+)\s*\("),),
        classes=(re.compile(r"type\s+(\w+)\s+(?:struct|interface)"),),
        complexity=_kw("if", "else", "switch", "case", "for", "range", "select", "go") + _LOGICAL,
    ),
    "rust": _LexicalRules(
        imports=(
            (re.compile(r"^\s*(?:pub\s+)?use\s+([^;{]+)", re.M), _rust_specifiers),
            (re.compile(r"^\s*(?:pub\s+)?mod\s+(\w+)\s*;", re.M), lambda name: ["./" + name]),
        ),
        functions=(re.compile(r"fn\s+(\w+)\s*[<(]"),),
        classes=(re.compile(r"(?:struct|trait|enum)\s+(\w+)"),),
        complexity=_kw("if", "else", "match", "for", "while", "loop") + _LOGICAL + _TERNARY,
    ),
    "java": _LexicalRules(
        imports=((re.compile(r"^\s*import\s+(?:static\s+)?([\w.*]+)\s*;", re.M), _dotted_specifiers),),
        functions=(re.compile(
            r"(?:public|private|protected)\s+(?:static\s+)?(?:final\s+)?[\w<>\[\],\s]+?\s+(\w+)\s*\([^)]*\)\s*(?:throws\s+[\w.,\s]+)?\{"
        ),),
        classes=(re.compile(r"(?:class|interface|enum)\s+(\w+)"),),
        complexity=_kw("if", "else", "switch", "case", "for", "while", "do", "try", "catch") + _LOGICAL + _TERNARY,
    ),
    "cpp": _LexicalRules(
        imports=(
            (re.compile(r'#include\s*"([^"]+)"'), _local_path),
            (re.compile(r"#include\s*<([^>]+)>"), _identity),
        ),
        functions=(re.compile(r"^[\w:<>,*&\s]+?\b(\w+)\s*\([^;{)]*\)\s*(?:const\s*)?\{", re.M),),
        classes=(re.compile(r"\b(?:class|struct)\s+(\w+)\s*[:{]"),),
        complexity=_kw("if", "else", "switch", "case", "for", "while", "do", "try", "catch") + _LOGICAL + _TERNARY,
    ),
    "csharp": _LexicalRules(
        imports=((re.compile(r"^\s*using\s+(?:static\s+)?([\w.]+)\s*;", re.M), _dotted_specifiers),),
        functions=(re.compile(
            r"(?:public|private|internal|protected)\s+(?:static\s+|virtual\s+|override\s+|async\s+)*[\w<>\[\],]+\s+(\w+)\s*\("
        ),),
        classes=(re.compile(r"(?:class|interface|struct|record)\s+(\w+)"),),
        complexity=_kw("if", "else", "switch", "case", "for", "foreach", "while", "do", "try", "catch") + _LOGICAL + _TERNARY,
    ),
    "php": _LexicalRules(
        imports=(
            (re.compile(r"""(?:require|include)(?:_once)?\s*\(?\s*['"]([^'"]+)['"]"""), _local_path),
            (re.compile(r"^\s*use\s+([\w\\]+)", re.M), _namespace_specifiers),
        ),
        functions=(re.compile(r"function\s+(\w+)\s*\("),),
        classes=(re.compile(r"(?:class|interface|trait)\s+(\w+)"),),
        complexity=_kw("if", "else", "elseif", "switch", "case", "for", "foreach", "while", "do", "try", "catch") + _LOGICAL + _TERNARY,
    ),
    "ruby": _LexicalRules(
        imports=(
            (re.compile(r"""require_relative\s+['"]([^'"]+)['"]"""), _local_path),
            (re.compile(r"""\brequire\s+['"]([^'"]+)['"]"""), _identity),
        ),
        functions=(re.compile(r"^\s*def\s+(?:self\.)?(\w+[?!]?)", re.M),),
        classes=(re.compile(r"^\s*(?:class|module)\s+(\w+)", re.M),),
        complexity=_kw("if", "elsif", "else", "unless", "case", "when", "for", "while", "until", "rescue") + _LOGICAL,
    ),
    "swift": _LexicalRules(
        imports=((re.compile(r"^\s*import\s+(\w+)", re.M), _identity),),
        functions=(re.compile(r"func\s+(\w+)\s*[<(]"),),
        classes=(re.compile(r"(?:class|struct|protocol|enum)\s+(\w+)"),),
        complexity=_kw("if", "else", "guard", "switch", "case", "for", "while", "repeat", "catch") + _LOGICAL + _TERNARY,
    ),
    "kotlin": _LexicalRules(
        imports=((re.compile(r"^\s*import\s+([\w.*]+)", re.M), _dotted_specifiers),),
        functions=(re.compile(r"fun\s+(?:<[^>]*>\s*)?(?:[\w.]+\.)?(\w+)\s*\("),),
        classes=(re.compile(r"(?:class|interface|object)\s+(\w+)"),),
        complexity=_kw("if", "else", "when", "for", "while", "do", "try", "catch") + _LOGICAL,
    ),
}


class LexicalAnalyzer:
    """Generic analyzer: regular-expression imports/symbols and keyword complexity."""

    def analyze(self, path: str, source: str) -> GenericFacts:
        language = detect_language(path)
        lines = _count_lines(source)
        facts = GenericFacts(path=path, language=language, lines=lines, size=_byte_size(source))

        rules = _RULES.get(language)
        if rules is None:
            # Unknown language: line-count based estimate only
            facts.complexity = min(lines // 50, 10)
            return facts

        seen = set()
        for pattern, mapper in rules.imports:
            for match in pattern.finditer(source):
                line = _line_of(source, match.start(1))
                for spec in mapper(match.group(1)):
                    if spec and (spec, line) not in seen:
                        seen.add((spec, line))
                        facts.imports.append(ImportRef(raw_specifier=spec, line=line))
        facts.imports.sort(key=lambda ref: ref.line)

        for pattern in rules.functions:
            for match in pattern.finditer(source):
                facts.functions.append(Symbol(name=match.group(1), line=_line_of(source, match.start(1))))
        for pattern in rules.classes:
            for match in pattern.finditer(source):
                facts.classes.append(Symbol(name=match.group(1), line=_line_of(source, match.start(1))))

        facts.complexity = 1 + sum(len(p.findall(source)) for p in rules.complexity)
        return facts


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


# ===================================================================
# Facade
# ===================================================================

class FactExtractor:
    """Turn one file's text into :class:`FileFacts`, dispatching on extension."""

    def __init__(self) -> None:
        self.primary = TreeSitterAnalyzer()
        self.generic = LexicalAnalyzer()

    def analyze(self, path: str, source: str) -> Analysis:
        kind = analyzer_for(path)
        if kind is AnalyzerKind.PRIMARY:
            return self.primary.analyze(path, source)
        if kind is AnalyzerKind.GENERIC:
            return self.generic.analyze(path, source)
        raise ParseFailure(path, f"no analyzer for {kind}")

    def extract(self, path: str, source: str) -> FileFacts:
        """Extract facts, raising :class:`ParseFailure` when the file yields none."""
        try:
            return to_file_facts(self.analyze(path, source))
        except ParseFailure:
            raise
        except (ValueError, RecursionError, UnicodeError) as exc:
            raise ParseFailure(path, str(exc)) from exc
