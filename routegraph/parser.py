"""Error-tolerant source parser for front-end dialects built on Tree-sitter.

Tree-sitter produces a *concrete syntax tree* that preserves every token,
so declarations can be extracted even while a file is half-edited and
does not compile.  Supported dialects:

- ``tsx``         -- TypeScript with JSX markup (``.tsx``)
- ``typescript``  -- TypeScript (``.ts``, ``.mts``, ``.cts``)
- ``javascript``  -- JavaScript, JSX included (``.js``, ``.jsx``, ``.mjs``, ``.cjs``)

Single-file components (``.vue``, ``.svelte``) are handled by parsing the
``<script>`` block in place; byte offsets and line numbers are preserved.
"""

from __future__ import annotations

import hashlib
import importlib
import logging
import re
import threading
from pathlib import PurePosixPath
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from tree_sitter import Language, Parser as TSParser

from .cache import MemoCache
from .config import LANGUAGE_MAP, EngineConfig
from .models import ErrorRange, ImportSpec, ParseResult

logger = logging.getLogger(__name__)

# Dialect -> (grammar module, factory function)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

_SCRIPT_BLOCK = re.compile(rb"<script\b([^>]*)>(.*?)</script\s*>", re.DOTALL | re.IGNORECASE)
_SCRIPT_LANG = re.compile(rb"""\blang\s*=\s*["'](tsx|ts|typescript)["']""", re.IGNORECASE)

_DECLARATION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
}
_VARIABLE_TYPES = {"lexical_declaration", "variable_declaration"}


# ===================================================================
# Tree helpers (shared with the route extractor)
# ===================================================================

def iter_nodes(root: Any) -> Iterator[Any]:
    """Pre-order walk without recursion; deep JSX trees stay safe."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def node_text(node: Any) -> str:
    return node.text.decode("utf-8", errors="replace")


def string_value(node: Any) -> Optional[str]:
    """Return the literal value of a static string node, else ``None``."""
    if node is None:
        return None
    if node.type == "string":
        return node_text(node)[1:-1]
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.children):
            return None
        return node_text(node)[1:-1]
    if node.type == "parenthesized_expression" and node.named_children:
        return string_value(node.named_children[0])
    return None


def is_dynamic_import(node: Any) -> bool:
    if node.type != "call_expression":
        return False
    fn = node.child_by_field_name("function")
    return fn is not None and fn.type == "import"


def first_string_argument(call: Any) -> Optional[str]:
    args = call.child_by_field_name("arguments")
    if args is None or not args.named_children:
        return None
    return string_value(args.named_children[0])


def _then_export(import_call: Any) -> str:
    """Export picked by ``import('x').then(m => m.Named)``; ``default`` otherwise."""
    member = import_call.parent
    if member is None or member.type != "member_expression":
        return "default"
    prop = member.child_by_field_name("property")
    if prop is None or node_text(prop) != "then":
        return "default"
    call = member.parent
    if call is None or call.type != "call_expression":
        return "default"
    args = call.child_by_field_name("arguments")
    if args is None or not args.named_children:
        return "default"
    for inner in iter_nodes(args.named_children[0]):
        if inner.type == "member_expression":
            name = inner.child_by_field_name("property")
            if name is not None:
                return node_text(name)
    return "default"


def deferred_import_target(node: Any) -> Optional[Tuple[str, str, Any]]:
    """Find the first ``import('...')`` under *node*.

    Returns ``(specifier, export_name, call_node)`` or ``None`` when there
    is no deferred import or its argument is not a static string.
    """
    for child in iter_nodes(node):
        if is_dynamic_import(child):
            specifier = first_string_argument(child)
            if specifier is None:
                return None
            return specifier, _then_export(child), child
    return None


def declared_names(decl: Any) -> List[str]:
    """Identifiers introduced by a top-level declaration node."""
    if decl.type in _DECLARATION_TYPES:
        name = decl.child_by_field_name("name")
        return [node_text(name)] if name is not None else []
    if decl.type in _VARIABLE_TYPES:
        names = []
        for child in decl.named_children:
            if child.type != "variable_declarator":
                continue
            name = child.child_by_field_name("name")
            if name is not None and name.type == "identifier":
                names.append(node_text(name))
        return names
    return []


def extract_script(data: bytes) -> Tuple[bytes, str]:
    """Blank everything outside ``<script>`` blocks, keeping offsets.

    Returns the masked source and the dialect to parse it with.
    """
    masked = bytearray(re.sub(rb"[^\n]", b" ", data))
    dialect = "javascript"
    for match in _SCRIPT_BLOCK.finditer(data):
        start, end = match.span(2)
        masked[start:end] = data[start:end]
        lang = _SCRIPT_LANG.search(match.group(1))
        if lang:
            dialect = "tsx" if lang.group(1).lower() == b"tsx" else "typescript"
    return bytes(masked), dialect


# ===================================================================
# Declaration extraction
# ===================================================================

class _DeclarationCollector:
    """Single pass over a tree filling imports, exports and local names."""

    def __init__(self, result: ParseResult) -> None:
        self.result = result
        self._found: List[Tuple[int, ImportSpec]] = []
        self._bound_calls: Set[int] = set()

    def collect(self, root: Any) -> None:
        has_error = root.has_error
        for node in iter_nodes(root):
            kind = node.type
            if has_error and (node.is_error or node.is_missing):
                self._record_error(node)
            if kind == "import_statement":
                self._import_statement(node)
            elif kind == "export_statement":
                self._export_statement(node)
            elif kind == "variable_declarator":
                self._lazy_binding(node)
            elif kind == "call_expression":
                self._call(node)

        for child in root.children:
            if child.type == "export_statement":
                decl = child.child_by_field_name("declaration")
                if decl is not None:
                    self.result.local_names.update(declared_names(decl))
            else:
                self.result.local_names.update(declared_names(child))

        self._found.sort(key=lambda item: item[0])
        self.result.imports = [spec for _, spec in self._found]

    # ------------------------------------------------------------------

    def _add(self, node: Any, spec: ImportSpec) -> None:
        self._found.append((node.start_byte, spec))

    def _record_error(self, node: Any) -> None:
        self.result.errors.append(ErrorRange(
            start_line=node.start_point[0] + 1,
            start_col=node.start_point[1],
            end_line=node.end_point[0] + 1,
            end_col=node.end_point[1],
            kind="missing" if node.is_missing else "error",
        ))

    def _import_statement(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        bindings: Dict[str, str] = {}
        type_only = any(child.type == "type" for child in node.children)

        if source is None:
            # TypeScript: import x = require('y')
            for child in node.named_children:
                if child.type == "import_require_clause":
                    source = child.child_by_field_name("source")
                    for part in child.named_children:
                        if part.type == "identifier":
                            bindings[node_text(part)] = "default"
                            break
        specifier = string_value(source)
        if specifier is None:
            return

        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for part in clause.named_children:
                if part.type == "identifier":
                    bindings[node_text(part)] = "default"
                elif part.type == "namespace_import":
                    for ident in part.named_children:
                        if ident.type == "identifier":
                            bindings[node_text(ident)] = "*"
                elif part.type == "named_imports":
                    for item in part.named_children:
                        if item.type != "import_specifier":
                            continue
                        name = item.child_by_field_name("name")
                        alias = item.child_by_field_name("alias")
                        if name is None:
                            continue
                        imported = string_value(name) or node_text(name)
                        local = node_text(alias) if alias is not None else imported
                        bindings[local] = imported

        self._add(node, ImportSpec(
            specifier=specifier,
            bindings=bindings,
            is_default="default" in bindings.values(),
            is_type_only=type_only,
            line=node.start_point[0] + 1,
        ))

    def _export_statement(self, node: Any) -> None:
        exports = self.result.exports
        source = node.child_by_field_name("source")
        specifier = string_value(source)

        if source is not None:
            if specifier is None:
                return
            bindings: Dict[str, str] = {}
            star = False
            pending_alias = False
            for child in node.children:
                if child.type == "*":
                    star = True
                elif child.type == "as":
                    pending_alias = star
                elif child.type == "identifier" and pending_alias:
                    bindings[node_text(child)] = "*"
                elif child.type == "namespace_export":
                    for ident in child.named_children:
                        if ident.type in ("identifier", "string"):
                            bindings[string_value(ident) or node_text(ident)] = "*"
                elif child.type == "export_clause":
                    bindings.update(self._export_clause(child))
            if star and not bindings:
                bindings["*"] = "*"
            exports.update(name for name in bindings if name != "*")
            self._add(node, ImportSpec(
                specifier=specifier,
                bindings=bindings,
                is_default="default" in bindings.values(),
                is_reexport=True,
                is_type_only=any(child.type == "type" for child in node.children),
                line=node.start_point[0] + 1,
            ))
            return

        if any(child.type == "default" for child in node.children):
            exports.add("default")
        decl = node.child_by_field_name("declaration")
        if decl is not None:
            exports.update(declared_names(decl))
        for child in node.named_children:
            if child.type == "export_clause":
                exports.update(self._export_clause(child))

    @staticmethod
    def _export_clause(clause: Any) -> Dict[str, str]:
        """Exported name -> local/imported name for ``{ a, b as c }``."""
        mapping: Dict[str, str] = {}
        for item in clause.named_children:
            if item.type != "export_specifier":
                continue
            name = item.child_by_field_name("name")
            alias = item.child_by_field_name("alias")
            if name is None:
                continue
            original = string_value(name) or node_text(name)
            exported = (string_value(alias) or node_text(alias)) if alias is not None else original
            mapping[exported] = original
        return mapping

    def _lazy_binding(self, node: Any) -> None:
        name = node.child_by_field_name("name")
        value = node.child_by_field_name("value")
        if name is None or value is None or name.type != "identifier":
            return
        if value.type == "call_expression" and not is_dynamic_import(value):
            fn = value.child_by_field_name("function")
            if fn is not None and node_text(fn) == "require":
                specifier = first_string_argument(value)
                if specifier is not None:
                    self._bound_calls.add(value.start_byte)
                    self._add(value, ImportSpec(
                        specifier=specifier,
                        bindings={node_text(name): "default"},
                        is_default=True,
                        line=value.start_point[0] + 1,
                    ))
                return
        target = deferred_import_target(value)
        if target is None:
            return
        specifier, export_name, call = target
        self._bound_calls.add(call.start_byte)
        self._add(call, ImportSpec(
            specifier=specifier,
            bindings={node_text(name): export_name},
            is_lazy=True,
            is_default=export_name == "default",
            line=call.start_point[0] + 1,
        ))

    def _call(self, node: Any) -> None:
        if node.start_byte in self._bound_calls:
            return
        if is_dynamic_import(node):
            specifier = first_string_argument(node)
            if specifier is None:
                logger.debug("Non-static import() in %s line %d", self.result.path, node.start_point[0] + 1)
                return
            self._add(node, ImportSpec(specifier=specifier, is_lazy=True, line=node.start_point[0] + 1))
            return
        fn = node.child_by_field_name("function")
        if fn is not None and fn.type == "identifier" and node_text(fn) == "require":
            specifier = first_string_argument(node)
            if specifier is not None:
                self._add(node, ImportSpec(specifier=specifier, line=node.start_point[0] + 1))


# ===================================================================
# SourceParser
# ===================================================================

class SourceParser:
    """Parse source bytes into a :class:`ParseResult`.

    Never raises on syntax errors: ERROR and MISSING nodes are reported as
    :class:`ErrorRange` entries and the recovered structure is used as is.
    Each worker thread gets its own Tree-sitter parser; ``Language``
    objects are shared.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        tree_cache: Optional[MemoCache] = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.tree_cache = tree_cache or MemoCache("trees", self.config.tree_cache_size)
        self._languages: Dict[str, Language] = {}
        self._local = threading.local()
        self._load_grammars()

    def _load_grammars(self) -> None:
        for dialect, (mod_name, factory) in _GRAMMAR_MODULES.items():
            try:
                mod = importlib.import_module(mod_name)
                self._languages[dialect] = Language(getattr(mod, factory)())
                logger.debug("Loaded tree-sitter grammar for %s", dialect)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed; %s files will be skipped. "
                    "Install with: pip install %s",
                    mod_name, dialect, mod_name.replace("_", "-"),
                )

    def supports(self, dialect: str) -> bool:
        return dialect in self._languages

    @staticmethod
    def dialect_for(path: str) -> Optional[str]:
        return LANGUAGE_MAP.get(PurePosixPath(path).suffix.lower())

    def _parser_for(self, dialect: str) -> Optional[TSParser]:
        parsers = getattr(self._local, "parsers", None)
        if parsers is None:
            parsers = self._local.parsers = {}
        parser = parsers.get(dialect)
        if parser is None:
            language = self._languages.get(dialect)
            if language is None:
                return None
            parser = parsers[dialect] = TSParser(language)
        return parser

    # ------------------------------------------------------------------

    def parse(self, path: str, data: bytes, content_hash: Optional[str] = None) -> ParseResult:
        dialect = self.dialect_for(path)
        if dialect is None:
            return ParseResult(path=path, language="", skipped=True, skip_reason="unsupported")
        if len(data) > self.config.max_file_size:
            logger.info("Skipping %s: %d bytes exceeds size ceiling", path, len(data))
            return ParseResult(path=path, language=dialect, skipped=True, skip_reason="too-large")
        if b"\x00" in data[: self.config.binary_sniff_bytes]:
            logger.info("Skipping %s: binary content", path)
            return ParseResult(path=path, language=dialect, skipped=True, skip_reason="binary")

        key = (path, content_hash or hashlib.sha256(data).hexdigest())
        cached = self.tree_cache.get(key)
        if cached is not None:
            return cached

        source, language = data, dialect
        if dialect in ("vue", "svelte"):
            source, language = extract_script(data)

        parser = self._parser_for(language)
        if parser is None:
            return ParseResult(path=path, language=language, skipped=True, skip_reason="no-grammar")

        tree = parser.parse(source)
        result = ParseResult(path=path, language=language, tree=tree, source=source)
        _DeclarationCollector(result).collect(tree.root_node)
        if result.errors:
            logger.debug("%s: %d recoverable syntax error(s)", path, len(result.errors))
        self.tree_cache.put(key, result)
        return result
