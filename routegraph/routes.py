"""Framework-aware route extraction.

A codebase is classified once (see :func:`detect_framework`) and the
matching :class:`RouteStrategy` from :data:`STRATEGY_TABLE` is applied to
every file.  Three recognizers exist:

- **structural** -- walks the Tree-sitter CST for ``<Route path=...>``
  markup and ``{ path: ..., element: ... }`` object literals, joining
  nested children onto their parent's path;
- **lexical** -- a looser regular-expression pass over comment-stripped
  text that only *adds* routes the structural pass did not report;
- **file conventions** -- directory layout implies the route
  (``app/**/page.tsx``, ``routes/**/+page.svelte`` ...).

Route paths built from variables, template substitutions or loops are
never reported.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .cache import MemoCache
from .models import (
    MATCH_CONVENTION,
    MATCH_LEXICAL,
    MATCH_STRUCTURAL,
    STYLE_CONVENTION,
    STYLE_MARKUP,
    STYLE_OBJECT,
    ComponentRef,
    ParseResult,
    RouteDefinition,
)
from .parser import deferred_import_target, iter_nodes, node_text, string_value

logger = logging.getLogger(__name__)

INDEX_SEGMENT = "(index)"


# ===================================================================
# Route path helpers
# ===================================================================

def normalize_route_path(path: str) -> str:
    """Leading slash, no duplicate or trailing slash."""
    path = path.strip()
    if not path.startswith("/"):
        path = "/" + path
    path = re.sub(r"/{2,}", "/", path)
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return path


def join_route_path(parent: str, child: str) -> str:
    """Join *child* onto *parent*; absolute children are kept as written."""
    if not parent or child.startswith("/"):
        return normalize_route_path(child)
    return normalize_route_path(f"{parent}/{child}")


# ===================================================================
# File-path conventions
# ===================================================================

_NEXT_PARAMS: Tuple[Tuple[str, str], ...] = (
    (r"^\[\[\.\.\.(\w+)\]\]$", "*"),
    (r"^\[\.\.\.(\w+)\]$", "*"),
    (r"^\[(\w+)\]$", r":\1"),
)


@dataclass(frozen=True)
class FileConvention:
    """Naming convention mapping a file location to a route.

    ``root_dir`` must be the first path segment (or the second, under
    ``src/``).  When ``page_names`` is set only files with those stems are
    pages and the route comes from the directories alone; otherwise the
    file stem is the last segment.  ``param_rules`` rewrite a segment
    (first matching rule wins), ``drop_segments`` vanish from the route,
    and ``exclude_segments`` disqualify the file.
    """

    name: str
    root_dir: str
    extensions: Tuple[str, ...]
    page_names: Tuple[str, ...] = ()
    param_rules: Tuple[Tuple[str, str], ...] = ()
    drop_segments: Tuple[str, ...] = ()
    exclude_segments: Tuple[str, ...] = ()

    def route_for(self, rel_path: str) -> Optional[str]:
        parts = PurePosixPath(rel_path).parts
        if len(parts) < 2:
            return None
        if parts[0] == self.root_dir:
            start = 1
        elif len(parts) > 2 and parts[0] == "src" and parts[1] == self.root_dir:
            start = 2
        else:
            return None

        filename = PurePosixPath(parts[-1])
        if filename.suffix.lower() not in self.extensions:
            return None
        segments = list(parts[start:-1])
        if self.page_names:
            if filename.stem not in self.page_names:
                return None
        else:
            segments.append(filename.stem)

        out: List[str] = []
        for segment in segments:
            if any(re.fullmatch(rx, segment) for rx in self.exclude_segments):
                return None
            if any(re.fullmatch(rx, segment) for rx in self.drop_segments):
                continue
            for pattern, replacement in self.param_rules:
                if re.search(pattern, segment):
                    segment = re.sub(pattern, replacement, segment)
                    break
            out.append(segment)
        return normalize_route_path("/".join(out))


FILE_CONVENTIONS: Dict[str, FileConvention] = {
    "nextjs-app": FileConvention(
        name="nextjs-app",
        root_dir="app",
        extensions=(".tsx", ".ts", ".jsx", ".js"),
        page_names=("page",),
        param_rules=_NEXT_PARAMS,
        drop_segments=(r"\(.*\)", r"@.*"),
        exclude_segments=(r"_.*",),
    ),
    "nextjs-pages": FileConvention(
        name="nextjs-pages",
        root_dir="pages",
        extensions=(".tsx", ".ts", ".jsx", ".js"),
        param_rules=_NEXT_PARAMS,
        drop_segments=(r"index",),
        exclude_segments=(r"_(app|document|error)", r"api"),
    ),
    "sveltekit": FileConvention(
        name="sveltekit",
        root_dir="routes",
        extensions=(".svelte",),
        page_names=("+page",),
        param_rules=(
            (r"^\[\.\.\.(\w+)\]$", "*"),
            (r"^\[\[(\w+)(=\w+)?\]\]$", r":\1"),
            (r"^\[(\w+)(=\w+)?\]$", r":\1"),
        ),
        drop_segments=(r"\(.*\)",),
    ),
    "nuxt": FileConvention(
        name="nuxt",
        root_dir="pages",
        extensions=(".vue",),
        param_rules=(
            (r"^\[\.\.\.(\w+)\]$", "*"),
            (r"^\[(\w+)\]$", r":\1"),
            (r"^_(\w+)$", r":\1"),
        ),
        drop_segments=(r"index",),
    ),
}


# ===================================================================
# Strategy table
# ===================================================================

@dataclass(frozen=True)
class RouteStrategy:
    framework: str
    structural: Tuple[str, ...]
    lexical: bool
    conventions: Tuple[str, ...]


STRATEGY_TABLE: Dict[str, RouteStrategy] = {
    "react-router": RouteStrategy("react-router", (STYLE_MARKUP, STYLE_OBJECT), True, ()),
    "nextjs": RouteStrategy("nextjs", (STYLE_MARKUP, STYLE_OBJECT), True, ("nextjs-app", "nextjs-pages")),
    "vue": RouteStrategy("vue", (STYLE_OBJECT,), True, ()),
    "nuxt": RouteStrategy("nuxt", (STYLE_OBJECT,), True, ("nuxt",)),
    "sveltekit": RouteStrategy("sveltekit", (), False, ("sveltekit",)),
    "angular": RouteStrategy("angular", (STYLE_OBJECT,), True, ()),
    "unknown": RouteStrategy("unknown", (STYLE_MARKUP, STYLE_OBJECT), True, ("nextjs-app", "sveltekit")),
}

# Checked in order; the first framework with a matching dependency wins.
FRAMEWORK_MARKERS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("nextjs", ("next",)),
    ("nuxt", ("nuxt", "nuxt3")),
    ("sveltekit", ("@sveltejs/kit",)),
    ("angular", ("@angular/router", "@angular/core")),
    ("react-router", ("react-router", "react-router-dom")),
    ("vue", ("vue-router", "vue")),
)


def detect_framework(root: Path) -> str:
    """Classify the codebase from the dependencies in ``package.json``."""
    manifest = Path(root) / "package.json"
    if not manifest.is_file():
        return "unknown"
    try:
        data = json.loads(manifest.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Could not read %s: %s", manifest, exc)
        return "unknown"
    if not isinstance(data, dict):
        return "unknown"

    deps: Dict[str, Any] = {}
    for section in ("dependencies", "devDependencies", "peerDependencies"):
        value = data.get(section)
        if isinstance(value, dict):
            deps.update(value)

    for framework, packages in FRAMEWORK_MARKERS:
        if any(name in deps for name in packages):
            logger.debug("Detected framework %s", framework)
            return framework
    return "unknown"


# ===================================================================
# Structural matching
# ===================================================================

COMPONENT_KEYS: Tuple[str, ...] = (
    "element", "component", "Component", "loadComponent", "lazy", "components", "render",
)
WRAPPER_COMPONENTS: Set[str] = {
    "Suspense", "React.Suspense", "StrictMode", "React.StrictMode",
    "Fragment", "React.Fragment", "ErrorBoundary",
}
_JSX_ELEMENTS = ("jsx_element", "jsx_self_closing_element")
_NAME_PARENTS = ("jsx_expression", "arguments", "pair")


def _span(node: Any) -> Tuple[int, int]:
    return (node.start_byte, node.end_byte)


def _object_pairs(obj: Any) -> Dict[str, Any]:
    pairs: Dict[str, Any] = {}
    for child in obj.named_children:
        if child.type == "shorthand_property_identifier":
            pairs.setdefault(node_text(child), child)
            continue
        if child.type != "pair":
            continue
        key = child.child_by_field_name("key")
        value = child.child_by_field_name("value")
        if key is None or value is None:
            continue
        if key.type == "property_identifier":
            name = node_text(key)
        else:
            name = string_value(key)
        if name is not None:
            pairs.setdefault(name, value)
    return pairs


def _route_shaped(pairs: Dict[str, Any]) -> bool:
    has_component = any(key in pairs for key in COMPONENT_KEYS)
    has_children = "children" in pairs
    if "path" in pairs or _is_true(pairs.get("index")):
        return has_component or has_children
    # pathless layout route
    return has_component and has_children and pairs["children"].type == "array"


def _is_true(node: Any) -> bool:
    return node is not None and node.type == "true"


def _element_parts(node: Any) -> Tuple[Any, str]:
    """Return ``(opening_element, name)`` for a JSX element."""
    opening = node
    if node.type == "jsx_element":
        opening = next((c for c in node.named_children if c.type == "jsx_opening_element"), None)
        if opening is None:
            return None, ""
    name = opening.child_by_field_name("name")
    return opening, node_text(name) if name is not None else ""


def _is_route_element(node: Any) -> bool:
    if node.type not in _JSX_ELEMENTS:
        return False
    _, name = _element_parts(node)
    last = name.rsplit(".", 1)[-1]
    return last == "Route" or (last.endswith("Route") and last[:1].isupper())


def _is_markup_boundary(node: Any) -> bool:
    return node.type in ("jsx_opening_element", "jsx_closing_element") or _is_route_element(node)


def _attributes(opening: Any) -> Dict[str, Any]:
    attrs: Dict[str, Any] = {}
    for child in opening.named_children:
        if child.type != "jsx_attribute" or not child.named_children:
            continue
        parts = child.named_children
        attrs[node_text(parts[0])] = parts[1] if len(parts) > 1 else None
    return attrs


def _jsx_value(node: Any) -> Any:
    if node is not None and node.type == "jsx_expression":
        return node.named_children[0] if node.named_children else None
    return node


def _component_names(root: Any, prune: Optional[Callable[[Any], bool]] = None) -> List[str]:
    """Capitalized JSX names and bare component identifiers in document order."""
    names: List[str] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if prune is not None and node is not root and prune(node):
            continue
        kind = node.type
        name = None
        if kind in ("jsx_opening_element", "jsx_self_closing_element"):
            name_node = node.child_by_field_name("name")
            if name_node is not None:
                name = node_text(name_node)
        elif kind == "identifier" and node.parent is not None and node.parent.type in _NAME_PARENTS:
            name = node_text(node)
        if name and name[:1].isupper() and name not in names:
            names.append(name)
        stack.extend(reversed(node.children))
    return names


def _is_fallback(node: Any) -> bool:
    return (
        node.type == "jsx_attribute"
        and bool(node.named_children)
        and node_text(node.named_children[0]) == "fallback"
    )


def _ref_from_names(names: Sequence[str], rendered: Sequence[str] = ()) -> Optional[ComponentRef]:
    """Pick the rendered page as primary; wrappers and fallbacks become alternates."""
    if not names:
        return None
    pool = [n for n in rendered if n not in WRAPPER_COMPONENTS] or [n for n in names if n not in WRAPPER_COMPONENTS]
    primary = pool[0] if pool else names[0]
    return ComponentRef(name=primary, alternates=[n for n in names if n != primary])


def _jsx_ref(root: Any, prune: Optional[Callable[[Any], bool]] = None) -> Optional[ComponentRef]:
    def _without_fallback(node: Any) -> bool:
        return _is_fallback(node) or (prune is not None and prune(node))

    return _ref_from_names(_component_names(root, prune), _component_names(root, _without_fallback))


def component_ref(value: Any) -> Optional[ComponentRef]:
    """Build a :class:`ComponentRef` from a route's component value node."""
    if value is None:
        return None
    kind = value.type
    if kind in ("identifier", "shorthand_property_identifier"):
        name = node_text(value)
        return None if name in ("undefined", "null") else ComponentRef(name=name)
    if kind in ("member_expression", "nested_identifier"):
        return ComponentRef(name=node_text(value))
    target = deferred_import_target(value)
    if target is not None:
        specifier, export_name, _ = target
        return ComponentRef(specifier=specifier, export_name=export_name)
    return _jsx_ref(value)


class _StructuralMatcher:
    """Collect structural routes from one tree.

    Nested route nodes are consumed by their parent so the outer walk
    never reports them again without the parent prefix.
    """

    def __init__(self, path: str, styles: Sequence[str]) -> None:
        self.path = path
        self.styles = set(styles)
        self.routes: List[RouteDefinition] = []
        self._seen: Set[Tuple[str, str]] = set()
        self._consumed: Set[Tuple[int, int]] = set()

    def run(self, root: Any) -> List[RouteDefinition]:
        for node in iter_nodes(root):
            if _span(node) in self._consumed:
                continue
            if node.type == "object" and STYLE_OBJECT in self.styles:
                pairs = _object_pairs(node)
                if _route_shaped(pairs):
                    self._object_route(node, pairs, "", ())
            elif STYLE_MARKUP in self.styles and _is_route_element(node):
                self._markup_route(node, "", ())
        return self.routes

    def _consume_subtree(self, node: Any) -> None:
        for child in iter_nodes(node):
            self._consumed.add(_span(child))

    def _emit(self, route_path: str, ref: ComponentRef, style: str, node: Any,
              inherited: Tuple[str, ...]) -> None:
        key = (route_path, self.path)
        if key in self._seen:
            return
        self._seen.add(key)
        for name in inherited:
            if name != ref.name and name not in ref.alternates:
                ref.alternates.append(name)
        self.routes.append(RouteDefinition(
            route_path=route_path,
            component=ref,
            defining_file=self.path,
            routing_style=style,
            match_kind=MATCH_STRUCTURAL,
            line=node.start_point[0] + 1,
        ))

    @staticmethod
    def _inherit(inherited: Tuple[str, ...], ref: Optional[ComponentRef]) -> Tuple[str, ...]:
        if ref is None or not ref.name:
            return inherited
        extra = [n for n in [ref.name] + ref.alternates if n not in WRAPPER_COMPONENTS and n not in inherited]
        return inherited + tuple(extra)

    # -- object-array --------------------------------------------------

    def _object_route(self, node: Any, pairs: Dict[str, Any], prefix: str,
                      inherited: Tuple[str, ...]) -> None:
        self._consumed.add(_span(node))
        is_index = _is_true(pairs.get("index"))
        path_node = pairs.get("path")
        if path_node is not None:
            raw = string_value(path_node)
            if raw is None:
                logger.debug("%s:%d dynamic route path ignored", self.path, node.start_point[0] + 1)
                self._consume_subtree(node)
                return
            full = join_route_path(prefix, raw)
        elif is_index:
            full = join_route_path(prefix, INDEX_SEGMENT)
        else:
            full = normalize_route_path(prefix)

        ref = None
        for key in COMPONENT_KEYS:
            if key in pairs:
                ref = component_ref(pairs[key])
                if ref is not None:
                    break
        if ref is not None and (path_node is not None or is_index):
            self._emit(full, ref, STYLE_OBJECT, node, inherited)

        children = pairs.get("children")
        if children is None or children.type != "array":
            return
        child_inherited = self._inherit(inherited, ref)
        for item in children.named_children:
            if item.type != "object":
                continue
            child_pairs = _object_pairs(item)
            if _route_shaped(child_pairs):
                self._object_route(item, child_pairs, full, child_inherited)

    # -- inline markup -------------------------------------------------

    def _nested_routes(self, element: Any) -> Iterator[Any]:
        stack = [c for c in reversed(element.named_children)
                 if c.type not in ("jsx_opening_element", "jsx_closing_element")]
        while stack:
            node = stack.pop()
            if _is_route_element(node):
                yield node
                continue
            stack.extend(reversed(node.named_children))

    def _markup_route(self, node: Any, prefix: str, inherited: Tuple[str, ...]) -> None:
        self._consumed.add(_span(node))
        opening, _ = _element_parts(node)
        if opening is None:
            return
        attrs = _attributes(opening)
        is_index = "index" in attrs and (attrs["index"] is None or _is_true(_jsx_value(attrs["index"])))

        if "path" in attrs:
            raw = string_value(_jsx_value(attrs["path"]))
            if raw is None:
                logger.debug("%s:%d dynamic route path ignored", self.path, node.start_point[0] + 1)
                self._consume_subtree(node)
                return
            full = join_route_path(prefix, raw)
        elif is_index:
            full = join_route_path(prefix, INDEX_SEGMENT)
        else:
            full = normalize_route_path(prefix)

        ref = None
        for key in ("element", "component", "Component", "render"):
            value = _jsx_value(attrs.get(key))
            if value is not None:
                ref = component_ref(value)
                if ref is not None:
                    break

        nested: List[Any] = []
        if node.type == "jsx_element":
            nested = list(self._nested_routes(node))
            if ref is None:
                # <Route path="/a"><Page /></Route>
                ref = _jsx_ref(node, prune=_is_markup_boundary)

        if ref is not None and ("path" in attrs or is_index):
            self._emit(full, ref, STYLE_MARKUP, node, inherited)

        child_inherited = self._inherit(inherited, ref)
        for child in nested:
            if _span(child) not in self._consumed:
                self._markup_route(child, full, child_inherited)


# ===================================================================
# Lexical matching
# ===================================================================

_COMMENT_OR_STRING = re.compile(
    r"""("(?:\\.|[^"\\\n])*"|'(?:\\.|[^'\\\n])*'|`(?:\\.|[^`\\])*`)|(//[^\n]*|/\*.*?\*/)""",
    re.DOTALL,
)
_LEXICAL_ROUTE = re.compile(
    r"""\bpath\s*:\s*(['"`])([^'"`$\n]*)\1\s*,\s*"""
    r"""(?:element|component|Component)\s*:\s*(?:<\s*([A-Za-z_$][\w$.]*)|([A-Za-z_$][\w$.]*))"""
)
_LEXICAL_ROUTE_REVERSED = re.compile(
    r"""(?:element|component|Component)\s*:\s*(?:<\s*([A-Za-z_$][\w$.]*)|([A-Za-z_$][\w$.]*))"""
    r"""[^{}\[\]]*?\bpath\s*:\s*(['"`])([^'"`$\n]*)\3"""
)
_CHILDREN_BLOCK = re.compile(r"\bchildren\s*:\s*\[")
_PATH_KEY = re.compile(r"""\bpath\s*:\s*(['"`])([^'"`$\n]*)\1""")
_ANY_PATH_KEY = re.compile(r"\bpath\s*:")


def strip_comments(text: str) -> str:
    """Blank out comments, keeping strings, offsets and line numbers."""

    def _blank(match: "re.Match[str]") -> str:
        if match.group(1) is not None:
            return match.group(1)
        return re.sub(r"[^\n]", " ", match.group(2))

    return _COMMENT_OR_STRING.sub(_blank, text)


def _balanced_end(text: str, start: int, opener: str, closer: str) -> int:
    depth = 0
    for pos in range(start, len(text)):
        char = text[pos]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return pos
    return -1


def _enclosing_open(text: str, pos: int, opener: str, closer: str) -> int:
    depth = 0
    for index in range(pos - 1, -1, -1):
        char = text[index]
        if char == closer:
            depth += 1
        elif char == opener:
            if depth == 0:
                return index
            depth -= 1
    return -1


def _children_regions(text: str) -> List[Tuple[int, int, Optional[str]]]:
    """``(start, end, parent_path)`` for each ``children: [...]`` block.

    ``parent_path`` is ``None`` when the parent path is not a literal.
    """
    regions: List[Tuple[int, int, Optional[str]]] = []
    for match in _CHILDREN_BLOCK.finditer(text):
        open_pos = match.end() - 1
        close_pos = _balanced_end(text, open_pos, "[", "]")
        obj_start = _enclosing_open(text, match.start(), "{", "}")
        if close_pos < 0 or obj_start < 0:
            continue
        head = _PATH_KEY.search(text, obj_start, match.start())
        if head is not None:
            regions.append((open_pos, close_pos, head.group(2)))
        elif _ANY_PATH_KEY.search(text, obj_start, match.start()):
            regions.append((open_pos, close_pos, None))
    return regions


def lexical_routes(path: str, text: str) -> List[RouteDefinition]:
    """Loose regular-expression pass for ``{ path, element }`` objects."""
    clean = strip_comments(text)
    regions = _children_regions(clean)
    found: List[Tuple[int, str, str]] = []
    for match in _LEXICAL_ROUTE.finditer(clean):
        found.append((match.start(), match.group(2), match.group(3) or match.group(4)))
    for match in _LEXICAL_ROUTE_REVERSED.finditer(clean):
        found.append((match.start(), match.group(4), match.group(1) or match.group(2)))
    found.sort()

    routes: List[RouteDefinition] = []
    for pos, raw, component in found:
        if not component[:1].isupper():
            continue
        parents = [r[2] for r in sorted(r for r in regions if r[0] < pos < r[1])]
        if any(parent is None for parent in parents):
            continue
        full = ""
        for parent in parents:
            full = join_route_path(full, parent)
        full = join_route_path(full, raw)
        routes.append(RouteDefinition(
            route_path=full,
            component=ComponentRef(name=component),
            defining_file=path,
            routing_style=STYLE_OBJECT,
            match_kind=MATCH_LEXICAL,
            line=clean.count("\n", 0, pos) + 1,
        ))
    return routes


# ===================================================================
# RouteExtractor
# ===================================================================

_TEST_FILE = re.compile(r"(\.test\.|\.spec\.|\.stories\.|(^|/)__tests__/|(^|/)tests?/|(^|/)__mocks__/)")
_PRIMARY_STEMS = {"app", "index", "main", "root", "router", "routes", "routing"}


def classify_route_file(path: str, routes: Sequence[RouteDefinition] = ()) -> str:
    """Label a file as ``test``, ``primary`` or ``component-with-routes``."""
    if _TEST_FILE.search(path):
        return "test"
    if not routes:
        return ""
    stem = PurePosixPath(path).stem.lower()
    if any(r.routing_style == STYLE_CONVENTION for r in routes):
        return "primary"
    if stem in _PRIMARY_STEMS or "route" in stem:
        return "primary"
    return "component-with-routes"


class RouteExtractor:
    """Apply one framework's strategy to parsed files.

    Results are memoized by ``(path, content_hash)``; identical bytes at a
    different path are extracted separately since conventions depend on
    the location.
    """

    def __init__(self, framework: str = "unknown", memo: Optional[MemoCache] = None) -> None:
        if framework not in STRATEGY_TABLE:
            logger.warning("Unknown framework '%s'; using generic strategy", framework)
            framework = "unknown"
        self.framework = framework
        self.strategy = STRATEGY_TABLE[framework]
        self.conventions = [FILE_CONVENTIONS[name] for name in self.strategy.conventions]
        self.memo = memo or MemoCache("routes")

    def convention_routes(self, path: str) -> List[RouteDefinition]:
        for convention in self.conventions:
            route_path = convention.route_for(path)
            if route_path is not None:
                return [RouteDefinition(
                    route_path=route_path,
                    component=ComponentRef(name=PurePosixPath(path).stem, is_self=True),
                    defining_file=path,
                    routing_style=STYLE_CONVENTION,
                    match_kind=MATCH_CONVENTION,
                    line=1,
                )]
        return []

    def extract_routes(self, parsed: ParseResult, content_hash: str) -> List[RouteDefinition]:
        key = (parsed.path, content_hash)
        cached = self.memo.get(key)
        if cached is not None:
            return list(cached)

        routes = self.convention_routes(parsed.path)
        source = parsed.source
        if (
            parsed.tree is not None
            and self.strategy.structural
            and (b"path" in source or b"index" in source)
        ):
            routes.extend(_StructuralMatcher(parsed.path, self.strategy.structural).run(parsed.tree.root_node))
            if self.strategy.lexical and STYLE_OBJECT in self.strategy.structural:
                routes.extend(lexical_routes(parsed.path, parsed.text))

        unique: List[RouteDefinition] = []
        seen: Set[Tuple[str, str]] = set()
        for route in routes:
            if route.key in seen:
                continue
            seen.add(route.key)
            unique.append(route)

        self.memo.put(key, unique)
        return list(unique)
