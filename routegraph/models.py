"""Core data models shared by the parser, graph, extractor and traversal layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

# Route recognition idioms.
STYLE_MARKUP = "inline-markup"
STYLE_OBJECT = "object-array"
STYLE_CONVENTION = "file-convention"

# How a route was matched.
MATCH_STRUCTURAL = "structural"
MATCH_LEXICAL = "lexical"
MATCH_CONVENTION = "convention"


@dataclass
class ImportSpec:
    """One import-like statement as written in source.

    ``bindings`` maps the local name to the imported name.  A default
    import binds to ``"default"``; a namespace import or star re-export
    binds to ``"*"``.  For re-exports the key is the exported name.
    """

    specifier: str
    bindings: Dict[str, str] = field(default_factory=dict)
    is_lazy: bool = False
    is_default: bool = False
    is_reexport: bool = False
    is_type_only: bool = False
    line: int = 0

    @property
    def imported_names(self) -> List[str]:
        return sorted(set(self.bindings.values()))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportSpec":
        return cls(**data)


@dataclass
class ErrorRange:
    start_line: int
    start_col: int
    end_line: int
    end_col: int
    kind: str = "error"


@dataclass
class ParseResult:
    path: str
    language: str
    tree: Any = None
    source: bytes = b""
    imports: List[ImportSpec] = field(default_factory=list)
    exports: Set[str] = field(default_factory=set)
    local_names: Set[str] = field(default_factory=set)
    errors: List[ErrorRange] = field(default_factory=list)
    skipped: bool = False
    skip_reason: str = ""

    @property
    def text(self) -> str:
        return self.source.decode("utf-8", errors="replace")


@dataclass
class ComponentRef:
    """A component reference exactly as it appears in a route declaration.

    ``name`` is the identifier (``Dashboard``, ``Pages.Home``).  Inline
    deferred imports carry ``specifier`` and ``export_name`` instead of a
    binding.  ``alternates`` lists other components rendered by the same
    route value, e.g. the page inside a ``<Suspense>`` wrapper.
    """

    name: str = ""
    alternates: List[str] = field(default_factory=list)
    specifier: Optional[str] = None
    export_name: str = "default"
    is_self: bool = False

    @property
    def key(self) -> Tuple[Any, ...]:
        return (self.name, tuple(self.alternates), self.specifier, self.export_name, self.is_self)

    def display(self) -> str:
        if self.name:
            return self.name
        if self.specifier:
            return f"import({self.specifier!r})"
        return "<anonymous>"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ComponentRef":
        return cls(**data)


@dataclass
class RouteDefinition:
    route_path: str
    component: ComponentRef
    defining_file: str
    routing_style: str
    match_kind: str = MATCH_STRUCTURAL
    line: int = 0

    @property
    def key(self) -> Tuple[str, str]:
        return (self.route_path, self.defining_file)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["component"] = self.component.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RouteDefinition":
        payload = dict(data)
        payload["component"] = ComponentRef.from_dict(payload["component"])
        return cls(**payload)


@dataclass
class FileRecord:
    """Per-file metadata; every derived field is keyed by ``content_hash``."""

    path: str
    content_hash: str
    language: str = ""
    size: int = 0
    imports: List[ImportSpec] = field(default_factory=list)
    exports: List[str] = field(default_factory=list)
    local_names: List[str] = field(default_factory=list)
    routes: List[RouteDefinition] = field(default_factory=list)
    errors: List[ErrorRange] = field(default_factory=list)
    skip_reason: str = ""
    is_entry_point: bool = False

    @property
    def defines_routes(self) -> bool:
        return bool(self.routes)

    @property
    def skipped(self) -> bool:
        return bool(self.skip_reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "content_hash": self.content_hash,
            "language": self.language,
            "size": self.size,
            "imports": [spec.to_dict() for spec in self.imports],
            "exports": list(self.exports),
            "local_names": list(self.local_names),
            "routes": [route.to_dict() for route in self.routes],
            "errors": [asdict(err) for err in self.errors],
            "skip_reason": self.skip_reason,
            "is_entry_point": self.is_entry_point,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FileRecord":
        return cls(
            path=data["path"],
            content_hash=data["content_hash"],
            language=data.get("language", ""),
            size=data.get("size", 0),
            imports=[ImportSpec.from_dict(item) for item in data.get("imports", [])],
            exports=list(data.get("exports", [])),
            local_names=list(data.get("local_names", [])),
            routes=[RouteDefinition.from_dict(item) for item in data.get("routes", [])],
            errors=[ErrorRange(**item) for item in data.get("errors", [])],
            skip_reason=data.get("skip_reason", ""),
            is_entry_point=data.get("is_entry_point", False),
        )


@dataclass
class ImportGraphNode:
    path: str
    imports: Set[str] = field(default_factory=set)
    imported_by: Set[str] = field(default_factory=set)
    external: Set[str] = field(default_factory=set)
    unresolved: Set[str] = field(default_factory=set)


@dataclass
class ComponentRouteMapping:
    """Bidirectional component file <-> route path index."""

    by_component: Dict[str, Set[str]] = field(default_factory=dict)
    by_route: Dict[str, str] = field(default_factory=dict)
    unresolved: List[RouteDefinition] = field(default_factory=list)


@dataclass
class FileImpact:
    path: str
    routes: List[str] = field(default_factory=list)
    is_route_definer: bool = False
    route_file_type: str = ""
    chains: Dict[str, List[str]] = field(default_factory=dict)
    partial: List[str] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)
    deleted: bool = False
    visited: int = 0
    shared: bool = False


@dataclass
class ImpactResult:
    routes: Dict[str, List[str]] = field(default_factory=dict)
    shared_components: Dict[str, List[str]] = field(default_factory=dict)
    files: Dict[str, FileImpact] = field(default_factory=dict)

    @property
    def partial(self) -> bool:
        return any(item.partial for item in self.files.values())

    @property
    def all_routes(self) -> List[str]:
        merged: Set[str] = set()
        for routes in self.routes.values():
            merged.update(routes)
        return sorted(merged)


@dataclass
class UpdateSummary:
    changed: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def touched(self) -> bool:
        return bool(self.changed or self.added or self.removed)


@dataclass
class BuildStats:
    files: int = 0
    parsed: List[str] = field(default_factory=list)
    reused: int = 0
    skipped: int = 0
