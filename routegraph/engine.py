"""Engine state: the owned entry point for route impact analysis.

An :class:`EngineState` holds everything one repository needs (config,
parser, memo caches, graph, snapshot store).  Nothing is module-global,
so several engines can analyse different repositories in one process.

Example::

    engine = EngineState("/path/to/app")
    result = engine.impact_of(["src/components/Button.tsx"])
    result.routes            # {"src/components/Button.tsx": ["/dashboard", "/settings"]}
    result.shared_components # {"src/components/Button.tsx": ["/dashboard", "/settings"]}
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional

from .builder import GraphBuilder
from .cache import MemoCache
from .config import CACHE_BACKENDS, SQLITE_CACHE_NAME, EngineConfig
from .config_manager import load_config
from .errors import StorageUnavailableError
from .graph import ImportGraph
from .impact import ImpactTraversal
from .models import ComponentRouteMapping, ImpactResult, RouteDefinition, UpdateSummary
from .parser import SourceParser
from .resolver import ComponentResolver
from .routes import RouteExtractor, detect_framework
from .storage import CacheBackend, GraphStore, LocalDiskBackend, SqliteBackend

logger = logging.getLogger(__name__)


class EngineState:
    """Route impact engine bound to one project root."""

    def __init__(
        self,
        root: Path,
        config: Optional[EngineConfig] = None,
        backend: Optional[CacheBackend] = None,
        use_cache: bool = True,
    ) -> None:
        self.root = Path(root).resolve()
        self.config = config or load_config(self.root)
        self.framework = self.config.framework or detect_framework(self.root)

        size = self.config.memo_cache_size
        self.tree_cache = MemoCache("trees", self.config.tree_cache_size)
        self.record_cache = MemoCache("records", size)
        self.route_cache = MemoCache("routes", size)
        self.resolution_cache = MemoCache("resolutions", size)
        self.impact_cache = MemoCache("impact", size)

        self.parser = SourceParser(self.config, self.tree_cache)
        self.extractor = RouteExtractor(self.framework, self.route_cache)
        self.builder = GraphBuilder(self.config, self.parser, self.extractor, self.record_cache)
        if backend is None and use_cache:
            backend = self._open_backend()
        self.store = GraphStore(backend)

        self._graph: Optional[ImportGraph] = None
        self._lock = threading.RLock()
        self.loaded_from_snapshot = False

    def _open_backend(self) -> Optional[CacheBackend]:
        """Snapshot backend named by ``config.cache_backend``; ``None`` if it cannot open."""
        cache_path = self.config.cache_path(self.root)
        kind = self.config.cache_backend
        if kind not in CACHE_BACKENDS:
            logger.warning("Unknown cache backend %r; using disk", kind)
            kind = "disk"
        if kind == "sqlite":
            try:
                return SqliteBackend(cache_path / SQLITE_CACHE_NAME)
            except StorageUnavailableError as exc:
                logger.warning("Snapshot cache disabled: %s", exc)
                return None
        return LocalDiskBackend(cache_path)

    # ------------------------------------------------------------------
    # Graph lifecycle
    # ------------------------------------------------------------------

    @property
    def graph(self) -> ImportGraph:
        if self._graph is None:
            self.initialize()
        assert self._graph is not None
        return self._graph

    def initialize(self, force_rebuild: bool = False, cancel_event: Optional[threading.Event] = None) -> ImportGraph:
        """Load the snapshot (refreshing stale files) or build from scratch.

        A snapshot is written only after a complete build; a cancelled
        build raises :class:`~routegraph.errors.BuildCancelled` and leaves
        the previous state untouched.
        """
        with self._lock:
            graph = None if force_rebuild else self.store.load(self.root, self.builder)
            self.loaded_from_snapshot = graph is not None
            if graph is None:
                graph = self.builder.build(self.root, prior=self._graph, cancel_event=cancel_event)
                dirty = True
            else:
                refreshed = self.store.last_refresh
                dirty = refreshed is not None and refreshed.touched
            self._set_graph(graph)
            if dirty:
                self.store.save(self.root, graph)
            return graph

    def _set_graph(self, graph: ImportGraph) -> None:
        self._graph = graph
        self.resolution_cache.clear()
        self.impact_cache.clear()
        self.imports = self.builder.resolver_for(graph)
        self.resolver = ComponentResolver(graph, self.imports, self.config.reexport_depth, self.resolution_cache)
        self.traversal = ImpactTraversal(graph, self.resolver, self.config.max_depth, self.impact_cache)

    def relative(self, path: str) -> str:
        """Project-relative POSIX form of *path* (absolute or relative)."""
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(self.root)
            except ValueError:
                return candidate.as_posix()
        return PurePosixPath(candidate.as_posix()).as_posix()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def impact_of(self, changed_files: Iterable[str], refresh: bool = True) -> ImpactResult:
        """Routes affected by *changed_files*.

        Paths that no longer exist are treated as deleted: their impact is
        computed on the graph as it was, then they are removed.  With
        *refresh* the graph is updated for the changed files first.
        """
        graph = self.graph
        paths: List[str] = []
        for item in changed_files:
            rel = self.relative(item)
            if rel not in paths:
                paths.append(rel)

        deleted = [p for p in paths if not (self.root / (graph.canonical(p) or p)).is_file()]
        before = self.traversal.impact_of(deleted, deleted=deleted) if deleted else ImpactResult()

        if refresh:
            self.update_files(paths)
        live = [p for p in paths if p not in deleted]
        after = self.traversal.impact_of(live)

        result = ImpactResult()
        for path in paths:
            source = before if path in deleted else after
            result.files[path] = source.files[path]
            result.routes[path] = source.routes[path]
            if path in source.shared_components:
                result.shared_components[path] = source.shared_components[path]
        logger.info(
            "Impact of %d file(s): %d route(s), %d shared component(s)",
            len(paths), len(result.all_routes), len(result.shared_components),
        )
        return result

    def update_files(self, paths: Iterable[str]) -> UpdateSummary:
        graph = self.graph
        summary = self.builder.update(graph, [self.relative(p) for p in paths])
        if summary.touched:
            self.store.save(self.root, graph)
        return summary

    def clear_cache(self) -> bool:
        """Drop every cache; the next query rebuilds from source."""
        with self._lock:
            deleted = self.store.clear(self.root)
            for cache in self._caches():
                cache.clear()
            self._graph = None
            self.loaded_from_snapshot = False
            return deleted

    def all_routes(self) -> List[RouteDefinition]:
        return sorted(self.graph.routes(), key=lambda r: (r.route_path, r.defining_file))

    def component_routes(self) -> ComponentRouteMapping:
        mapping = ComponentRouteMapping()
        for route in self.all_routes():
            target = self.resolver.resolve(route.component, route.defining_file)
            if target is None:
                mapping.unresolved.append(route)
                continue
            mapping.by_component.setdefault(target, set()).add(route.route_path)
            mapping.by_route.setdefault(route.route_path, target)
        return mapping

    def find_routes_serving_component(self, path: str) -> List[RouteDefinition]:
        """Routes whose declaration renders the component defined in *path*."""
        canonical = self.graph.canonical(self.relative(path))
        if canonical is None:
            return []
        return [
            route for route in self.all_routes()
            if canonical in self.resolver.resolve_all(route.component, route.defining_file)
        ]

    def _caches(self) -> List[MemoCache]:
        return [self.tree_cache, self.record_cache, self.route_cache, self.resolution_cache, self.impact_cache]

    def metrics(self) -> Dict[str, Any]:
        graph = self.graph
        records = list(graph.records.values())
        return {
            "root": str(self.root),
            "framework": self.framework,
            "total_files": len(records),
            "route_files": sum(1 for r in records if r.defines_routes),
            "routes": len(graph.routes()),
            "entry_points": len(graph.entry_points()),
            "import_edges": len(graph.edges()),
            "skipped_files": sum(1 for r in records if r.skipped),
            "files_with_parse_errors": sum(1 for r in records if r.errors),
            "loaded_from_snapshot": self.loaded_from_snapshot,
            "caches": {cache.name: cache.stats() for cache in self._caches()},
        }
