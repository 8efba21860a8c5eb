"""Route impact traversal over reverse import edges."""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set, Tuple

from .cache import MemoCache
from .graph import ImportGraph
from .models import FileImpact, ImpactResult, RouteDefinition
from .resolver import ComponentResolver
from .routes import classify_route_file

logger = logging.getLogger(__name__)


class ImpactTraversal:
    """Answer "which routes does this change affect?" for a graph.

    For each changed file a breadth-first search walks ``imported_by``
    edges with an owned visited set and parent map.  A route defined in a
    visited file is affected when the changed file defines it, or when any
    component its declaration renders resolves into the visited closure.
    Queries only read the graph.
    """

    def __init__(
        self,
        graph: ImportGraph,
        resolver: ComponentResolver,
        max_depth: int = 50,
        memo: Optional[MemoCache] = None,
    ) -> None:
        self.graph = graph
        self.resolver = resolver
        self.max_depth = max_depth
        self.memo = memo or MemoCache("impact")

    def impact_of(self, changed_files: Iterable[str], deleted: Iterable[str] = ()) -> ImpactResult:
        deleted_set = {p.casefold() for p in deleted}
        result = ImpactResult()
        with self.graph.lock.read():
            for path in changed_files:
                impact = self.file_impact(path)
                if path.casefold() in deleted_set:
                    impact.deleted = True
                result.files[path] = impact
                result.routes[path] = list(impact.routes)
                if impact.shared:
                    result.shared_components[path] = list(impact.routes)
        return result

    # ------------------------------------------------------------------

    def file_impact(self, path: str) -> FileImpact:
        canonical = self.graph.canonical(path)
        if canonical is None:
            logger.debug("%s is not in the import graph", path)
            return FileImpact(path=path, partial=["not in import graph"])

        record = self.graph.records[canonical]
        key = (canonical, record.content_hash, self.graph.revision, self.max_depth)
        cached = self.memo.get(key)
        if cached is not None:
            return self._copy(cached, path)

        impact = self._traverse(canonical)
        self.memo.put(key, impact)
        return self._copy(impact, path)

    @staticmethod
    def _copy(impact: FileImpact, path: str) -> FileImpact:
        return FileImpact(
            path=path,
            routes=list(impact.routes),
            is_route_definer=impact.is_route_definer,
            route_file_type=impact.route_file_type,
            chains={k: list(v) for k, v in impact.chains.items()},
            partial=list(impact.partial),
            unresolved=list(impact.unresolved),
            deleted=impact.deleted,
            visited=impact.visited,
            shared=impact.shared,
        )

    def _traverse(self, start: str) -> FileImpact:
        parent: Dict[str, Optional[str]] = {start: None}
        order: List[str] = []
        queue: Deque[Tuple[str, int]] = deque([(start, 0)])
        partial: List[str] = []

        while queue:
            current, depth = queue.popleft()
            order.append(current)
            node = self.graph.nodes.get(current)
            if node is None:
                continue
            if depth >= self.max_depth:
                if node.imported_by and not partial:
                    partial.append(f"depth limit {self.max_depth} reached at {current}")
                continue
            for importer in sorted(node.imported_by):
                if importer not in parent:
                    parent[importer] = current
                    queue.append((importer, depth + 1))

        visited: Set[str] = set(parent)
        routes: Dict[str, RouteDefinition] = {}
        chains: Dict[str, List[str]] = {}
        unresolved: List[str] = []

        for current in order:
            record = self.graph.records.get(current)
            if record is None:
                continue
            if record.skipped:
                # a skipped file contributes neither imports nor routes
                partial.append(f"{current} skipped ({record.skip_reason})")
                continue
            for route in record.routes:
                if route.route_path in routes:
                    continue
                if current != start:
                    targets = self.resolver.resolve_all(route.component, current)
                    if not targets:
                        unresolved.append(
                            f"{route.route_path} ({route.component.display()} in {current})"
                        )
                        continue
                    if not any(t in visited for t in targets):
                        continue
                routes[route.route_path] = route
                chains[route.route_path] = self._chain(parent, current)

        unknown = [p for p in self.graph.skipped_files() if p not in visited]
        if unknown:
            partial.append(f"imports of {len(unknown)} skipped file(s) unknown: {', '.join(unknown[:5])}")

        start_record = self.graph.records[start]
        impact = FileImpact(
            path=start,
            routes=sorted(routes),
            is_route_definer=start_record.defines_routes,
            route_file_type=classify_route_file(start, start_record.routes),
            chains=chains,
            partial=partial,
            unresolved=sorted(set(unresolved)),
            visited=len(visited),
        )
        impact.shared = len({route.defining_file for route in routes.values()}) >= 2
        logger.debug(
            "%s impacts %d route(s) (traversed %d files)", start, len(impact.routes), len(visited)
        )
        return impact

    @staticmethod
    def _chain(parent: Dict[str, Optional[str]], end: str) -> List[str]:
        chain: List[str] = []
        current: Optional[str] = end
        while current is not None:
            chain.append(current)
            current = parent[current]
        chain.reverse()
        return chain
