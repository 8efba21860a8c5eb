"""Import graph over project files with forward and reverse edges."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import replace
from pathlib import PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .models import FileRecord, ImportGraphNode, RouteDefinition

GRAPH_FORMAT_VERSION = 1


class ReadWriteLock:
    """Many concurrent readers or one writer."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class ImportGraph:
    """Directed file graph; ``imported_by`` is kept in step with ``imports``.

    Paths are stored with their original case and looked up through a
    casefolded index.  ``revision`` increases on every mutation and is
    part of every graph-dependent memo key.
    """

    def __init__(self, root: str = "", framework: str = "unknown") -> None:
        self.root = root
        self.framework = framework
        self.records: Dict[str, FileRecord] = {}
        self.nodes: Dict[str, ImportGraphNode] = {}
        self._index: Dict[str, str] = {}
        self.revision = 0
        self.lock = ReadWriteLock()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def canonical(self, path: str) -> Optional[str]:
        return self._index.get(path.casefold())

    def record(self, path: str) -> Optional[FileRecord]:
        canonical = self.canonical(path)
        return self.records.get(canonical) if canonical is not None else None

    def node(self, path: str) -> Optional[ImportGraphNode]:
        canonical = self.canonical(path)
        return self.nodes.get(canonical) if canonical is not None else None

    def files(self) -> List[str]:
        return sorted(self.records)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.canonical(path) is not None

    def __len__(self) -> int:
        return len(self.records)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def bump(self) -> None:
        self.revision += 1

    def add_record(self, record: FileRecord) -> ImportGraphNode:
        """Insert or replace *record*; existing edges stay until relinked."""
        existing = self.canonical(record.path)
        if existing is not None and existing != record.path:
            self.remove(existing)
        self.records[record.path] = record
        self._index[record.path.casefold()] = record.path
        node = self.nodes.get(record.path)
        if node is None:
            node = self.nodes[record.path] = ImportGraphNode(path=record.path)
        self.bump()
        return node

    def set_edges(
        self,
        path: str,
        targets: Iterable[str],
        external: Iterable[str] = (),
        unresolved: Iterable[str] = (),
    ) -> None:
        """Replace the forward edges of *path*, updating reverse edges to match."""
        node = self.nodes[path]
        new_targets = {t for t in targets if t in self.nodes and t != path}
        for old in node.imports - new_targets:
            self.nodes[old].imported_by.discard(path)
        for target in new_targets - node.imports:
            self.nodes[target].imported_by.add(path)
        node.imports = new_targets
        node.external = set(external)
        node.unresolved = set(unresolved)
        self.bump()

    def remove(self, path: str) -> Optional[FileRecord]:
        """Delete *path* and sever both directions of its edges."""
        canonical = self.canonical(path)
        if canonical is None:
            return None
        node = self.nodes.pop(canonical)
        for target in node.imports:
            if target in self.nodes:
                self.nodes[target].imported_by.discard(canonical)
        for importer in node.imported_by:
            if importer in self.nodes:
                self.nodes[importer].imports.discard(canonical)
        del self._index[canonical.casefold()]
        record = self.records.pop(canonical)
        self.bump()
        return record

    def mark_entry_points(self, patterns: Sequence[str]) -> None:
        """Entry points: imported by nothing, or a top-level bootstrap file.

        Records may be shared with other graphs and with the record cache,
        so a changed flag is written to a copy.
        """
        wanted = {p.casefold() for p in patterns}
        for path, record in list(self.records.items()):
            pure = PurePosixPath(path)
            parent = pure.parent.as_posix()
            by_name = pure.stem.casefold() in wanted and parent in (".", "src")
            flag = not self.nodes[path].imported_by or by_name
            if record.is_entry_point != flag:
                self.records[path] = replace(record, is_entry_point=flag)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def edges(self) -> List[Tuple[str, str]]:
        return sorted((src, dst) for src, node in self.nodes.items() for dst in node.imports)

    def route_definers(self) -> List[FileRecord]:
        return [self.records[p] for p in sorted(self.records) if self.records[p].defines_routes]

    def routes(self) -> List[RouteDefinition]:
        out: List[RouteDefinition] = []
        for record in self.route_definers():
            out.extend(record.routes)
        return out

    def entry_points(self) -> List[str]:
        return [p for p in sorted(self.records) if self.records[p].is_entry_point]

    def skipped_files(self) -> List[str]:
        """Files recorded without parsing; their imports are unknown."""
        return [p for p in sorted(self.records) if self.records[p].skipped]

    def check_consistency(self) -> List[str]:
        """Return a description of every forward/reverse edge mismatch."""
        problems: List[str] = []
        for path, node in self.nodes.items():
            for target in node.imports:
                other = self.nodes.get(target)
                if other is None:
                    problems.append(f"{path} -> {target}: target missing")
                elif path not in other.imported_by:
                    problems.append(f"{path} -> {target}: reverse edge missing")
            for importer in node.imported_by:
                other = self.nodes.get(importer)
                if other is None or path not in other.imports:
                    problems.append(f"{importer} -> {path}: forward edge missing")
        return problems

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": GRAPH_FORMAT_VERSION,
            "root": self.root,
            "framework": self.framework,
            "records": [self.records[p].to_dict() for p in sorted(self.records)],
            "nodes": [
                {
                    "path": p,
                    "imports": sorted(self.nodes[p].imports),
                    "external": sorted(self.nodes[p].external),
                    "unresolved": sorted(self.nodes[p].unresolved),
                }
                for p in sorted(self.nodes)
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImportGraph":
        if data.get("version") != GRAPH_FORMAT_VERSION:
            raise ValueError(f"unsupported graph format {data.get('version')!r}")
        graph = cls(root=data.get("root", ""), framework=data.get("framework", "unknown"))
        for item in data["records"]:
            graph.add_record(FileRecord.from_dict(item))
        for item in data["nodes"]:
            graph.set_edges(
                item["path"],
                item.get("imports", []),
                item.get("external", []),
                item.get("unresolved", []),
            )
        return graph

    def signature(self) -> Tuple[List[Tuple[str, str]], List[Tuple[str, ...]]]:
        """Edge set and route definitions, for equality checks."""
        routes = sorted(
            (r.route_path, r.defining_file, r.routing_style, r.component.display())
            for r in self.routes()
        )
        return self.edges(), routes
