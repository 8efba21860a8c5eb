"""Import graph construction: full parallel builds and incremental updates."""

from __future__ import annotations

import hashlib
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, Optional, Tuple

from .cache import MemoCache
from .config import SOURCE_EXTENSIONS, EngineConfig
from .errors import BuildCancelled
from .graph import ImportGraph
from .models import BuildStats, FileRecord, UpdateSummary
from .parser import SourceParser
from .resolver import ImportResolver
from .routes import RouteExtractor

logger = logging.getLogger(__name__)


def content_hash(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class GraphBuilder:
    """Build and incrementally maintain an :class:`ImportGraph`.

    Files are parsed on a bounded thread pool; records are merged and
    edges linked afterwards by the calling thread only, so the result
    never depends on completion order.
    """

    def __init__(
        self,
        config: EngineConfig,
        parser: SourceParser,
        extractor: RouteExtractor,
        record_cache: Optional[MemoCache] = None,
    ) -> None:
        self.config = config
        self.parser = parser
        self.extractor = extractor
        self.record_cache = record_cache or MemoCache("records", config.memo_cache_size)
        self.last_stats = BuildStats()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def is_source(self, rel_path: str) -> bool:
        pure = PurePosixPath(rel_path)
        if pure.suffix.lower() not in SOURCE_EXTENSIONS or pure.name.endswith(".d.ts"):
            return False
        skip = self.config.skip_dirs
        return not any(part in skip for part in pure.parts[:-1])

    def discover(self, root: Path) -> List[str]:
        """Project-relative POSIX paths of every source file under *root*."""
        skip = self.config.skip_dirs
        found: List[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in skip)
            for name in filenames:
                rel = Path(dirpath, name).relative_to(root).as_posix()
                if self.is_source(rel):
                    found.append(rel)
        return sorted(found)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def make_record(self, rel_path: str, data: bytes, digest: str) -> FileRecord:
        cached = self.record_cache.get((rel_path, digest))
        if cached is not None:
            return cached
        parsed = self.parser.parse(rel_path, data, digest)
        record = FileRecord(
            path=rel_path,
            content_hash=digest,
            language=parsed.language,
            size=len(data),
            imports=list(parsed.imports),
            exports=sorted(parsed.exports),
            local_names=sorted(parsed.local_names),
            routes=self.extractor.extract_routes(parsed, digest),
            errors=list(parsed.errors),
            skip_reason=parsed.skip_reason,
        )
        self.record_cache.put((rel_path, digest), record)
        return record

    def _load_record(
        self,
        root: Path,
        rel_path: str,
        prior: Optional[ImportGraph],
        cancel_event: Optional[threading.Event],
    ) -> Optional[Tuple[FileRecord, bool]]:
        """Return ``(record, was_parsed)``; ``None`` once cancelled."""
        if cancel_event is not None and cancel_event.is_set():
            return None
        try:
            data = (root / rel_path).read_bytes()
        except OSError as exc:
            logger.warning("Could not read %s: %s", rel_path, exc)
            return FileRecord(path=rel_path, content_hash="", skip_reason="unreadable"), False
        digest = content_hash(data)
        if prior is not None:
            old = prior.record(rel_path)
            if old is not None and old.path == rel_path and old.content_hash == digest:
                return old, False
        if (rel_path, digest) in self.record_cache:
            return self.record_cache.get((rel_path, digest)), False
        return self.make_record(rel_path, data, digest), True

    # ------------------------------------------------------------------
    # Full build
    # ------------------------------------------------------------------

    def build(
        self,
        root: Path,
        prior: Optional[ImportGraph] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportGraph:
        """Scan *root* and return a fully linked graph.

        Records from *prior* are reused when their content hash still
        matches.  Setting *cancel_event* stops the build between file
        units and raises :class:`BuildCancelled`.
        """
        root = Path(root).resolve()
        if prior is not None and prior.framework != self.extractor.framework:
            logger.info("Framework changed (%s -> %s); re-extracting all files",
                        prior.framework, self.extractor.framework)
            prior = None

        files = self.discover(root)
        stats = BuildStats(files=len(files))
        records: Dict[str, FileRecord] = {}
        cancelled = False

        workers = max(1, min(self.config.workers, len(files) or 1))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            future_to_path = {
                executor.submit(self._load_record, root, rel, prior, cancel_event): rel
                for rel in files
            }
            for future in as_completed(future_to_path):
                if cancel_event is not None and cancel_event.is_set():
                    cancelled = True
                    for pending in future_to_path:
                        pending.cancel()
                    break
                rel = future_to_path[future]
                try:
                    loaded = future.result()
                except Exception as exc:
                    logger.warning("Failed to analyse %s: %s", rel, exc)
                    loaded = (FileRecord(path=rel, content_hash="", skip_reason="error"), False)
                if loaded is None:
                    continue
                record, was_parsed = loaded
                records[rel] = record
                if was_parsed:
                    stats.parsed.append(rel)
                else:
                    stats.reused += 1
                if record.skipped:
                    stats.skipped += 1

        if cancelled or (cancel_event is not None and cancel_event.is_set()):
            raise BuildCancelled(f"build of {root} cancelled after {len(records)}/{len(files)} files")

        graph = ImportGraph(root=str(root), framework=self.extractor.framework)
        with graph.lock.write():
            for rel in sorted(records):
                graph.add_record(records[rel])
            self._link(graph, sorted(records))
            graph.mark_entry_points(self.config.entry_patterns)

        stats.parsed.sort()
        self.last_stats = stats
        logger.info(
            "Built import graph for %s: %d files (%d parsed, %d reused, %d skipped), %d edges",
            root, stats.files, len(stats.parsed), stats.reused, stats.skipped, len(graph.edges()),
        )
        return graph

    # ------------------------------------------------------------------
    # Linking
    # ------------------------------------------------------------------

    def resolver_for(self, graph: ImportGraph) -> ImportResolver:
        return ImportResolver(graph.canonical, self.config.path_aliases)

    def _link(self, graph: ImportGraph, paths: Iterable[str]) -> None:
        resolver = self.resolver_for(graph)
        for path in paths:
            record = graph.records.get(path)
            if record is None:
                continue
            targets: List[str] = []
            external: List[str] = []
            unresolved: List[str] = []
            for spec in record.imports:
                if resolver.is_external(path, spec.specifier):
                    external.append(spec.specifier)
                    continue
                target = resolver.resolve(path, spec.specifier)
                if target is None:
                    unresolved.append(spec.specifier)
                else:
                    targets.append(target)
            graph.set_edges(path, targets, external, unresolved)

    # ------------------------------------------------------------------
    # Incremental update
    # ------------------------------------------------------------------

    def update(self, graph: ImportGraph, paths: Iterable[str]) -> UpdateSummary:
        """Apply changes to *paths* (project-relative) in place.

        Changed files are re-parsed, new files added and missing files
        removed with both edge directions severed.  When the file set
        changes every node is relinked, since specifiers that failed to
        resolve may now succeed (and vice versa); otherwise only the
        touched nodes are.
        """
        root = Path(graph.root)
        summary = UpdateSummary()
        fresh: Dict[str, FileRecord] = {}

        for rel in sorted(set(paths)):
            existing = graph.canonical(rel)
            full = root / (existing or rel)
            if not full.is_file():
                if existing is not None:
                    summary.removed.append(existing)
                continue
            if existing is None and not self.is_source(rel):
                continue
            key = existing or rel
            try:
                data = full.read_bytes()
            except OSError as exc:
                logger.warning("Could not read %s: %s", key, exc)
                continue
            digest = content_hash(data)
            old = graph.records.get(existing) if existing is not None else None
            if old is not None and old.content_hash == digest:
                summary.unchanged.append(key)
                continue
            fresh[key] = self.make_record(key, data, digest)
            (summary.changed if old is not None else summary.added).append(key)

        if not summary.touched:
            return summary

        with graph.lock.write():
            for path in summary.removed:
                graph.remove(path)
            for record in fresh.values():
                graph.add_record(record)
            if summary.added or summary.removed:
                self._link(graph, graph.files())
            else:
                self._link(graph, summary.changed)
            graph.mark_entry_points(self.config.entry_patterns)

        logger.info(
            "Updated import graph: %d changed, %d added, %d removed",
            len(summary.changed), len(summary.added), len(summary.removed),
        )
        return summary

    def refresh(self, graph: ImportGraph) -> UpdateSummary:
        """Bring *graph* in line with the file system by content hash."""
        on_disk = set(self.discover(Path(graph.root)))
        return self.update(graph, on_disk | set(graph.files()))
