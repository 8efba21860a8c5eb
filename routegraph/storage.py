"""Persistence layer for import graph snapshots.

Architecture:
- :class:`CacheBackend` -- an abstract byte blob store (``get``/``put``/
  ``delete``).  :class:`LocalDiskBackend` writes one file per key
  atomically; :class:`SqliteBackend` keeps blobs in a single table.
- :class:`GraphStore` -- serializes an :class:`ImportGraph` to JSON inside
  a checksummed envelope and restores it, refreshing stale records
  incrementally instead of rebuilding.

Every storage failure is logged and swallowed at this boundary: without a
cache the engine is slower, not wrong.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

from .errors import CacheCorruptionError, StorageUnavailableError
from .graph import ImportGraph
from .models import UpdateSummary

if TYPE_CHECKING:
    from .builder import GraphBuilder

logger = logging.getLogger(__name__)

SNAPSHOT_FORMAT = "routegraph-snapshot"
SNAPSHOT_VERSION = 1


# ===================================================================
# Blob backends
# ===================================================================

class CacheBackend(ABC):
    """Abstract byte blob store used only for graph snapshots."""

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the blob stored under *key*, or ``None``."""
        ...

    @abstractmethod
    def put(self, key: str, data: bytes) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class LocalDiskBackend(CacheBackend):
    """One file per key below *directory*; writes are temp-file + rename."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p not in ("", ".", "..")]
        return self.directory.joinpath(*parts)

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageUnavailableError(f"cannot read {path}: {exc}") from exc

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
                raise
        except OSError as exc:
            raise StorageUnavailableError(f"cannot write {path}: {exc}") from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageUnavailableError(f"cannot delete {path}: {exc}") from exc


class SqliteBackend(CacheBackend):
    """Blob store in a single SQLite table, shareable across projects."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self.conn.execute(
                """
                CREATE TABLE IF NOT EXISTS blobs (
                    key TEXT PRIMARY KEY,
                    data BLOB NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            self.conn.commit()
        except (OSError, sqlite3.Error) as exc:
            raise StorageUnavailableError(f"cannot open {self.db_path}: {exc}") from exc

    def get(self, key: str) -> Optional[bytes]:
        try:
            with self._lock:
                row = self.conn.execute("SELECT data FROM blobs WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc
        return bytes(row[0]) if row else None

    def put(self, key: str, data: bytes) -> None:
        try:
            with self._lock, self.conn:
                self.conn.execute(
                    "INSERT OR REPLACE INTO blobs (key, data, updated_at) VALUES (?, ?, ?)",
                    (key, sqlite3.Binary(data), datetime.now(timezone.utc).isoformat()),
                )
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    def delete(self, key: str) -> None:
        try:
            with self._lock, self.conn:
                self.conn.execute("DELETE FROM blobs WHERE key = ?", (key,))
        except sqlite3.Error as exc:
            raise StorageUnavailableError(str(exc)) from exc

    def close(self) -> None:
        self.conn.close()


# ===================================================================
# GraphStore
# ===================================================================

def snapshot_key(root: Path) -> str:
    resolved = str(Path(root).resolve())
    digest = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:12]
    return f"{Path(resolved).name or 'root'}-{digest}/import-graph.json"


def _checksum(payload: Dict[str, Any]) -> str:
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class GraphStore:
    """Load and save checksummed import graph snapshots."""

    def __init__(self, backend: Optional[CacheBackend]) -> None:
        self.backend = backend
        self._ignore_snapshot = False
        self.last_refresh: Optional[UpdateSummary] = None

    # ------------------------------------------------------------------

    def encode(self, graph: ImportGraph) -> bytes:
        payload = graph.to_dict()
        envelope = {
            "format": SNAPSHOT_FORMAT,
            "version": SNAPSHOT_VERSION,
            "created_at": datetime.now(timezone.utc).isoformat(),
            "checksum": _checksum(payload),
            "payload": payload,
        }
        return json.dumps(envelope, sort_keys=True).encode("utf-8")

    def decode(self, blob: bytes) -> ImportGraph:
        """Validate and deserialize a snapshot blob.

        Raises:
            CacheCorruptionError: on bad JSON, wrong format/version or a
                checksum mismatch.
        """
        try:
            envelope = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise CacheCorruptionError(f"unreadable snapshot: {exc}") from exc
        if not isinstance(envelope, dict) or envelope.get("format") != SNAPSHOT_FORMAT:
            raise CacheCorruptionError("not a routegraph snapshot")
        if envelope.get("version") != SNAPSHOT_VERSION:
            raise CacheCorruptionError(f"snapshot version {envelope.get('version')!r} unsupported")
        payload = envelope.get("payload")
        if not isinstance(payload, dict) or _checksum(payload) != envelope.get("checksum"):
            raise CacheCorruptionError("snapshot checksum mismatch")
        try:
            return ImportGraph.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise CacheCorruptionError(f"malformed snapshot payload: {exc}") from exc

    # ------------------------------------------------------------------

    def save(self, root: Path, graph: ImportGraph) -> bool:
        """Persist *graph*; returns ``False`` if the backend failed."""
        if self.backend is None:
            return False
        with graph.lock.read():
            blob = self.encode(graph)
        try:
            self.backend.put(snapshot_key(root), blob)
        except StorageUnavailableError as exc:
            logger.warning("Snapshot not saved, continuing without cache: %s", exc)
            return False
        self._ignore_snapshot = False
        logger.debug("Saved snapshot for %s (%d bytes)", root, len(blob))
        return True

    def load(self, root: Path, builder: Optional["GraphBuilder"] = None) -> Optional[ImportGraph]:
        """Restore the snapshot for *root*, or ``None`` if unusable.

        With a *builder*, records whose content hash no longer matches the
        file system (plus added and removed files) are rebuilt in place.
        """
        self.last_refresh = None
        if self.backend is None or self._ignore_snapshot:
            return None
        try:
            blob = self.backend.get(snapshot_key(root))
        except StorageUnavailableError as exc:
            logger.warning("Snapshot unavailable, rebuilding: %s", exc)
            return None
        if blob is None:
            return None
        try:
            graph = self.decode(blob)
        except CacheCorruptionError as exc:
            logger.warning("Discarding corrupt snapshot for %s: %s", root, exc)
            return None
        if graph.root != str(Path(root).resolve()):
            logger.info("Snapshot belongs to %s, not %s; ignoring", graph.root, root)
            return None
        if builder is not None and graph.framework != builder.extractor.framework:
            logger.info("Snapshot was extracted as %s, now %s; ignoring",
                        graph.framework, builder.extractor.framework)
            return None
        problems = graph.check_consistency()
        if problems:
            logger.warning("Discarding inconsistent snapshot (%s)", problems[0])
            return None

        if builder is not None:
            summary = builder.refresh(graph)
            self.last_refresh = summary
            if summary.touched:
                logger.info(
                    "Snapshot refreshed: %d changed, %d added, %d removed",
                    len(summary.changed), len(summary.added), len(summary.removed),
                )
        return graph

    def clear(self, root: Path) -> bool:
        """Delete the snapshot; the next :meth:`load` ignores it regardless."""
        self._ignore_snapshot = True
        if self.backend is None:
            return True
        try:
            self.backend.delete(snapshot_key(root))
        except StorageUnavailableError as exc:
            logger.warning("Could not delete snapshot: %s", exc)
            return False
        return True
