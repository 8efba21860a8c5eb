"""Tests for the import graph structure."""

import threading

import pytest

from routegraph.graph import ImportGraph, ReadWriteLock
from routegraph.models import ComponentRef, FileRecord, RouteDefinition


def _graph(*paths: str) -> ImportGraph:
    graph = ImportGraph(root="/project", framework="react-router")
    for path in paths:
        graph.add_record(FileRecord(path=path, content_hash=f"h-{path}"))
    return graph


class TestEdges:
    """Forward and reverse edges stay consistent."""

    def test_set_edges_updates_reverse(self):
        """Changing forward edges updates imported_by."""
        graph = _graph("a.ts", "b.ts", "c.ts")
        graph.set_edges("a.ts", ["b.ts", "c.ts"])

        assert graph.nodes["b.ts"].imported_by == {"a.ts"}
        assert graph.nodes["c.ts"].imported_by == {"a.ts"}

        graph.set_edges("a.ts", ["c.ts"])
        assert graph.nodes["b.ts"].imported_by == set()
        assert graph.check_consistency() == []

    def test_self_and_unknown_targets_dropped(self):
        """Self imports and unknown targets produce no edge."""
        graph = _graph("a.ts")
        graph.set_edges("a.ts", ["a.ts", "ghost.ts"], external=["react"], unresolved=["./ghost"])

        assert graph.nodes["a.ts"].imports == set()
        assert graph.nodes["a.ts"].external == {"react"}
        assert graph.nodes["a.ts"].unresolved == {"./ghost"}

    def test_remove_severs_both_directions(self):
        """Removing a file clears edges on both sides."""
        graph = _graph("a.ts", "b.ts", "c.ts")
        graph.set_edges("a.ts", ["b.ts"])
        graph.set_edges("b.ts", ["c.ts"])

        removed = graph.remove("b.ts")

        assert removed is not None and removed.path == "b.ts"
        assert "b.ts" not in graph
        assert graph.nodes["a.ts"].imports == set()
        assert graph.nodes["c.ts"].imported_by == set()
        assert graph.check_consistency() == []

    def test_remove_unknown_path(self):
        assert _graph("a.ts").remove("zzz.ts") is None

    def test_consistency_reports_mismatch(self):
        """A broken reverse edge is reported."""
        graph = _graph("a.ts", "b.ts")
        graph.nodes["a.ts"].imports.add("b.ts")

        assert graph.check_consistency() == ["a.ts -> b.ts: reverse edge missing"]


class TestLookup:
    """Case-insensitive path index."""

    def test_canonical_case(self):
        """Lookups ignore case; stored paths keep theirs."""
        graph = _graph("src/Components/Button.tsx")

        assert graph.canonical("src/components/button.tsx") == "src/Components/Button.tsx"
        assert "SRC/COMPONENTS/BUTTON.TSX" in graph
        assert graph.record("src/components/BUTTON.tsx").content_hash == "h-src/Components/Button.tsx"

    def test_case_rename_replaces_entry(self):
        """Re-adding a path in another case replaces the old entry."""
        graph = _graph("src/button.tsx")
        graph.add_record(FileRecord(path="src/Button.tsx", content_hash="new"))

        assert graph.files() == ["src/Button.tsx"]

    def test_revision_increases_on_mutation(self):
        """Every mutation bumps the revision."""
        graph = _graph("a.ts", "b.ts")
        before = graph.revision
        graph.set_edges("a.ts", ["b.ts"])

        assert graph.revision > before


class TestEntryPoints:
    """Unreferenced files and bootstrap names."""

    def test_mark_entry_points(self):
        """Unimported files and top-level bootstrap names are entry points."""
        graph = _graph("src/main.tsx", "src/App.tsx", "src/pages/index.ts", "src/lib/util.ts", "src/lib/orphan.ts")
        graph.set_edges("src/main.tsx", ["src/App.tsx"])
        graph.set_edges("src/App.tsx", ["src/lib/util.ts", "src/pages/index.ts"])

        graph.mark_entry_points(["index", "main", "App"])

        # App is imported but still a top-level bootstrap name; pages/index is not top level
        assert graph.entry_points() == ["src/App.tsx", "src/lib/orphan.ts", "src/main.tsx"]

    def test_shared_records_are_not_mutated(self):
        """A record held by two graphs keeps each graph's own entry-point flag."""
        record = FileRecord(path="src/lib.ts", content_hash="h")
        first = ImportGraph(root="/project")
        first.add_record(record)
        second = _graph("src/user.ts")
        second.add_record(record)
        second.set_edges("src/user.ts", ["src/lib.ts"])

        first.mark_entry_points([])
        second.mark_entry_points([])

        assert first.records["src/lib.ts"].is_entry_point
        assert not second.records["src/lib.ts"].is_entry_point
        assert record.is_entry_point is False


class TestSerialization:
    """to_dict / from_dict."""

    def test_round_trip_preserves_edges_and_routes(self):
        """Serialization keeps edges and routes."""
        graph = _graph("src/App.tsx", "src/Home.tsx")
        graph.records["src/App.tsx"].routes.append(RouteDefinition(
            route_path="/", component=ComponentRef(name="Home"),
            defining_file="src/App.tsx", routing_style="inline-markup", line=3,
        ))
        graph.set_edges("src/App.tsx", ["src/Home.tsx"], external=["react"])

        restored = ImportGraph.from_dict(graph.to_dict())

        assert restored.signature() == graph.signature()
        assert restored.framework == "react-router"
        assert restored.nodes["src/App.tsx"].external == {"react"}
        assert restored.check_consistency() == []

    def test_unknown_version_rejected(self):
        """A graph dict from another format version is refused."""
        data = _graph("a.ts").to_dict()
        data["version"] = 99
        with pytest.raises(ValueError):
            ImportGraph.from_dict(data)


def test_read_write_lock_excludes_writer_while_reading():
    lock = ReadWriteLock()
    events = []

    def writer():
        with lock.write():
            events.append("write")

    with lock.read():
        thread = threading.Thread(target=writer)
        thread.start()
        thread.join(timeout=0.2)
        events.append("read-done")
    thread.join(timeout=2)

    assert events == ["read-done", "write"]
