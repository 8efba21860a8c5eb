"""Watch mode: report route impact as files change."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Callable, List, Optional, Set

import typer
from rich.console import Console
from rich.markup import escape

from .config import SOURCE_EXTENSIONS

console = Console()


class CodeChangeHandler:
    """Collect file system events and flush them in debounced batches."""

    def __init__(self, root: Path, on_batch: Callable[[List[str]], None], debounce_seconds: float = 2.0):
        self.root = root
        self.on_batch = on_batch
        self.debounce_seconds = debounce_seconds
        self.last_event = 0.0
        self._pending: Set[str] = set()
        self._lock = threading.Lock()

    def dispatch(self, event) -> None:
        """Route watchdog events to the pending set."""
        if event.is_directory:
            return
        for attr in ("src_path", "dest_path"):
            path = getattr(event, attr, None)
            if path:
                self._handle_change(str(path))

    def _handle_change(self, src_path: str) -> None:
        file_path = Path(src_path)
        if file_path.suffix.lower() not in SOURCE_EXTENSIONS:
            return
        try:
            rel = file_path.resolve().relative_to(self.root)
        except ValueError:
            return
        # hidden dirs, editor temp files, our own cache dir
        if any(part.startswith(".") for part in rel.parts):
            return
        with self._lock:
            self._pending.add(rel.as_posix())
            self.last_event = time.monotonic()

    def flush_if_due(self, now: Optional[float] = None) -> List[str]:
        """Hand pending paths to the callback once events have gone quiet."""
        now = time.monotonic() if now is None else now
        with self._lock:
            if not self._pending or now - self.last_event < self.debounce_seconds:
                return []
            batch = sorted(self._pending)
            self._pending.clear()
        self.on_batch(batch)
        return batch


def watch(
    root: Path = typer.Option(Path("."), "--root", "-r", help="Project root to watch."),
    interval: float = typer.Option(2.0, "--interval", "-i", help="Debounce interval in seconds."),
):
    """👀 Watch mode: print affected routes whenever source files change.

    Example:
      routegraph watch
      routegraph watch --root ./web --interval 5
    """
    from watchdog.events import FileSystemEventHandler
    from watchdog.observers import Observer

    from .engine import EngineState
    from .report import format_impact_tree

    watch_path = root.resolve()
    if not watch_path.is_dir():
        console.print(f"[red]✗[/red] Path not found: {escape(str(root))}")
        raise typer.Exit(1)

    engine = EngineState(watch_path)
    engine.initialize()
    batches = 0

    def report(paths: List[str]) -> None:
        nonlocal batches
        result = engine.impact_of(paths)
        batches += 1
        console.print(f"\n[bold]{len(paths)} file(s) changed[/bold]: {escape(', '.join(paths))}")
        console.print(format_impact_tree(result), markup=False, highlight=False)

    handler = CodeChangeHandler(watch_path, report, debounce_seconds=interval)

    class WatchdogAdapter(FileSystemEventHandler):
        def on_modified(self, event):
            handler.dispatch(event)

        def on_created(self, event):
            handler.dispatch(event)

        def on_deleted(self, event):
            handler.dispatch(event)

        def on_moved(self, event):
            handler.dispatch(event)

    console.print(f"\n[bold green]👀 Watching[/bold green] [cyan]{escape(str(watch_path))}[/cyan] for changes...")
    console.print(f"[dim]  Framework: {engine.framework}[/dim]")
    console.print(f"[dim]  Debounce:  {interval}s[/dim]")
    console.print("[dim]  Press Ctrl+C to stop[/dim]\n")

    observer = Observer()
    observer.schedule(WatchdogAdapter(), str(watch_path), recursive=True)
    observer.start()

    try:
        while True:
            time.sleep(0.5)
            handler.flush_if_due()
    except KeyboardInterrupt:
        observer.stop()
        console.print(f"\n[yellow]Stopped watching.[/yellow] Reported {batches} batch(es).")

    observer.join()
