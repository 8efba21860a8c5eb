"""Engine configuration: global paths, scan defaults and tunables."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

BASE_DIR = Path(os.environ.get("ROUTEGRAPH_HOME", str(Path.home() / ".routegraph"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
PROJECT_CONFIG_NAME = ".routegraph.toml"
CACHE_DIR_NAME = ".routegraph"
CACHE_BACKENDS: Tuple[str, ...] = ("disk", "sqlite")
SQLITE_CACHE_NAME = "cache.db"

# Extension -> parser dialect
LANGUAGE_MAP: Dict[str, str] = {
    ".tsx": "tsx",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".jsx": "javascript",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".vue": "vue",
    ".svelte": "svelte",
}

SOURCE_EXTENSIONS: Tuple[str, ...] = tuple(LANGUAGE_MAP)

# Order matters: the exact specifier is tried first.
RESOLVE_EXTENSIONS: Tuple[str, ...] = (
    "", ".tsx", ".ts", ".jsx", ".js", ".mjs", ".cjs", ".mts", ".cts", ".vue", ".svelte",
)

SKIP_DIRS: Set[str] = {
    "node_modules", ".git", "dist", "build", "coverage", ".next", ".nuxt",
    ".svelte-kit", "out", ".turbo", ".cache", ".output", ".vercel",
    "bower_components", "jspm_packages", CACHE_DIR_NAME,
}

DEFAULT_PATH_ALIASES: Dict[str, str] = {"@/": "src/", "~/": "src/", "src/": "src/"}
DEFAULT_ENTRY_PATTERNS: Tuple[str, ...] = ("index", "main", "App", "_app")

MAX_FILE_SIZE = 1024 * 1024
BINARY_SNIFF_BYTES = 8000
MAX_TRAVERSAL_DEPTH = 50
MAX_REEXPORT_DEPTH = 5


@dataclass
class EngineConfig:
    max_file_size: int = MAX_FILE_SIZE
    binary_sniff_bytes: int = BINARY_SNIFF_BYTES
    max_depth: int = MAX_TRAVERSAL_DEPTH
    reexport_depth: int = MAX_REEXPORT_DEPTH
    workers: int = field(default_factory=lambda: min(32, os.cpu_count() or 4))
    framework: Optional[str] = None
    path_aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_PATH_ALIASES))
    ignore_dirs: List[str] = field(default_factory=list)
    entry_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_ENTRY_PATTERNS))
    cache_dir: Optional[str] = None
    cache_backend: str = "disk"
    tree_cache_size: int = 256
    memo_cache_size: int = 4096

    @property
    def skip_dirs(self) -> Set[str]:
        return SKIP_DIRS | set(self.ignore_dirs)

    def cache_path(self, root: Path) -> Path:
        if self.cache_dir:
            path = Path(self.cache_dir).expanduser()
            return path if path.is_absolute() else root / path
        return root / CACHE_DIR_NAME
