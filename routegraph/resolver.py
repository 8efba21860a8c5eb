"""Import specifier and component reference resolution.

:class:`ImportResolver` maps a raw specifier to a project file; the
:class:`ComponentResolver` follows a route's component reference through
import bindings, lazy-load wrappers and barrel re-exports to the file
that actually defines the component.

All lookups are case-insensitive; returned paths keep their stored case.
"""

from __future__ import annotations

import logging
import posixpath
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set, Tuple

from .cache import MemoCache
from .config import RESOLVE_EXTENSIONS
from .models import ComponentRef, FileRecord, ImportSpec

if TYPE_CHECKING:
    from .graph import ImportGraph

logger = logging.getLogger(__name__)

# TypeScript ESM sources import "./x.js" while the file on disk is x.ts
_EMITTED_TO_SOURCE: Dict[str, Tuple[str, ...]] = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
    ".mjs": (".mts",),
    ".cjs": (".cts",),
}


class ImportResolver:
    """Resolve specifiers against a case-insensitive file lookup.

    Precedence: the relative (or aliased) path with each extension in
    :data:`~routegraph.config.RESOLVE_EXTENSIONS` tried in turn, then the
    path as a directory with ``index.*``.  Bare package names and paths
    escaping the project root are external.
    """

    def __init__(self, lookup: Callable[[str], Optional[str]], aliases: Optional[Dict[str, str]] = None) -> None:
        self.lookup = lookup
        # longest prefix first so "@/components/" beats "@/"
        self.aliases = sorted((aliases or {}).items(), key=lambda item: -len(item[0]))

    def _base_path(self, from_file: str, specifier: str) -> Optional[str]:
        """Project-relative target path without extension probing, or ``None`` if external."""
        specifier = specifier.split("?", 1)[0].split("#", 1)[0]
        if not specifier:
            return None
        if specifier.startswith("./") or specifier.startswith("../") or specifier in (".", ".."):
            joined = posixpath.join(posixpath.dirname(from_file), specifier)
        elif specifier.startswith("/"):
            joined = specifier.lstrip("/")
        else:
            for prefix, target in self.aliases:
                if specifier.startswith(prefix):
                    joined = target + specifier[len(prefix):]
                    break
            else:
                return None
        normalized = posixpath.normpath(joined)
        if normalized == ".." or normalized.startswith("../"):
            return None
        return "" if normalized == "." else normalized

    def is_external(self, from_file: str, specifier: str) -> bool:
        return self._base_path(from_file, specifier) is None

    def candidates(self, base: str) -> List[str]:
        out = [base + ext for ext in RESOLVE_EXTENSIONS if base or ext]
        stem, ext = posixpath.splitext(base)
        for alt in _EMITTED_TO_SOURCE.get(ext, ()):
            out.append(stem + alt)
        prefix = f"{base}/index" if base else "index"
        out.extend(prefix + ext for ext in RESOLVE_EXTENSIONS if ext)
        return out

    def resolve(self, from_file: str, specifier: str) -> Optional[str]:
        base = self._base_path(from_file, specifier)
        if base is None:
            return None
        for candidate in self.candidates(base):
            found = self.lookup(candidate)
            if found is not None:
                return found
        return None


class ComponentResolver:
    """Resolve :class:`ComponentRef` values to defining files.

    Resolution order, first success wins:

    1. an identifier bound by a standard import in the declaring file
       (namespace members such as ``Pages.Home`` go through the namespace
       import), or declared in that file;
    2. a lazy-load binding (``const X = lazy(() => import('./X'))``) or an
       inline deferred import -- unwrapped to its specifier;
    3. barrel re-exports of the resolved name, followed up to
       ``max_depth`` hops with a visited set;
    4. otherwise unresolved (``None``).
    """

    def __init__(
        self,
        graph: "ImportGraph",
        imports: ImportResolver,
        max_depth: int = 5,
        memo: Optional[MemoCache] = None,
    ) -> None:
        self.graph = graph
        self.imports = imports
        self.max_depth = max_depth
        self.memo = memo or MemoCache("resolutions")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def resolve(self, ref: ComponentRef, from_file: str) -> Optional[str]:
        record = self.graph.record(from_file)
        if record is None:
            return None
        key = (record.path, record.content_hash, ref.key, self.graph.revision)
        cached = self.memo.get(key, default=False)
        if cached is not False:
            return cached
        resolved = self._resolve(ref, record)
        if resolved is None:
            logger.debug("Unresolved component %s in %s", ref.display(), record.path)
        self.memo.put(key, resolved)
        return resolved

    def resolve_all(self, ref: ComponentRef, from_file: str) -> List[str]:
        """Every file the route's component value resolves to (primary first)."""
        found: List[str] = []
        candidates = [ref] + [ComponentRef(name=name) for name in ref.alternates]
        for candidate in candidates:
            path = self.resolve(candidate, from_file)
            if path is not None and path not in found:
                found.append(path)
        return found

    # ------------------------------------------------------------------
    # Resolution chain
    # ------------------------------------------------------------------

    def _resolve(self, ref: ComponentRef, record: FileRecord) -> Optional[str]:
        if ref.is_self:
            return record.path
        if ref.specifier:
            target = self.imports.resolve(record.path, ref.specifier)
            return self.follow_reexports(target, ref.export_name) if target else None
        if not ref.name:
            return None

        head, _, member = ref.name.partition(".")
        standard = [s for s in record.imports if not s.is_lazy and not s.is_reexport]
        lazy = [s for s in record.imports if s.is_lazy]
        for group in (standard, lazy):
            for spec in group:
                if head in spec.bindings:
                    return self._from_binding(record.path, spec, spec.bindings[head], member)
        if head in record.local_names:
            return record.path
        return None

    def _from_binding(self, from_file: str, spec: ImportSpec, imported: str, member: str) -> Optional[str]:
        target = self.imports.resolve(from_file, spec.specifier)
        if target is None:
            return None
        if imported == "*":
            # namespace import: Pages.Home -> export "Home" of the module
            return self.follow_reexports(target, member) if member else target
        return self.follow_reexports(target, imported)

    def follow_reexports(self, path: str, export_name: str) -> str:
        """Follow ``export ... from`` chains for *export_name* starting at *path*.

        Stops at the first file that declares the name itself, when the
        depth limit is reached, or when the chain cycles; the last file
        reached is returned.
        """
        visited: Set[Tuple[str, str]] = set()
        current, name = path, export_name
        for _ in range(self.max_depth + 1):
            if (current.casefold(), name) in visited:
                break
            visited.add((current.casefold(), name))
            record = self.graph.record(current)
            if record is None:
                break
            step = self._reexport_step(record, name, visited)
            if step is None:
                break
            current, name = step
        return current

    def _reexport_step(self, record: FileRecord, name: str, visited: Set[Tuple[str, str]]) -> Optional[Tuple[str, str]]:
        """Next ``(file, name)`` hop if *record* re-exports *name*, else ``None``."""
        if name == "*":
            return None
        reexports = [s for s in record.imports if s.is_reexport]
        for spec in reexports:
            if name in spec.bindings:
                target = self.imports.resolve(record.path, spec.specifier)
                if target is None:
                    return None
                imported = spec.bindings[name]
                if imported == "*":
                    # export * as ns from './x' -- the module itself
                    return (target, "*") if (target.casefold(), "*") not in visited else None
                return target, imported
        if name in record.local_names or (name == "default" and "default" in record.exports):
            return None
        star_targets: List[FileRecord] = []
        for spec in reexports:
            if spec.bindings.get("*") != "*":
                continue
            target = self.imports.resolve(record.path, spec.specifier)
            target_record = self.graph.record(target) if target else None
            if target_record is not None:
                star_targets.append(target_record)
        # a module that names the export beats one that only forwards stars
        for target_record in star_targets:
            if name in target_record.exports:
                return target_record.path, name
        for target_record in star_targets:
            if any(s.is_reexport and s.bindings.get("*") == "*" for s in target_record.imports):
                return target_record.path, name
        return None
