"""Render impact results for humans (markdown) and tools (JSON)."""

from __future__ import annotations

from dataclasses import asdict
from pathlib import PurePosixPath
from typing import Any, Dict, List, Tuple

from .models import ImpactResult


def impact_to_dict(result: ImpactResult) -> Dict[str, Any]:
    return {
        "routes": {path: list(routes) for path, routes in result.routes.items()},
        "shared_components": {path: list(routes) for path, routes in result.shared_components.items()},
        "partial": result.partial,
        "files": {path: asdict(impact) for path, impact in result.files.items()},
    }


def _label(result: ImpactResult, path: str) -> str:
    impact = result.files[path]
    if impact.deleted:
        return "deleted"
    if impact.is_route_definer:
        return "route file"
    if path in result.shared_components:
        return "shared component"
    return "component"


def route_tree(result: ImpactResult) -> Dict[str, List[Tuple[str, str]]]:
    """Affected route -> ``(changed file, label)`` pairs, both sorted."""
    tree: Dict[str, List[Tuple[str, str]]] = {}
    for path in sorted(result.routes):
        for route in result.routes[path]:
            tree.setdefault(route, []).append((path, _label(result, path)))
    return {route: tree[route] for route in sorted(tree)}


def format_impact_tree(result: ImpactResult) -> str:
    """Markdown report: summary line, shared components and an ASCII route tree."""
    tree = route_tree(result)
    if not tree:
        lines = ["No routes affected by these changes."]
        partial = [p for p, impact in result.files.items() if impact.partial]
        if partial:
            lines.append("")
            lines.append("Analysis was partial for: " + ", ".join(f"`{p}`" for p in partial))
        return "\n".join(lines)

    lines = [
        "## Route Impact Tree",
        "",
        f"**{len(result.files)}** files changed -> **{len(tree)}** routes affected",
        "",
    ]

    if result.shared_components:
        lines.append("**Shared Components** (changes affect multiple routes):")
        for path, routes in sorted(result.shared_components.items()):
            affected = ", ".join(f"`{r}`" for r in routes)
            lines.append(f"- `{PurePosixPath(path).name}` -> affects {affected}")
        lines.append("")

    lines.append("```")
    lines.append("Route Tree:")
    routes = list(tree)
    for i, route in enumerate(routes):
        last_route = i == len(routes) - 1
        lines.append(("└── " if last_route else "├── ") + route)
        child_prefix = "    " if last_route else "│   "
        files = tree[route]
        for j, (path, label) in enumerate(files):
            branch = "└── " if j == len(files) - 1 else "├── "
            lines.append(f"{child_prefix}{branch}{PurePosixPath(path).name} ({label})")
    lines.append("```")

    partial = [p for p, impact in result.files.items() if impact.partial]
    if partial:
        lines.append("")
        lines.append("Analysis was partial for: " + ", ".join(f"`{p}`" for p in partial))
    return "\n".join(lines)
