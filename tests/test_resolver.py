"""Tests for specifier and component resolution."""

from pathlib import Path
from typing import Dict, Optional

import pytest

from routegraph.config import EngineConfig
from routegraph.models import ComponentRef
from routegraph.resolver import ComponentResolver, ImportResolver


def _lookup(files):
    index: Dict[str, str] = {f.casefold(): f for f in files}

    def lookup(path: str) -> Optional[str]:
        return index.get(path.casefold())

    return lookup


FILES = [
    "src/App.tsx",
    "src/components/Button.tsx",
    "src/components/index.ts",
    "src/lib/api.ts",
    "src/legacy/util.js",
]


class TestImportResolver:
    """Specifier -> file mapping."""

    @pytest.fixture
    def resolver(self) -> ImportResolver:
        return ImportResolver(_lookup(FILES), {"@/": "src/", "@ui/": "src/components/"})

    def test_relative_with_extension_probing(self, resolver: ImportResolver):
        """Relative specifiers try each extension in turn."""
        assert resolver.resolve("src/App.tsx", "./components/Button") == "src/components/Button.tsx"

    def test_directory_index(self, resolver: ImportResolver):
        """A directory specifier resolves to its index file."""
        assert resolver.resolve("src/App.tsx", "./components") == "src/components/index.ts"

    def test_aliases_longest_prefix_first(self, resolver: ImportResolver):
        """The longest matching alias wins."""
        assert resolver.resolve("src/App.tsx", "@/lib/api") == "src/lib/api.ts"
        assert resolver.resolve("src/App.tsx", "@ui/Button") == "src/components/Button.tsx"

    def test_emitted_js_maps_to_typescript_source(self, resolver: ImportResolver):
        """./x.js resolves to x.ts."""
        assert resolver.resolve("src/App.tsx", "./lib/api.js") == "src/lib/api.ts"

    def test_case_insensitive_lookup_keeps_stored_case(self, resolver: ImportResolver):
        assert resolver.resolve("src/App.tsx", "./Components/button") == "src/components/Button.tsx"

    def test_bare_packages_are_external(self, resolver: ImportResolver):
        """Package names are external."""
        assert resolver.is_external("src/App.tsx", "react")
        assert resolver.is_external("src/App.tsx", "@tanstack/react-query")
        assert resolver.resolve("src/App.tsx", "react") is None

    def test_escaping_root_is_external(self, resolver: ImportResolver):
        """Paths above the project root are external."""
        assert resolver.is_external("src/App.tsx", "../../outside")

    def test_missing_target_is_unresolved_not_external(self, resolver: ImportResolver):
        """Missing relative targets are unresolved, not external."""
        assert not resolver.is_external("src/App.tsx", "./missing")
        assert resolver.resolve("src/App.tsx", "./missing") is None

    def test_root_relative_src_by_default(self):
        """Bare ``src/...`` specifiers resolve from the project root, not node_modules."""
        resolver = ImportResolver(_lookup(FILES), EngineConfig().path_aliases)

        assert resolver.resolve("src/App.tsx", "src/components/Button") == "src/components/Button.tsx"
        assert not resolver.is_external("src/App.tsx", "src/lib/api")
        assert resolver.is_external("src/App.tsx", "react")

    def test_query_suffix_stripped(self, resolver: ImportResolver):
        """?raw style query suffixes are ignored."""
        assert resolver.resolve("src/App.tsx", "./legacy/util.js?raw") == "src/legacy/util.js"


class TestComponentResolver:
    """Component references through bindings, lazy loads and barrels."""

    @pytest.fixture
    def resolver(self, builder, write_project) -> ComponentResolver:
        root = write_project({
            "src/App.tsx": (
                'import { lazy } from "react";\n'
                'import Home from "./pages/Home";\n'
                'import { Button, Card, Spinner } from "./ui";\n'
                'import * as Pages from "./pages";\n'
                'const Reports = lazy(() => import("./pages/Reports"));\n'
                "function Local() { return null; }\n"
            ),
            "src/pages/Home.tsx": "export default function Home() { return null; }\n",
            "src/pages/Reports.tsx": "export default function Reports() { return null; }\n",
            "src/pages/About.tsx": "export function About() { return null; }\n",
            "src/pages/index.ts": 'export { About } from "./About";\n',
            "src/ui/index.ts": (
                'export { default as Button } from "./Button";\n'
                'export * from "./more";\n'
            ),
            "src/ui/more.ts": 'export * from "./Card";\nexport * from "./Spinner";\n',
            "src/ui/Button.tsx": "export default function Button() { return null; }\n",
            "src/ui/Card.tsx": "export function Card() { return null; }\n",
            "src/ui/Spinner.tsx": "export const Spinner = () => null;\n",
        })
        graph = builder().build(root)
        imports = ImportResolver(graph.canonical, {})
        return ComponentResolver(graph, imports)

    def test_default_import(self, resolver: ComponentResolver):
        """A default import resolves to its module."""
        assert resolver.resolve(ComponentRef(name="Home"), "src/App.tsx") == "src/pages/Home.tsx"

    def test_lazy_binding(self, resolver: ComponentResolver):
        """A lazy binding resolves to the imported module."""
        assert resolver.resolve(ComponentRef(name="Reports"), "src/App.tsx") == "src/pages/Reports.tsx"

    def test_inline_deferred_import(self, resolver: ComponentResolver):
        """An inline import() specifier resolves directly."""
        ref = ComponentRef(specifier="./pages/Home")
        assert resolver.resolve(ref, "src/App.tsx") == "src/pages/Home.tsx"

    def test_local_declaration(self, resolver: ComponentResolver):
        """A name declared in the same file resolves to that file."""
        assert resolver.resolve(ComponentRef(name="Local"), "src/App.tsx") == "src/App.tsx"

    def test_namespace_member(self, resolver: ComponentResolver):
        """Pages.About goes through the namespace import."""
        assert resolver.resolve(ComponentRef(name="Pages.About"), "src/App.tsx") == "src/pages/About.tsx"

    def test_named_reexport_of_default(self, resolver: ComponentResolver):
        """export { default as Button } is followed."""
        assert resolver.resolve(ComponentRef(name="Button"), "src/App.tsx") == "src/ui/Button.tsx"

    def test_nested_star_reexports(self, resolver: ComponentResolver):
        """Star re-exports are followed through nested barrels."""
        assert resolver.resolve(ComponentRef(name="Card"), "src/App.tsx") == "src/ui/Card.tsx"
        assert resolver.resolve(ComponentRef(name="Spinner"), "src/App.tsx") == "src/ui/Spinner.tsx"

    def test_unknown_name_unresolved(self, resolver: ComponentResolver):
        """Unknown names and files resolve to None."""
        assert resolver.resolve(ComponentRef(name="Nowhere"), "src/App.tsx") is None
        assert resolver.resolve(ComponentRef(name="Home"), "src/missing.tsx") is None

    def test_external_binding_unresolved(self, resolver: ComponentResolver):
        assert resolver.resolve(ComponentRef(name="lazy"), "src/App.tsx") is None

    def test_resolve_all_includes_alternates(self, resolver: ComponentResolver):
        """Wrapper and fallback components are resolved too."""
        ref = ComponentRef(name="Reports", alternates=["Suspense", "Spinner"])
        assert resolver.resolve_all(ref, "src/App.tsx") == ["src/pages/Reports.tsx", "src/ui/Spinner.tsx"]


def test_reexport_cycle_terminates(builder, write_project):
    """Barrels that re-export each other stop at the visited set."""
    root = write_project({
        "src/a.ts": 'export * from "./b";\n',
        "src/b.ts": 'export * from "./a";\n',
        "src/App.tsx": 'import { Ghost } from "./a";\n',
    })
    graph = builder().build(root)
    resolver = ComponentResolver(graph, ImportResolver(graph.canonical, {}))

    assert resolver.resolve(ComponentRef(name="Ghost"), "src/App.tsx") in ("src/a.ts", "src/b.ts")


def test_reexport_depth_limit(builder, write_project):
    """Re-export chains stop at max_depth."""
    files = {f"src/b{i}.ts": f'export * from "./b{i + 1}";\n' for i in range(8)}
    files["src/b8.ts"] = "export function Deep() { return null; }\n"
    files["src/App.tsx"] = 'import { Deep } from "./b0";\n'
    graph = builder().build(write_project(files))
    resolver = ComponentResolver(graph, ImportResolver(graph.canonical, {}), max_depth=3)

    resolved = resolver.resolve(ComponentRef(name="Deep"), "src/App.tsx")
    assert resolved != "src/b8.ts"
    assert resolved.startswith("src/b")
