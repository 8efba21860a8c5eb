"""Tests for framework detection and route extraction."""

import json
from pathlib import Path

import pytest

from routegraph.models import MATCH_LEXICAL, MATCH_STRUCTURAL, STYLE_CONVENTION, STYLE_MARKUP, STYLE_OBJECT
from routegraph.parser import SourceParser
from routegraph.routes import (
    FILE_CONVENTIONS,
    RouteExtractor,
    classify_route_file,
    detect_framework,
    join_route_path,
    lexical_routes,
    normalize_route_path,
    strip_comments,
)


def _routes(parser: SourceParser, path: str, source: str, framework: str = "react-router"):
    parsed = parser.parse(path, source.encode("utf-8"))
    return RouteExtractor(framework).extract_routes(parsed, "hash")


def _paths(routes):
    return sorted(r.route_path for r in routes)


class TestRoutePaths:
    """Route path normalization helpers."""

    @pytest.mark.parametrize("raw,expected", [
        ("dashboard", "/dashboard"),
        ("/users//:id/", "/users/:id"),
        ("/", "/"),
        ("", "/"),
    ])
    def test_normalize(self, raw: str, expected: str):
        assert normalize_route_path(raw) == expected

    def test_join_relative_and_absolute(self):
        """Child paths join the parent unless absolute."""
        assert join_route_path("/admin", "users") == "/admin/users"
        assert join_route_path("/admin", "/login") == "/login"
        assert join_route_path("", "home") == "/home"


class TestFrameworkDetection:
    """package.json based classification."""

    def _write_manifest(self, root: Path, deps: dict) -> Path:
        (root / "package.json").write_text(json.dumps({"dependencies": deps}))
        return root

    def test_next_wins_over_react_router(self, temp_dir: Path):
        """Next.js takes precedence over react-router."""
        self._write_manifest(temp_dir, {"react-router-dom": "6", "next": "14"})
        assert detect_framework(temp_dir) == "nextjs"

    def test_react_router(self, temp_dir: Path):
        self._write_manifest(temp_dir, {"react": "18", "react-router-dom": "6"})
        assert detect_framework(temp_dir) == "react-router"

    def test_missing_or_broken_manifest(self, temp_dir: Path):
        """No or broken package.json means unknown."""
        assert detect_framework(temp_dir) == "unknown"
        (temp_dir / "package.json").write_text("{not json")
        assert detect_framework(temp_dir) == "unknown"

    def test_unknown_framework_falls_back(self):
        """Unsupported framework names use the generic strategy."""
        assert RouteExtractor("ember").framework == "unknown"


class TestMarkupRoutes:
    """<Route> elements."""

    def test_element_attribute(self, parser: SourceParser):
        """<Route path element={<X/>}> yields a route."""
        routes = _routes(parser, "src/App.tsx", (
            "export default function App() {\n"
            "  return (\n"
            "    <Routes>\n"
            '      <Route path="/dashboard" element={<DashboardPage />} />\n'
            '      <Route path="/users/:id" component={UserPage} />\n'
            "    </Routes>\n"
            "  );\n"
            "}\n"
        ))

        by_path = {r.route_path: r for r in routes}
        assert set(by_path) == {"/dashboard", "/users/:id"}
        assert by_path["/dashboard"].component.name == "DashboardPage"
        assert by_path["/dashboard"].routing_style == STYLE_MARKUP
        assert by_path["/dashboard"].match_kind == MATCH_STRUCTURAL
        assert by_path["/dashboard"].line == 4
        assert by_path["/users/:id"].component.name == "UserPage"

    def test_nested_routes_join_parent_path(self, parser: SourceParser):
        """Nested <Route> paths are joined to the parent."""
        routes = _routes(parser, "src/App.tsx", (
            "const tree = (\n"
            '  <Route path="/admin" element={<AdminLayout />}>\n'
            "    <Route index element={<AdminHome />} />\n"
            '    <Route path="users" element={<UserList />} />\n'
            "  </Route>\n"
            ");\n"
        ))

        by_path = {r.route_path: r for r in routes}
        assert set(by_path) == {"/admin", "/admin/(index)", "/admin/users"}
        # layout components render around their children
        assert "AdminLayout" in by_path["/admin/users"].component.alternates

    def test_children_as_component(self, parser: SourceParser):
        """A child element is the route component."""
        routes = _routes(parser, "src/App.jsx", (
            "const tree = (\n"
            '  <Route path="/about">\n'
            "    <AboutPage />\n"
            "  </Route>\n"
            ");\n"
        ))

        assert len(routes) == 1
        assert routes[0].component.name == "AboutPage"

    def test_suspense_fallback_is_not_primary(self, parser: SourceParser):
        """Suspense fallbacks are alternates."""
        routes = _routes(parser, "src/App.tsx", (
            "const tree = (\n"
            '  <Route path="/reports" element={<Suspense fallback={<Spinner />}><Reports /></Suspense>} />\n'
            ");\n"
        ))

        ref = routes[0].component
        assert ref.name == "Reports"
        assert "Spinner" in ref.alternates

    def test_dynamic_path_ignored(self, parser: SourceParser):
        """Non-literal paths drop the route and its children."""
        routes = _routes(parser, "src/App.tsx", (
            "const base = '/x';\n"
            "const tree = (\n"
            "  <Route path={`${base}/detail`} element={<Detail />}>\n"
            '    <Route path="child" element={<Child />} />\n'
            "  </Route>\n"
            ");\n"
        ))

        assert routes == []


class TestObjectRoutes:
    """Route configuration arrays."""

    def test_object_array_with_children(self, parser: SourceParser):
        """{ path, element, children } arrays."""
        routes = _routes(parser, "src/router.tsx", (
            "export const routes = [\n"
            "  { path: '/', element: <Home /> },\n"
            "  {\n"
            "    path: '/settings',\n"
            "    element: <SettingsLayout />,\n"
            "    children: [\n"
            "      { index: true, element: <SettingsHome /> },\n"
            "      { path: 'profile', element: <ProfileSettings /> },\n"
            "    ],\n"
            "  },\n"
            "];\n"
        ))

        assert _paths(routes) == ["/", "/settings", "/settings/(index)", "/settings/profile"]
        assert {r.routing_style for r in routes} == {STYLE_OBJECT}
        # structural matches win over the lexical pass
        assert all(r.match_kind == MATCH_STRUCTURAL for r in routes)

    def test_lazy_component_in_object(self, parser: SourceParser):
        """lazy() components inside route objects."""
        routes = _routes(parser, "src/router.ts", (
            "export const routes = [\n"
            "  { path: '/reports', component: () => import('./pages/Reports.vue') },\n"
            "];\n"
        ), framework="vue")

        assert len(routes) == 1
        ref = routes[0].component
        assert ref.specifier == "./pages/Reports.vue"
        assert ref.export_name == "default"

    def test_angular_load_component(self, parser: SourceParser):
        """Angular loadComponent routes."""
        routes = _routes(parser, "src/app/app.routes.ts", (
            "export const routes: Routes = [\n"
            "  { path: 'heroes', loadComponent: () => import('./heroes.component').then(m => m.HeroesComponent) },\n"
            "  { path: 'home', component: HomeComponent },\n"
            "];\n"
        ), framework="angular")

        by_path = {r.route_path: r for r in routes}
        assert by_path["/heroes"].component.specifier == "./heroes.component"
        assert by_path["/heroes"].component.export_name == "HeroesComponent"
        assert by_path["/home"].component.name == "HomeComponent"

    def test_non_route_objects_ignored(self, parser: SourceParser):
        """Objects without a path are not routes."""
        routes = _routes(parser, "src/config.ts", (
            "export const settings = { path: '/tmp/cache', retries: 3 };\n"
            "export const theme = { element: 'div' };\n"
        ))

        assert routes == []


class TestLexicalRoutes:
    """Regular-expression fallback."""

    def test_strip_comments_keeps_layout(self):
        """Comment stripping preserves line numbers."""
        text = "a // { path: '/x', element: <X /> }\nb /* c */ 'd // e'"
        stripped = strip_comments(text)

        assert len(stripped) == len(text)
        assert "path" not in stripped
        assert "'d // e'" in stripped

    def test_lexical_match_with_children_prefix(self):
        """The regex pass finds routes the parser cannot."""
        text = (
            "routes = [{ path: '/shop', component: Shop, children: [\n"
            "  { path: 'cart', component: Cart },\n"
            "]}]\n"
        )
        routes = lexical_routes("src/routes.js", text)

        assert _paths(routes) == ["/shop", "/shop/cart"]
        assert all(r.match_kind == MATCH_LEXICAL for r in routes)

    def test_lexical_skips_lowercase_components(self):
        assert lexical_routes("src/x.js", "{ path: '/a', component: 'div' }") == []


class TestFileConventions:
    """Directory-layout routing."""

    @pytest.mark.parametrize("path,expected", [
        ("app/page.tsx", "/"),
        ("app/blog/[slug]/page.tsx", "/blog/:slug"),
        ("src/app/(marketing)/about/page.tsx", "/about"),
        ("app/docs/[...parts]/page.tsx", "/docs/*"),
        ("app/blog/layout.tsx", None),
        ("app/_internal/page.tsx", None),
        ("components/page.tsx", None),
    ])
    def test_nextjs_app(self, path: str, expected):
        """Next.js app router segments."""
        assert FILE_CONVENTIONS["nextjs-app"].route_for(path) == expected

    @pytest.mark.parametrize("path,expected", [
        ("pages/index.tsx", "/"),
        ("pages/users/[id].tsx", "/users/:id"),
        ("pages/_app.tsx", None),
        ("pages/api/hello.ts", None),
    ])
    def test_nextjs_pages(self, path: str, expected):
        """Next.js pages router files."""
        assert FILE_CONVENTIONS["nextjs-pages"].route_for(path) == expected

    def test_sveltekit_and_nuxt(self):
        """SvelteKit and Nuxt page conventions."""
        assert FILE_CONVENTIONS["sveltekit"].route_for("src/routes/blog/[slug]/+page.svelte") == "/blog/:slug"
        assert FILE_CONVENTIONS["sveltekit"].route_for("src/routes/+layout.svelte") is None
        assert FILE_CONVENTIONS["nuxt"].route_for("pages/users/_id.vue") == "/users/:id"

    def test_convention_route_is_self(self, parser: SourceParser):
        """Convention routes render the file itself."""
        routes = _routes(parser, "app/settings/page.tsx",
                         "export default function Page() { return <div />; }\n", framework="nextjs")

        assert len(routes) == 1
        assert routes[0].route_path == "/settings"
        assert routes[0].routing_style == STYLE_CONVENTION
        assert routes[0].component.is_self


class TestClassification:
    """Route file labels."""

    def test_classify(self, parser: SourceParser):
        """Route files are labelled by how they declare routes."""
        routes = _routes(parser, "src/pages/Dashboard.tsx",
                         'const t = <Route path="/d" element={<D />} />;\n')

        assert classify_route_file("src/App.tsx", routes) == "primary"
        assert classify_route_file("src/pages/Dashboard.tsx", routes) == "component-with-routes"
        assert classify_route_file("src/__tests__/App.test.tsx", routes) == "test"
        assert classify_route_file("src/Button.tsx", []) == ""


def test_extraction_is_memoized(parser: SourceParser):
    """Extraction is cached by content hash."""
    extractor = RouteExtractor("react-router")
    parsed = parser.parse("src/App.tsx", b'const t = <Route path="/a" element={<A />} />;\n')

    first = extractor.extract_routes(parsed, "h1")
    second = extractor.extract_routes(parsed, "h1")

    assert [r.route_path for r in first] == [r.route_path for r in second] == ["/a"]
    assert extractor.memo.hits == 1
