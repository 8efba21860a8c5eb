"""Pytest configuration and fixtures for RouteGraph tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from routegraph.builder import GraphBuilder
from routegraph.config import EngineConfig
from routegraph.engine import EngineState
from routegraph.parser import SourceParser
from routegraph.routes import RouteExtractor


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Keep the user's ~/.routegraph/config.toml out of every test."""
    home = tmp_path_factory.mktemp("routegraph-home")
    monkeypatch.setattr("routegraph.config.BASE_DIR", home)
    monkeypatch.setattr("routegraph.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Path to the read-only sample React Router app."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture
def sample_app(temp_dir: Path, sample_app_path: Path) -> Path:
    """A writable copy of the sample app (snapshots land inside the root)."""
    root = temp_dir / "sample_app"
    shutil.copytree(sample_app_path, root)
    return root


@pytest.fixture
def engine(sample_app: Path) -> EngineState:
    """Engine over the sample app copy, graph built."""
    state = EngineState(sample_app, EngineConfig(workers=2))
    state.initialize()
    return state


@pytest.fixture
def parser() -> SourceParser:
    return SourceParser(EngineConfig())


@pytest.fixture
def builder() -> Callable[[str], GraphBuilder]:
    """Factory for a builder bound to one framework."""

    def _make(framework: str = "react-router") -> GraphBuilder:
        config = EngineConfig(workers=2)
        return GraphBuilder(config, SourceParser(config), RouteExtractor(framework))

    return _make


@pytest.fixture
def write_project(temp_dir: Path) -> Callable[[Dict[str, str]], Path]:
    """Write ``{relative path: source}`` under a fresh project root."""

    def _write(files: Dict[str, str]) -> Path:
        root = temp_dir / "project"
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root

    return _write
