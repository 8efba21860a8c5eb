"""RouteGraph: static route-impact analysis for front-end codebases."""

__version__ = "0.1.0"

from .engine import EngineState  # noqa: E402

__all__ = ["EngineState", "__version__"]
