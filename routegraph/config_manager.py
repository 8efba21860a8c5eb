"""TOML configuration loading for RouteGraph.

Settings are merged in order: built-in defaults, the global
``~/.routegraph/config.toml`` and the project's ``.routegraph.toml``.
Both files use an ``[engine]`` table whose keys mirror
:class:`~routegraph.config.EngineConfig` fields.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config as config_module
from .config import PROJECT_CONFIG_NAME, EngineConfig

logger = logging.getLogger(__name__)

_FIELD_NAMES = {f.name for f in fields(EngineConfig)}


def _read_engine_table(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)
        return {}
    table = data.get("engine", {})
    if not isinstance(table, dict):
        logger.warning("Ignoring [engine] in %s: expected a table", path)
        return {}
    unknown = sorted(set(table) - _FIELD_NAMES)
    if unknown:
        logger.warning("Unknown config keys in %s: %s", path, ", ".join(unknown))
    return {k: v for k, v in table.items() if k in _FIELD_NAMES}


def load_config(root: Optional[Path] = None, **overrides: Any) -> EngineConfig:
    """Build an :class:`EngineConfig` for *root*.

    Args:
        root: Project root; its ``.routegraph.toml`` is merged last.
        **overrides: Explicit values (e.g. from CLI flags) that win over files.

    Returns:
        The merged configuration.
    """
    settings: Dict[str, Any] = {}
    settings.update(_read_engine_table(config_module.CONFIG_FILE))
    if root is not None:
        settings.update(_read_engine_table(Path(root) / PROJECT_CONFIG_NAME))
    settings.update({k: v for k, v in overrides.items() if v is not None})

    cfg = EngineConfig()
    for key, value in settings.items():
        if key == "path_aliases" and isinstance(value, dict):
            merged = dict(cfg.path_aliases)
            merged.update({str(k): str(v) for k, v in value.items()})
            value = merged
        setattr(cfg, key, value)
    return cfg


def save_config(settings: Dict[str, Any], path: Optional[Path] = None) -> Path:
    """Write *settings* as the ``[engine]`` table of a TOML config file."""
    target = path or config_module.CONFIG_FILE
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        toml.dump({"engine": settings}, f)
    return target
