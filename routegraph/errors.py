"""Exception types raised inside the analysis engine.

Every condition here is recoverable: callers catch them at the engine
boundary and degrade (no cache, partial result) instead of aborting.
"""

from __future__ import annotations


class RouteGraphError(Exception):
    """Base class for engine errors."""


class BuildCancelled(RouteGraphError):
    """A full graph build was cancelled between file-parse units."""


class CacheCorruptionError(RouteGraphError):
    """A persisted snapshot failed checksum or format validation."""


class StorageUnavailableError(RouteGraphError):
    """The cache storage backend could not be read or written."""
