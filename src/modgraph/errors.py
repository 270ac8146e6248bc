"""Exception types raised by modgraph."""

from __future__ import annotations

from pathlib import Path  # noqa: TC003


class ModgraphError(Exception):
    """Base class for all modgraph errors."""


class GraphInvariantError(ModgraphError):
    """The dependency graph is in a state that can only be caused by a bug.

    This is never caught inside the engine: it aborts the run.
    """


class FetchError(ModgraphError):
    """A transient failure talking to a remote service."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        """Initialize a fetch error."""
        super().__init__(message)
        self.status_code: int | None = status_code

    @property
    def is_not_found(self) -> bool:
        """Whether the remote service reported that the resource does not exist."""
        return self.status_code == 404  # noqa: PLR2004


class CacheWriteError(ModgraphError):
    """A single cache could not be persisted."""

    def __init__(self, cache_name: str, path: Path, cause: Exception) -> None:
        """Initialize a cache write error."""
        super().__init__(f"failed to write {cache_name} cache {path}: {cause}")
        self.cache_name: str = cache_name
        self.path: Path = path
        self.cause: Exception = cause


class SourceURLError(ValueError):
    """A module source URL does not match any known hosting pattern."""
