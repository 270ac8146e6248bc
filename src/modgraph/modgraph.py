"""Version and application directory utilities for modgraph."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as meta_version

from platformdirs import PlatformDirs

__all__ = ["APP_DIRS", "version"]


def version() -> str:
    """Get the installed version of modgraph."""
    try:
        return meta_version("modgraph")
    except PackageNotFoundError:
        from . import __version__  # noqa: PLC0415

        return __version__


APP_DIRS = PlatformDirs("modgraph", "modgraph")
