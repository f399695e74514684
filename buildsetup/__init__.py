"""Top-level package for the build-setup CI declaration."""
from importlib import metadata

try:
    __version__ = metadata.version("build-setup")
except metadata.PackageNotFoundError:  # type: ignore[attr-defined]
    __version__ = "0.0.0"

__all__ = ["__version__"]
