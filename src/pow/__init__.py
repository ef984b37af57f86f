"""pow: keep a checkout in step with its main branch."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("pow-cli")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"  # Fallback for editable installs without metadata

__all__ = ["__version__"]
