"""sosbeacon on-device emergency agent."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__: str = version("sosbeacon")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
