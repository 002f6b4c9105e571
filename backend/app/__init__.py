"""Coverage aggregator backend application."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("coverage-aggregator")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
