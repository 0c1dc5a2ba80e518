"""kubemirror - watch-backed resource caches for Kubernetes dashboards."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kubemirror")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
