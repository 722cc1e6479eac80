# src/recursa/loaders/__init__.py
"""File loaders for Recursa."""

from recursa.loaders.base import Loader
from recursa.loaders.registry import LoaderRegistry
from recursa.loaders.text import TextLoader

# Optional loaders - imported lazily to avoid ImportError when deps not installed
__all__ = ["Loader", "LoaderRegistry", "TextLoader"]


def __getattr__(name: str) -> type:
    """Lazy import optional loaders."""
    if name == "PyPDFLoader":
        from recursa.loaders.pypdf_loader import PyPDFLoader

        return PyPDFLoader
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
