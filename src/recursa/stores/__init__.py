# src/recursa/stores/__init__.py
"""Storage abstractions for Recursa."""

from recursa.stores.base import RunStore, ScratchpadStore, VectorStore
from recursa.stores.memory import InMemoryVectorStore
from recursa.stores.sqlite_run import SQLiteRunStore, SQLiteScratchpadStore

try:
    from recursa.stores.chroma import ChromaVectorStore
except ImportError:
    from recursa._optional import _create_missing_dependency_class

    ChromaVectorStore = _create_missing_dependency_class(  # type: ignore[misc,assignment]
        "ChromaVectorStore", "chroma"
    )

__all__ = [
    "VectorStore",
    "RunStore",
    "ScratchpadStore",
    "InMemoryVectorStore",
    "SQLiteRunStore",
    "SQLiteScratchpadStore",
    "ChromaVectorStore",
]
