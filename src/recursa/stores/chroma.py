# src/recursa/stores/chroma.py
"""ChromaDB vector store implementation."""

from pathlib import Path
from typing import Any

import chromadb

from recursa.stores.base import VectorStore


class ChromaVectorStore(VectorStore):
    """ChromaDB-based chunk embedding store."""

    def __init__(self, persist_dir: str, collection_name: str = "recursa") -> None:
        """Initialize the ChromaDB store."""
        Path(persist_dir).mkdir(parents=True, exist_ok=True)
        self._client = chromadb.PersistentClient(path=persist_dir)
        self._collection = self._client.get_or_create_collection(
            name=collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    def close(self) -> None:
        """Close the store and release resources.

        ChromaDB doesn't have an official close method, so we call the internal
        _system.stop() to release file handles.

        See: https://github.com/chroma-core/chroma/issues/5868
        """
        self._collection = None  # type: ignore[assignment]

        # ChromaDB lacks official close() - use internal _system.stop() workaround
        try:
            if self._client is not None and hasattr(self._client, "_system"):
                self._client._system.stop()
        except Exception:
            pass  # Best effort cleanup

        self._client = None  # type: ignore[assignment]

    def put(self, chunk_id: str, vector: list[float], metadata: dict[str, Any] | None = None) -> None:
        """Store a vector, overwriting if the chunk ID exists."""
        # Chroma rejects empty metadata dicts
        self._collection.upsert(
            ids=[chunk_id],
            embeddings=[vector],  # type: ignore[arg-type]
            metadatas=[metadata] if metadata else None,  # type: ignore[arg-type]
        )

    def query(
        self,
        vector: list[float],
        k: int = 5,
        where: dict[str, Any] | None = None,
    ) -> list[str]:
        """Return chunk IDs ranked by cosine similarity."""
        total = self._collection.count()
        if total == 0 or k <= 0:
            return []

        results = self._collection.query(
            query_embeddings=[vector],  # type: ignore[arg-type]
            n_results=min(k, total),
            where=where or None,  # type: ignore[arg-type]
            include=["distances"],
        )
        return list(results["ids"][0])

    def delete(self, chunk_ids: list[str]) -> None:
        """Delete vectors by chunk ID."""
        if not chunk_ids:
            return
        self._collection.delete(ids=chunk_ids)

    def count(self) -> int:
        """Count the total number of vectors in the store."""
        return self._collection.count()
