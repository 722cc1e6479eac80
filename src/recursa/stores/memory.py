# src/recursa/stores/memory.py
"""In-process vector store backed by numpy."""

from typing import Any

import numpy as np

from recursa.stores.base import VectorStore


class InMemoryVectorStore(VectorStore):
    """Cosine-similarity vector store that lives for the life of the process.

    Suitable for single runs and tests. Use ChromaVectorStore to keep
    embeddings on disk.
    """

    def __init__(self) -> None:
        self._ids: list[str] = []
        self._vectors: list[np.ndarray] = []
        self._metadata: list[dict[str, Any]] = []
        self._positions: dict[str, int] = {}

    def put(self, chunk_id: str, vector: list[float], metadata: dict[str, Any] | None = None) -> None:
        array = np.asarray(vector, dtype=np.float32)
        norm = float(np.linalg.norm(array))
        if norm > 0:
            array = array / norm
        position = self._positions.get(chunk_id)
        if position is None:
            self._positions[chunk_id] = len(self._ids)
            self._ids.append(chunk_id)
            self._vectors.append(array)
            self._metadata.append(dict(metadata or {}))
        else:
            self._vectors[position] = array
            self._metadata[position] = dict(metadata or {})

    def query(
        self,
        vector: list[float],
        k: int = 5,
        where: dict[str, Any] | None = None,
    ) -> list[str]:
        candidates = [
            i
            for i, meta in enumerate(self._metadata)
            if not where or all(meta.get(key) == value for key, value in where.items())
        ]
        if not candidates or k <= 0:
            return []

        q = np.asarray(vector, dtype=np.float32)
        norm = float(np.linalg.norm(q))
        if norm > 0:
            q = q / norm
        matrix = np.stack([self._vectors[i] for i in candidates])
        sims = matrix @ q
        kk = min(k, sims.shape[0])
        top = np.argpartition(sims, -kk)[-kk:]
        ranked = sorted((int(i) for i in top), key=lambda i: float(sims[i]), reverse=True)
        return [self._ids[candidates[i]] for i in ranked]

    def delete(self, chunk_ids: list[str]) -> None:
        doomed = set(chunk_ids)
        keep = [i for i, cid in enumerate(self._ids) if cid not in doomed]
        self._ids = [self._ids[i] for i in keep]
        self._vectors = [self._vectors[i] for i in keep]
        self._metadata = [self._metadata[i] for i in keep]
        self._positions = {cid: i for i, cid in enumerate(self._ids)}

    def count(self) -> int:
        return len(self._ids)
