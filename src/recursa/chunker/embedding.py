# src/recursa/chunker/embedding.py
"""Chunk embeddings: late chunking and isolated chunk embedding."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import numpy as np

from recursa.timing import timed

if TYPE_CHECKING:
    from recursa.models import Chunk
    from recursa.providers.base import EmbeddingClient, TokenEmbeddingClient

logger = logging.getLogger(__name__)


def _normalize(vector: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vector))
    return vector / norm if norm > 0 else vector


class ChunkEmbedder(ABC):
    """Abstract base class for chunk embedding strategies."""

    @abstractmethod
    def embed_chunks(self, document_text: str, chunks: list[Chunk]) -> list[list[float]]:
        """Embed chunks of document_text. result[i] corresponds to chunks[i]."""
        ...

    @abstractmethod
    def embed_query(self, query: str) -> list[float]:
        """Embed a query in the same space as the chunks."""
        ...


class LateChunkEmbedder(ChunkEmbedder):
    """Embed the whole document once, then mean-pool token vectors per chunk.

    Each chunk's vector is computed from token embeddings that saw the
    surrounding document, so references such as "it" or "the company" keep
    the meaning they have in context. Documents longer than the model window
    are embedded in overlapping windows.

    Example:
        from recursa.providers.sentence_transformers import SentenceTransformerTokenClient

        embedder = LateChunkEmbedder(SentenceTransformerTokenClient())
        vectors = embedder.embed_chunks(document.text, chunks)
    """

    def __init__(self, client: TokenEmbeddingClient, window_overlap: float = 0.25) -> None:
        """Initialize the embedder.

        Args:
            client: Token-level embedding provider.
            window_overlap: Fraction of each window shared with the next one.
        """
        if not 0.0 <= window_overlap < 1.0:
            raise ValueError("window_overlap must be in [0, 1)")
        self.client = client
        self.window_overlap = window_overlap

    def _windows(self, length: int) -> list[tuple[int, int]]:
        size = max(1, self.client.max_chars)
        if length <= size:
            return [(0, length)]
        step = max(1, int(size * (1.0 - self.window_overlap)))
        windows = []
        start = 0
        while True:
            end = min(start + size, length)
            windows.append((start, end))
            if end == length:
                return windows
            start += step

    def token_embeddings(self, text: str) -> tuple[np.ndarray, np.ndarray]:
        """Token vectors and their document-level (start, end) offsets."""
        vectors: list[list[float]] = []
        offsets: list[tuple[int, int]] = []
        windows = self._windows(len(text))
        with timed(logger, "embed.late", chars=len(text), windows=len(windows)):
            for window_start, window_end in windows:
                window_vectors, window_offsets = self.client.embed_tokens(
                    text[window_start:window_end]
                )
                for vector, (start, end) in zip(window_vectors, window_offsets, strict=True):
                    if end <= start:
                        continue  # special tokens
                    vectors.append(vector)
                    offsets.append((window_start + start, window_start + end))
        if not vectors:
            return np.zeros((0, 0), dtype=np.float32), np.zeros((0, 2), dtype=np.int64)
        return np.asarray(vectors, dtype=np.float32), np.asarray(offsets, dtype=np.int64)

    def embed_chunks(self, document_text: str, chunks: list[Chunk]) -> list[list[float]]:
        if not chunks:
            return []
        vectors, offsets = self.token_embeddings(document_text)
        if vectors.shape[0] == 0:
            raise ValueError("Token embedding client returned no tokens")

        pooled: list[list[float]] = []
        for chunk in chunks:
            inside = (offsets[:, 0] >= chunk.start) & (offsets[:, 1] <= chunk.end)
            if not inside.any():
                # Chunk smaller than a token: use every token that touches it
                inside = (offsets[:, 0] < chunk.end) & (offsets[:, 1] > chunk.start)
            selected = vectors[inside] if inside.any() else vectors
            pooled.append(_normalize(selected.mean(axis=0)).tolist())
        return pooled

    def embed_query(self, query: str) -> list[float]:
        vectors, _ = self.token_embeddings(query)
        if vectors.shape[0] == 0:
            raise ValueError("Token embedding client returned no tokens for query")
        return _normalize(vectors.mean(axis=0)).tolist()


class IsolatedChunkEmbedder(ChunkEmbedder):
    """Embed each chunk's text on its own through an EmbeddingClient.

    Cheaper than late chunking with a hosted embedding API, but a chunk
    loses the context of its neighbours.
    """

    def __init__(self, client: EmbeddingClient) -> None:
        self.client = client

    def embed_chunks(self, document_text: str, chunks: list[Chunk]) -> list[list[float]]:
        if not chunks:
            return []
        with timed(logger, "embed.isolated", chunks=len(chunks)):
            vectors = self.client.embed([c.text for c in chunks])
        return [_normalize(np.asarray(v, dtype=np.float32)).tolist() for v in vectors]

    def embed_query(self, query: str) -> list[float]:
        vector = self.client.embed([query])[0]
        return _normalize(np.asarray(vector, dtype=np.float32)).tolist()
