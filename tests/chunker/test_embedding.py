# tests/chunker/test_embedding.py
"""Tests for late chunking and isolated chunk embeddings."""

import re

import numpy as np
import pytest

from recursa.chunker import IsolatedChunkEmbedder, LateChunkEmbedder
from recursa.models import Chunk
from recursa.providers.base import EmbeddingClient, TokenEmbeddingClient

VOCAB = ["apple", "banana", "cherry"]


def _word_vector(word: str) -> list[float]:
    vector = [0.0] * (len(VOCAB) + 1)
    vector[VOCAB.index(word) if word in VOCAB else len(VOCAB)] = 1.0
    return vector


class WordTokenClient(TokenEmbeddingClient):
    """One token per word, one-hot over a tiny vocabulary, plus a [CLS] token."""

    def __init__(self, max_chars: int = 2000) -> None:
        self._max_chars = max_chars
        self.calls: list[str] = []

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def embed_tokens(self, text):
        self.calls.append(text)
        vectors = [[9.0] * (len(VOCAB) + 1)]
        offsets = [(0, 0)]
        for match in re.finditer(r"\w+", text):
            vectors.append(_word_vector(match.group()))
            offsets.append(match.span())
        return vectors, offsets


class LengthEmbeddingClient(EmbeddingClient):
    def embed(self, texts):
        return [[float(len(t)), 0.0] for t in texts]


def _chunks(text: str, spans: list[tuple[int, int]]) -> list[Chunk]:
    return [Chunk(index=i, text=text[s:e], char_span=(s, e)) for i, (s, e) in enumerate(spans)]


class TestLateChunkEmbedder:
    def test_pools_tokens_inside_each_chunk(self):
        text = "apple apple banana cherry"
        chunks = _chunks(text, [(0, 12), (12, len(text))])
        embedder = LateChunkEmbedder(WordTokenClient())

        first, second = embedder.embed_chunks(text, chunks)

        np.testing.assert_allclose(first, [1.0, 0.0, 0.0, 0.0], atol=1e-6)
        expected = np.array([0.0, 1.0, 1.0, 0.0]) / np.sqrt(2)
        np.testing.assert_allclose(second, expected, atol=1e-6)

    def test_special_tokens_are_skipped(self):
        embedder = LateChunkEmbedder(WordTokenClient())

        vectors, offsets = embedder.token_embeddings("apple banana")

        assert vectors.shape == (2, len(VOCAB) + 1)
        assert offsets.tolist() == [[0, 5], [6, 12]]

    def test_long_documents_use_overlapping_windows(self):
        client = WordTokenClient(max_chars=24)
        embedder = LateChunkEmbedder(client, window_overlap=0.5)
        text = "apple " * 10

        _, offsets = embedder.token_embeddings(text)

        assert len(client.calls) > 1
        # Offsets are document coordinates
        assert all(text[s:e] == "apple" for s, e in offsets.tolist())

    def test_query_embedding_is_normalized(self):
        embedder = LateChunkEmbedder(WordTokenClient())

        vector = embedder.embed_query("banana cherry")

        assert np.linalg.norm(vector) == pytest.approx(1.0)

    def test_invalid_overlap(self):
        with pytest.raises(ValueError):
            LateChunkEmbedder(WordTokenClient(), window_overlap=1.0)


class TestIsolatedChunkEmbedder:
    def test_embeds_chunk_texts(self):
        text = "apple banana"
        chunks = _chunks(text, [(0, 6), (6, 12)])
        embedder = IsolatedChunkEmbedder(LengthEmbeddingClient())

        vectors = embedder.embed_chunks(text, chunks)

        assert vectors == [[1.0, 0.0], [1.0, 0.0]]

    def test_empty(self):
        assert IsolatedChunkEmbedder(LengthEmbeddingClient()).embed_chunks("x", []) == []
