# src/recursa/providers/sentence_transformers.py
"""Token-level embeddings from a local sentence-transformers model.

Requires the 'late' extra: pip install recursa-rag[late]
"""

from __future__ import annotations

import logging
from typing import Any

from sentence_transformers import SentenceTransformer

from recursa.providers.base import TokenEmbeddingClient
from recursa.timing import timed

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_MODEL = "sentence-transformers/all-MiniLM-L6-v2"


class SentenceTransformerTokenClient(TokenEmbeddingClient):
    """Expose per-token vectors and character offsets for late chunking.

    Example:
        from recursa.chunker import LateChunkEmbedder
        from recursa.providers.sentence_transformers import SentenceTransformerTokenClient

        embedder = LateChunkEmbedder(SentenceTransformerTokenClient())
        vectors = embedder.embed_chunks(document.text, chunks)
    """

    def __init__(
        self,
        model_name: str = DEFAULT_TOKEN_MODEL,
        device: str = "cpu",
        chars_per_token: int = 4,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self.chars_per_token = chars_per_token
        self._model: Any = None

    def _load_model(self) -> SentenceTransformer:
        if self._model is None:
            with timed(logger, "embed.model.load", model=self.model_name):
                self._model = SentenceTransformer(self.model_name, device=self.device)
        return self._model

    @property
    def max_chars(self) -> int:
        model = self._load_model()
        # Leave room for special tokens
        return max(1, (model.max_seq_length - 2) * self.chars_per_token)

    def embed_tokens(self, text: str) -> tuple[list[list[float]], list[tuple[int, int]]]:
        model = self._load_model()
        with timed(logger, "embed.tokens", chars=len(text)):
            encoded = model.tokenizer(
                text,
                return_offsets_mapping=True,
                truncation=True,
                max_length=model.max_seq_length,
            )
            token_vectors = model.encode(
                text,
                output_value="token_embeddings",
                convert_to_numpy=True,
            )
        offsets = [(int(s), int(e)) for s, e in encoded["offset_mapping"]]
        count = min(len(offsets), len(token_vectors))
        return [list(map(float, v)) for v in token_vectors[:count]], offsets[:count]
