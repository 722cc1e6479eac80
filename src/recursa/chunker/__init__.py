# src/recursa/chunker/__init__.py
"""Chunking functionality for Recursa.

This module exports:
- SentenceChunker: Sentence-respecting chunker (pySBD)
- ChunkEmbedder: Abstract base class for chunk embedding strategies
- LateChunkEmbedder: Pools full-document token embeddings per chunk
- IsolatedChunkEmbedder: Embeds each chunk's text on its own

Example:
    from recursa.chunker import SentenceChunker

    chunks = SentenceChunker().split(text, target_chunk_count=8)
"""

from recursa.chunker.embedding import ChunkEmbedder, IsolatedChunkEmbedder, LateChunkEmbedder
from recursa.chunker.sentence import SentenceChunker

__all__ = ["ChunkEmbedder", "IsolatedChunkEmbedder", "LateChunkEmbedder", "SentenceChunker"]
