# src/recursa/models/relevance.py
"""Relevance score data model."""

from pydantic import BaseModel, Field


class RelevanceScore(BaseModel):
    """Relevance of one chunk to the query, from one scoring call."""

    chunk_index: int
    score: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
