# src/recursa/scorer.py
"""Relevance scoring of chunks against a query."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from recursa.models import RelevanceScore
from recursa.prompts import PromptLibrary
from recursa.schemas import RelevanceResult

if TYPE_CHECKING:
    from recursa.context import RunContext
    from recursa.gateway import LMGateway
    from recursa.models import Chunk

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5


def select_relevant(
    scores: list[RelevanceScore],
    threshold: float = DEFAULT_THRESHOLD,
) -> list[RelevanceScore]:
    """Keep scores at or above threshold, in their original order."""
    return [s for s in scores if s.score >= threshold]


class RelevanceScorer:
    """Score chunks with batched, concurrent gateway calls.

    Chunks are grouped into batches of at most max_chunks_per_call and every
    batch is sent concurrently; the gateway bounds how many run at once.
    A chunk the model skips, or scores with a malformed or out-of-range
    value, gets 0.0 instead of failing its batch.

    Example:
        scorer = RelevanceScorer(gateway)
        scores = await scorer.score("Who founded Acme?", chunks)
        keep = select_relevant(scores, threshold=0.5)
    """

    def __init__(
        self,
        gateway: LMGateway,
        prompts: PromptLibrary | None = None,
        max_chunks_per_call: int = 10,
        temperature: float | None = 0.0,
    ) -> None:
        if max_chunks_per_call < 1:
            raise ValueError("max_chunks_per_call must be >= 1")
        self.gateway = gateway
        self.prompts = prompts or PromptLibrary()
        self.max_chunks_per_call = max_chunks_per_call
        self.temperature = temperature

    def _build_prompt(self, query: str, chunks: list[Chunk], notes: str) -> str:
        chunk_section = "\n\n".join(f"[{c.index}]\n{c.text.strip()}" for c in chunks)
        notes_section = f"\nNotes from earlier iterations:\n{notes}\n" if notes else ""
        return self.prompts.render(
            "relevance_scoring",
            query=query,
            chunks=chunk_section,
            notes_section=notes_section,
        )

    async def _score_batch(
        self,
        query: str,
        batch: list[Chunk],
        notes: str,
        ctx: RunContext | None,
    ) -> list[RelevanceScore]:
        result = await self.gateway.call(
            self._build_prompt(query, batch, notes),
            schema=RelevanceResult,
            temperature=self.temperature,
        )
        if ctx is not None:
            ctx.record_call(result)

        returned: dict[int, tuple[float | None, str]] = {}
        for item in result.result.chunks:
            # First answer for an index wins
            returned.setdefault(item.chunk_index, (item.relevance_score, item.reasoning))

        scores = []
        for chunk in batch:
            value, reasoning = returned.get(chunk.index, (None, "No score returned"))
            if value is None:
                logger.debug("Chunk %d has no usable score; defaulting to 0.0", chunk.index)
                value = 0.0
            scores.append(RelevanceScore(chunk_index=chunk.index, score=value, reasoning=reasoning))
        return scores

    async def score(
        self,
        query: str,
        chunks: list[Chunk],
        max_chunks_per_call: int | None = None,
        notes: str = "",
        *,
        ctx: RunContext | None = None,
    ) -> list[RelevanceScore]:
        """Score every chunk, one RelevanceScore per chunk in input order.

        Args:
            query: The user question.
            chunks: Chunks to score.
            max_chunks_per_call: Batch size. Default: the scorer's setting.
            notes: Working notes from earlier iterations, added to the prompt.
            ctx: Run context that records model usage.

        Raises:
            GatewayError: If any batch fails. Scoring is a mandatory stage.
        """
        if not chunks:
            return []
        size = max_chunks_per_call or self.max_chunks_per_call
        batches = [chunks[i : i + size] for i in range(0, len(chunks), size)]

        results = await asyncio.gather(
            *[self._score_batch(query, batch, notes, ctx) for batch in batches],
            return_exceptions=True,
        )

        scores: list[RelevanceScore] = []
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            logger.error("%d/%d scoring batches failed", len(errors), len(batches))
            raise errors[0]
        for batch_scores in results:
            scores.extend(batch_scores)  # type: ignore[arg-type]
        return scores
