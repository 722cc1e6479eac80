# src/recursa/context.py
"""Per-run state passed explicitly through every stage."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from recursa.models import (
    Answer,
    Chunk,
    DrillState,
    Entity,
    KnowledgeGraph,
    Relation,
    RelevanceScore,
    RunRecord,
    TokenUsage,
)
from recursa.scratchpad import Scratchpad

if TYPE_CHECKING:
    from recursa.cancel import CancellationToken
    from recursa.exceptions import OptionalStageFailure
    from recursa.gateway import CallResult
    from recursa.models import Document
    from recursa.settings import Settings

logger = logging.getLogger(__name__)


@dataclass
class RunContext:
    """Everything one pipeline run owns.

    Nothing here outlives the run unless exported with export() or
    persisted through a RunStore. Graph and scratchpad writes from
    concurrent branches go through `lock`.
    """

    query: str
    document: Document
    settings: Settings
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    scratchpad: Scratchpad | None = None
    cancel_token: CancellationToken | None = None
    chunks: dict[int, Chunk] = field(default_factory=dict)
    scores: dict[int, RelevanceScore] = field(default_factory=dict)
    drill: DrillState = field(default_factory=DrillState)
    graph: KnowledgeGraph = field(default_factory=KnowledgeGraph)
    degraded_stages: list[str] = field(default_factory=list)
    usage: TokenUsage = field(default_factory=TokenUsage)
    model_calls: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    started_at: float = field(default_factory=time.perf_counter)
    _next_index: int = 0

    def __post_init__(self) -> None:
        if self.scratchpad is None:
            self.scratchpad = Scratchpad(
                max_entries=self.settings.scratchpad_max_entries,
                compression_level=self.settings.compression_level,
            )

    def register_chunks(self, chunks: list[Chunk]) -> None:
        """Record chunks and advance the run-wide index counter past them."""
        for chunk in chunks:
            self.chunks[chunk.index] = chunk
            self._next_index = max(self._next_index, chunk.index + 1)

    def allocate_indices(self, count: int) -> int:
        """Reserve count consecutive chunk indices; return the first."""
        first = self._next_index
        self._next_index += count
        return first

    def record_scores(self, scores: list[RelevanceScore]) -> None:
        for score in scores:
            self.scores[score.chunk_index] = score

    def record_call(self, result: CallResult) -> None:
        self.model_calls += result.attempts
        self.usage = self.usage + result.usage

    def mark_degraded(self, failure: OptionalStageFailure) -> None:
        """Log an optional-stage failure and flag the stage in the metadata."""
        logger.warning("Run %s continuing without %s: %s", self.run_id, failure.stage, failure.cause)
        if failure.stage not in self.degraded_stages:
            self.degraded_stages.append(failure.stage)

    async def merge_graph(self, entities: list[Entity], relations: list[Relation]) -> None:
        """Merge extraction results into the run graph under the writer lock."""
        async with self.lock:
            self.graph.merge(entities, relations)

    async def write_note(self, iteration_id: str, note: str) -> None:
        async with self.lock:
            self.scratchpad.write(iteration_id, note)  # type: ignore[union-attr]

    def elapsed(self) -> float:
        return time.perf_counter() - self.started_at

    def export(self, answer: Answer) -> RunRecord:
        """Snapshot the run in its persisted layout."""
        return RunRecord(
            run_id=self.run_id,
            knowledge_graph=self.graph.model_copy(deep=True),
            scratchpad_entries=self.scratchpad.entries() if self.scratchpad else [],
            answer=answer,
        )
