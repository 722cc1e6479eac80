# src/recursa/models/drill.py
"""Drill-down state machine data models."""

from enum import Enum

from pydantic import BaseModel, Field

from recursa.models.chunk import Chunk


class DrillPhase(str, Enum):
    """States of the drill-down controller."""

    INITIAL = "initial"
    SCORING = "scoring"
    SELECTING = "selecting"
    DRILLING = "drilling"
    TERMINAL = "terminal"


class TerminalReason(str, Enum):
    """Why the controller stopped. None of these is an error."""

    NO_RELEVANT_CHUNKS = "no_relevant_chunks"
    RECURSION_LIMIT = "recursion_limit"
    GRANULARITY_REACHED = "granularity_reached"
    NO_CHILDREN = "no_children"
    CANCELLED = "cancelled"


class DrillState(BaseModel):
    """Depth-tagged work state of one drill-down traversal.

    Invariants: depth never exceeds the configured maximum and a span in
    visited_spans is never scored again.
    """

    depth: int = 0
    phase: DrillPhase = DrillPhase.INITIAL
    frontier: list[Chunk] = Field(default_factory=list)
    selected: list[Chunk] = Field(default_factory=list)
    leaves: list[Chunk] = Field(default_factory=list)
    visited_spans: set[tuple[int, int]] = Field(default_factory=set)
    terminal_reason: TerminalReason | None = None
    steps: int = 0

    def mark_visited(self, chunks: list[Chunk]) -> None:
        self.visited_spans.update(c.char_span for c in chunks)

    def is_visited(self, chunk: Chunk) -> bool:
        return chunk.char_span in self.visited_spans

    def add_leaves(self, chunks: list[Chunk]) -> None:
        known = {c.char_span for c in self.leaves}
        for chunk in chunks:
            if chunk.char_span not in known:
                self.leaves.append(chunk)
                known.add(chunk.char_span)

    def context_chunks(self) -> list[Chunk]:
        """Leaf chunks ordered by position in the document."""
        return sorted(self.leaves, key=lambda c: (c.start, c.end))
