# src/recursa/models/answer.py
"""Answer and run result data models."""

from pydantic import BaseModel, Field

from recursa.models.chunk import Chunk
from recursa.models.claim import VerificationResult
from recursa.models.drill import TerminalReason
from recursa.models.graph import KnowledgeGraph
from recursa.models.memory import ScratchpadEntry
from recursa.models.usage import TokenUsage


class ProcessingMetadata(BaseModel):
    """Explains how an answer was produced and any confidence shortfall."""

    run_id: str
    chunks_processed: int = 0
    recursion_depth: int = 0
    terminal_reason: TerminalReason | None = None
    degraded_stages: list[str] = Field(default_factory=list)
    model_calls: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    processing_time_seconds: float = 0.0

    @property
    def degraded_confidence(self) -> bool:
        return bool(self.degraded_stages)


class Answer(BaseModel):
    """Final cited answer."""

    text: str
    sources_used: list[int] = Field(default_factory=list)
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0)
    metadata: ProcessingMetadata | None = None


class RunResult(BaseModel):
    """Everything a pipeline run produces."""

    query: str
    answer: Answer
    knowledge_graph: KnowledgeGraph = Field(default_factory=KnowledgeGraph)
    verification: VerificationResult | None = None
    scratchpad_entries: list[ScratchpadEntry] = Field(default_factory=list)
    context: list[Chunk] = Field(default_factory=list)


class RunRecord(BaseModel):
    """Persisted layout of a run."""

    run_id: str
    knowledge_graph: KnowledgeGraph
    scratchpad_entries: list[ScratchpadEntry] = Field(default_factory=list)
    answer: Answer
