# src/recursa/models/__init__.py
"""Data models for Recursa."""

from recursa.models.answer import Answer, ProcessingMetadata, RunRecord, RunResult
from recursa.models.chunk import Chunk
from recursa.models.claim import Claim, Verdict, VerificationResult, VerificationStatus
from recursa.models.document import Document
from recursa.models.drill import DrillPhase, DrillState, TerminalReason
from recursa.models.graph import Entity, KnowledgeGraph, Relation, normalize_name
from recursa.models.memory import ScratchpadEntry
from recursa.models.relevance import RelevanceScore
from recursa.models.usage import TokenUsage

__all__ = [
    "Answer",
    "Chunk",
    "Claim",
    "Document",
    "DrillPhase",
    "DrillState",
    "Entity",
    "KnowledgeGraph",
    "ProcessingMetadata",
    "Relation",
    "RelevanceScore",
    "RunRecord",
    "RunResult",
    "ScratchpadEntry",
    "TerminalReason",
    "TokenUsage",
    "Verdict",
    "VerificationResult",
    "VerificationStatus",
    "normalize_name",
]
