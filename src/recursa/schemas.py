# src/recursa/schemas.py
"""Wire schemas for structured model output.

Every schema-validated gateway call parses the model's JSON into one of
these. Unknown fields are ignored. Missing required fields fail validation,
which the gateway answers with one reinforced retry.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from recursa.models import Verdict


def _clamp_unit(value: Any, default: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(number):
        return default
    return min(1.0, max(0.0, number))


class WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class ExtractedEntity(WireModel):
    name: str
    type: str = "CONCEPT"
    confidence: float = 0.0
    mentions: list[str] = Field(default_factory=list)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _clamp_unit(value)

    @field_validator("type", mode="before")
    @classmethod
    def _type(cls, value: Any) -> str:
        return str(value).strip().upper() if value else "CONCEPT"


class ExtractedRelation(WireModel):
    from_entity: str
    to_entity: str
    relation_type: str
    confidence: float = 0.0
    evidence: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _clamp_unit(value)

    @field_validator("relation_type", mode="before")
    @classmethod
    def _relation_type(cls, value: Any) -> str:
        return str(value).strip().upper().replace(" ", "_")


class EntityExtractionResult(WireModel):
    """Entities and relations found in a set of text spans."""

    entities: list[ExtractedEntity]
    relations: list[ExtractedRelation] = Field(default_factory=list)


class ScoredChunk(WireModel):
    chunk_index: int
    relevance_score: float | None = None
    reasoning: str = ""

    @field_validator("relevance_score", mode="before")
    @classmethod
    def _score(cls, value: Any) -> float | None:
        # Malformed or out-of-range scores become None; the scorer maps None to 0.0
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if math.isnan(number) or not 0.0 <= number <= 1.0:
            return None
        return number

    @field_validator("reasoning", mode="before")
    @classmethod
    def _reasoning(cls, value: Any) -> str:
        return "" if value is None else str(value)


class RelevanceResult(WireModel):
    """One relevance score per chunk in the batch."""

    chunks: list[ScoredChunk]


class AnswerResult(WireModel):
    """A cited answer. sources_used holds chunk indices as strings."""

    answer: str
    sources_used: list[str] = Field(default_factory=list)
    confidence_score: float = 0.0

    @field_validator("sources_used", mode="before")
    @classmethod
    def _sources(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        return [str(v) for v in value]

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _clamp_unit(value)


class ClaimDecomposition(WireModel):
    """Atomic factual claims contained in a draft answer."""

    claims: list[str]

    @field_validator("claims")
    @classmethod
    def _strip(cls, value: list[str]) -> list[str]:
        return [c.strip() for c in value if c and c.strip()]


class ClaimVerdict(WireModel):
    """Verdict on one claim, with evidence quoted from the context."""

    verdict: Verdict
    evidence: str = ""
    confidence: float = 0.0

    @field_validator("verdict", mode="before")
    @classmethod
    def _verdict(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _confidence(cls, value: Any) -> float:
        return _clamp_unit(value)
