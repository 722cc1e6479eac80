# src/recursa/models/memory.py
"""Scratchpad entry data model."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field


class ScratchpadEntry(BaseModel):
    """One compressed working-memory note for a drill-down iteration.

    Entries are never mutated; a write replaces the whole entry.
    """

    model_config = ConfigDict(frozen=True, ser_json_bytes="base64", val_json_bytes="base64")

    iteration_id: str
    compressed_content: bytes
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
