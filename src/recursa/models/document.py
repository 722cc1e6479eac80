# src/recursa/models/document.py
"""Document data model."""

import hashlib

from pydantic import BaseModel, ConfigDict, Field, model_validator


def content_hash(text: str) -> str:
    """Stable identifier derived from document text."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


class Document(BaseModel):
    """Raw text plus a stable identifier. Immutable once ingested."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default="")
    text: str
    source: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _default_id(cls, data: object) -> object:
        if isinstance(data, dict) and not data.get("id") and isinstance(data.get("text"), str):
            data = {**data, "id": content_hash(data["text"])}
        return data

    @classmethod
    def combine(cls, texts: list[str], source: str | None = None) -> "Document":
        """Join several texts into one document, separated by blank lines."""
        parts = [t.strip() for t in texts if t and t.strip()]
        return cls(text="\n\n".join(parts), source=source)
