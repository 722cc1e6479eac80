# src/recursa/models/chunk.py
"""Chunk data model."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Chunk(BaseModel):
    """A contiguous span of a document at a given recursion depth.

    char_span is (start, end) in document coordinates, end exclusive.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    text: str
    char_span: tuple[int, int]
    depth: int = Field(default=0, ge=0)
    parent_index: int | None = None

    @model_validator(mode="after")
    def _check_span(self) -> "Chunk":
        start, end = self.char_span
        if start < 0 or end < start:
            raise ValueError(f"Invalid char_span {self.char_span}")
        return self

    @property
    def start(self) -> int:
        return self.char_span[0]

    @property
    def end(self) -> int:
        return self.char_span[1]

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, other: "Chunk") -> bool:
        """True if other's span is a strict subset of this chunk's span."""
        return (
            self.start <= other.start
            and other.end <= self.end
            and other.char_span != self.char_span
        )
