# src/recursa/stores/base.py
"""Abstract base classes for storage."""

from abc import ABC, abstractmethod
from typing import Any

from recursa.models import RunRecord, ScratchpadEntry


class VectorStore(ABC):
    """Abstract base class for chunk embedding storage."""

    @abstractmethod
    def put(self, chunk_id: str, vector: list[float], metadata: dict[str, Any] | None = None) -> None:
        """Store a vector, overwriting any vector with the same chunk ID."""
        ...

    @abstractmethod
    def query(
        self,
        vector: list[float],
        k: int = 5,
        where: dict[str, Any] | None = None,
    ) -> list[str]:
        """Return up to k chunk IDs ranked by similarity (best first).

        Args:
            vector: Query vector.
            k: Maximum number of IDs to return.
            where: Exact-match metadata filter, e.g. {"run_id": "..."}.
        """
        ...

    @abstractmethod
    def delete(self, chunk_ids: list[str]) -> None:
        """Delete vectors by chunk ID. Missing IDs are ignored."""
        ...

    @abstractmethod
    def count(self) -> int:
        """Count the vectors in the store."""
        ...


class RunStore(ABC):
    """Abstract base class for persisted run state."""

    @abstractmethod
    def save(self, record: RunRecord) -> None:
        """Store a run record, overwriting one with the same run ID."""
        ...

    @abstractmethod
    def load(self, run_id: str) -> RunRecord | None:
        """Retrieve a run by ID. Returns None if not found."""
        ...

    @abstractmethod
    def list_runs(self, limit: int | None = None) -> list[tuple[str, str]]:
        """List (run_id, saved_at ISO timestamp) pairs, newest first."""
        ...

    @abstractmethod
    def delete(self, run_id: str) -> None:
        """Delete a run by ID."""
        ...


class ScratchpadStore(ABC):
    """Abstract base class for scratchpad persistence beyond a single run."""

    @abstractmethod
    def save_entry(self, run_id: str, entry: ScratchpadEntry) -> None:
        """Store an entry, replacing the entry with the same iteration ID."""
        ...

    @abstractmethod
    def load_entries(self, run_id: str) -> list[ScratchpadEntry]:
        """Get all entries of a run in write order."""
        ...

    @abstractmethod
    def delete_entry(self, run_id: str, iteration_id: str) -> None:
        """Delete one entry. Missing entries are ignored."""
        ...
