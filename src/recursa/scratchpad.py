# src/recursa/scratchpad.py
"""Compressed working memory shared across drill-down iterations."""

from __future__ import annotations

import logging
import threading
import zlib
from typing import TYPE_CHECKING

from recursa.models import ScratchpadEntry

if TYPE_CHECKING:
    from recursa.stores.base import ScratchpadStore

logger = logging.getLogger(__name__)


class Scratchpad:
    """Run-scoped notes, zlib-compressed on write and decompressed on read.

    A write for a new iteration ID appends an entry; a write for an existing
    ID replaces that entry (keeping its position). Entries themselves are
    immutable. With max_entries set, the oldest entry is evicted once the
    limit is exceeded.

    Example:
        pad = Scratchpad()
        pad.write("depth-0", "Chunks 2 and 5 mention the merger.")
        pad.read("depth-0")  # "Chunks 2 and 5 mention the merger."
    """

    def __init__(
        self,
        run_id: str | None = None,
        store: ScratchpadStore | None = None,
        max_entries: int | None = None,
        compression_level: int = 6,
    ) -> None:
        """Initialize the scratchpad.

        Args:
            run_id: Key under which entries are persisted. Required with a store.
            store: Optional persistence collaborator. Without one the
                scratchpad lives only as long as this object.
            max_entries: Retention limit. None keeps every entry.
            compression_level: zlib level, 0 (none) to 9 (smallest).
        """
        if store is not None and run_id is None:
            raise ValueError("run_id is required when a store is given")
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.run_id = run_id
        self.store = store
        self.max_entries = max_entries
        self.compression_level = compression_level
        self._entries: dict[str, ScratchpadEntry] = {}
        self._lock = threading.Lock()

    @classmethod
    def restore(cls, run_id: str, store: ScratchpadStore, **kwargs: object) -> Scratchpad:
        """Rebuild a scratchpad from persisted entries."""
        pad = cls(run_id=run_id, store=store, **kwargs)  # type: ignore[arg-type]
        for entry in store.load_entries(run_id):
            pad._entries[entry.iteration_id] = entry
        return pad

    def write(self, iteration_id: str, note: str) -> ScratchpadEntry:
        """Compress and store a note, replacing any entry for iteration_id."""
        entry = ScratchpadEntry(
            iteration_id=iteration_id,
            compressed_content=zlib.compress(note.encode("utf-8"), self.compression_level),
        )
        with self._lock:
            if self.store is not None:
                self.store.save_entry(self.run_id, entry)  # type: ignore[arg-type]
            self._entries[iteration_id] = entry
            self._evict()
        logger.debug(
            "Scratchpad write %s: %d -> %d bytes",
            iteration_id,
            len(note),
            len(entry.compressed_content),
        )
        return entry

    def _evict(self) -> None:
        if self.max_entries is None:
            return
        while len(self._entries) > self.max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            if self.store is not None:
                self.store.delete_entry(self.run_id, oldest)  # type: ignore[arg-type]
            logger.debug("Scratchpad evicted %s", oldest)

    def read(self, iteration_id: str) -> str | None:
        """Decompress the note for iteration_id, or None if there is none."""
        entry = self._entries.get(iteration_id)
        if entry is None:
            return None
        return decompress_note(entry)

    def read_all(self, separator: str = "\n\n") -> str:
        """All notes in write order, joined by separator."""
        with self._lock:
            entries = list(self._entries.values())
        return separator.join(decompress_note(e) for e in entries)

    def entries(self) -> list[ScratchpadEntry]:
        """Snapshot of the stored entries in write order."""
        with self._lock:
            return list(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, iteration_id: object) -> bool:
        return iteration_id in self._entries


def decompress_note(entry: ScratchpadEntry) -> str:
    return zlib.decompress(entry.compressed_content).decode("utf-8")
