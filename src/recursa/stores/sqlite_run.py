# src/recursa/stores/sqlite_run.py
"""SQLite run state and scratchpad stores."""

import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from recursa.models import RunRecord, ScratchpadEntry
from recursa.stores.base import RunStore, ScratchpadStore


class SQLiteRunStore(RunStore):
    """SQLite-based store for finished runs.

    Each run is one row holding the RunRecord as JSON: run ID, final
    knowledge graph, scratchpad entries and answer.
    """

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite store."""
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    run_id TEXT PRIMARY KEY,
                    saved_at TEXT NOT NULL,
                    record TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_saved_at ON runs(saved_at)")
            conn.commit()

    def save(self, record: RunRecord) -> None:
        """Store a run, overwriting if it exists."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO runs (run_id, saved_at, record)
                VALUES (?, ?, ?)
                """,
                (record.run_id, datetime.now(UTC).isoformat(), record.model_dump_json()),
            )
            conn.commit()

    def load(self, run_id: str) -> RunRecord | None:
        """Retrieve a run by ID."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute("SELECT record FROM runs WHERE run_id = ?", (run_id,))
            row = cursor.fetchone()
            if row is None:
                return None
            return RunRecord.model_validate_json(row[0])

    def list_runs(self, limit: int | None = None) -> list[tuple[str, str]]:
        """List (run_id, saved_at) pairs, newest first."""
        query = "SELECT run_id, saved_at FROM runs ORDER BY saved_at DESC"
        params: tuple[int, ...] = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(query, params)
            return [(row[0], row[1]) for row in cursor.fetchall()]

    def delete(self, run_id: str) -> None:
        """Delete a run by ID."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM runs WHERE run_id = ?", (run_id,))
            conn.commit()


class SQLiteScratchpadStore(ScratchpadStore):
    """SQLite-based scratchpad persistence. Content stays compressed on disk."""

    def __init__(self, db_path: str) -> None:
        """Initialize the SQLite store."""
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Create tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS scratchpad (
                    run_id TEXT NOT NULL,
                    iteration_id TEXT NOT NULL,
                    seq INTEGER NOT NULL,
                    content BLOB NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (run_id, iteration_id)
                )
            """)
            conn.commit()

    def save_entry(self, run_id: str, entry: ScratchpadEntry) -> None:
        """Store an entry, keeping its original write position on overwrite."""
        with sqlite3.connect(self.db_path) as conn:
            row = conn.execute(
                "SELECT seq FROM scratchpad WHERE run_id = ? AND iteration_id = ?",
                (run_id, entry.iteration_id),
            ).fetchone()
            if row is None:
                next_row = conn.execute(
                    "SELECT COALESCE(MAX(seq), -1) + 1 FROM scratchpad WHERE run_id = ?",
                    (run_id,),
                ).fetchone()
                seq = next_row[0]
            else:
                seq = row[0]
            conn.execute(
                """
                INSERT OR REPLACE INTO scratchpad (run_id, iteration_id, seq, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    run_id,
                    entry.iteration_id,
                    seq,
                    entry.compressed_content,
                    entry.created_at.isoformat(),
                ),
            )
            conn.commit()

    def load_entries(self, run_id: str) -> list[ScratchpadEntry]:
        """Get all entries of a run in write order."""
        with sqlite3.connect(self.db_path) as conn:
            cursor = conn.execute(
                """
                SELECT iteration_id, content, created_at FROM scratchpad
                WHERE run_id = ? ORDER BY seq
                """,
                (run_id,),
            )
            return [
                ScratchpadEntry(
                    iteration_id=row[0],
                    compressed_content=bytes(row[1]),
                    created_at=datetime.fromisoformat(row[2]),
                )
                for row in cursor.fetchall()
            ]

    def delete_entry(self, run_id: str, iteration_id: str) -> None:
        """Delete one entry."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute(
                "DELETE FROM scratchpad WHERE run_id = ? AND iteration_id = ?",
                (run_id, iteration_id),
            )
            conn.commit()
