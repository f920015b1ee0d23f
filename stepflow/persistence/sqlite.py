"""SQLite implementation of the state store."""

from __future__ import annotations

import asyncio
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .store import StateStore


class SQLiteStateStore(StateStore):
    """Persist workflow state using SQLite."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_state (
                state_key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Store API
    async def get(self, key: str) -> str | None:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT value FROM workflow_state WHERE state_key = ?",
            key,
        )
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(
            self._execute,
            """
            INSERT INTO workflow_state (state_key, value, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(state_key) DO UPDATE SET value = excluded.value,
                updated_at = excluded.updated_at
            """,
            key,
            value,
            datetime.now(timezone.utc).isoformat(),
        )

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(
            self._execute, "DELETE FROM workflow_state WHERE state_key = ?", key
        )

    async def keys(self, prefix: str = "") -> list[str]:
        rows = await asyncio.to_thread(
            self._fetchall,
            "SELECT state_key FROM workflow_state WHERE substr(state_key, 1, ?) = ? ORDER BY state_key",
            len(prefix),
            prefix,
        )
        return [row["state_key"] for row in rows]
