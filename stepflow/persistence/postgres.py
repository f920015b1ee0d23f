"""PostgreSQL implementation of the state store."""

from __future__ import annotations

from datetime import datetime, timezone

import asyncpg

from .store import StateStore


class PostgresStateStore(StateStore):
    """Persist workflow state using PostgreSQL."""

    def __init__(self, dsn: str):
        self._dsn = dsn
        self._initialized = False

    async def _connect(self) -> asyncpg.Connection:
        conn = await asyncpg.connect(self._dsn)
        if not self._initialized:
            await self._ensure_schema(conn)
            self._initialized = True
        return conn

    async def _ensure_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS workflow_state (
                state_key TEXT PRIMARY KEY,
                value JSONB NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL
            )
            """
        )

    # ------------------------------------------------------------------
    async def get(self, key: str) -> str | None:
        conn = await self._connect()
        try:
            row = await conn.fetchrow(
                "SELECT value::text AS value FROM workflow_state WHERE state_key = $1",
                key,
            )
        finally:
            await conn.close()
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                """
                INSERT INTO workflow_state (state_key, value, updated_at)
                VALUES ($1, $2::jsonb, $3)
                ON CONFLICT (state_key) DO UPDATE
                SET value = EXCLUDED.value, updated_at = EXCLUDED.updated_at
                """,
                key,
                value,
                datetime.now(timezone.utc),
            )
        finally:
            await conn.close()

    async def delete(self, key: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute("DELETE FROM workflow_state WHERE state_key = $1", key)
        finally:
            await conn.close()

    async def keys(self, prefix: str = "") -> list[str]:
        conn = await self._connect()
        try:
            rows = await conn.fetch(
                "SELECT state_key FROM workflow_state WHERE starts_with(state_key, $1) ORDER BY state_key",
                prefix,
            )
        finally:
            await conn.close()
        return [r["state_key"] for r in rows]
