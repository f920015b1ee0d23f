"""In-memory implementation of the state store."""

from __future__ import annotations

from typing import Dict

from .store import StateStore


class InMemoryStateStore(StateStore):
    """Store workflow state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._records: Dict[str, str] = {}

    async def get(self, key: str) -> str | None:
        return self._records.get(key)

    async def set(self, key: str, value: str) -> None:
        self._records[key] = value

    async def delete(self, key: str) -> None:
        self._records.pop(key, None)

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._records if k.startswith(prefix))
