"""Key-value sink abstraction for persisted workflow state."""

from __future__ import annotations

from typing import Protocol


class StateStore(Protocol):
    """Protocol for workflow state storage backends."""

    async def get(self, key: str) -> str | None:
        """Return the serialized record stored under ``key``."""

    async def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous record."""

    async def delete(self, key: str) -> None:
        """Remove the record stored under ``key`` if present."""

    async def keys(self, prefix: str = "") -> list[str]:
        """Return all stored keys starting with ``prefix``."""
