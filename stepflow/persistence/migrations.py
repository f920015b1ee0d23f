"""Versioned upgrades for persisted workflow state records.

Each record carries a ``version`` tag. Records written by an older release
are upgraded one version at a time through the functions registered in
``MIGRATIONS`` until they reach ``STATE_VERSION``. Records with a version that
has no migration path are rejected instead of being merged into live state.
"""

from __future__ import annotations

from typing import Any, Callable, Dict

from ..constants import LEGACY_STATE_VERSION, STATE_VERSION

Migration = Callable[[Dict[str, Any]], Dict[str, Any]]


class UnsupportedStateVersion(ValueError):
    """Raised when a record's version cannot be upgraded."""


_LEGACY_FIELD_NAMES = {
    "workflowId": "workflow_id",
    "currentStep": "current_step",
    "stepData": "step_data",
    "completedSteps": "completed_steps",
    "skippedSteps": "skipped_steps",
    "isProcessing": "is_processing",
    "processingMessage": "processing_message",
    "canGoBack": "can_go_back",
    "canGoForward": "can_go_forward",
    "lastSaved": "last_saved",
}


def _from_legacy_layout(data: Dict[str, Any]) -> Dict[str, Any]:
    """1.0.0 records used camelCase field names."""
    upgraded = {_LEGACY_FIELD_NAMES.get(key, key): value for key, value in data.items()}
    upgraded["version"] = STATE_VERSION
    return upgraded


MIGRATIONS: Dict[str, Migration] = {
    LEGACY_STATE_VERSION: _from_legacy_layout,
}


def migrate(data: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade ``data`` to the current record version."""

    version = data.get("version", LEGACY_STATE_VERSION)
    visited = set()
    while version != STATE_VERSION:
        if not isinstance(version, str) or version in visited or version not in MIGRATIONS:
            raise UnsupportedStateVersion(f"cannot migrate state version {version!r}")
        visited.add(version)
        data = MIGRATIONS[version](data)
        version = data.get("version")
    return data
