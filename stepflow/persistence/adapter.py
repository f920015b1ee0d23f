"""Serialization, validation and retrying writes of workflow state."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from pydantic import ValidationError

from ..constants import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY, STATE_KEY_PREFIX
from ..contracts import WorkflowState, utcnow
from ..registry import StepRegistry
from .migrations import migrate
from .store import StateStore

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("workflow_id", "current_step", "step_data", "completed_steps")


def state_key(workflow_id: str) -> str:
    return f"{STATE_KEY_PREFIX}{workflow_id}"


def check_record(
    data: Dict[str, Any], workflow_id: str, registry: StepRegistry
) -> List[str]:
    """Return the reasons ``data`` cannot be restored against ``registry``."""

    problems = [f"missing field {field}" for field in REQUIRED_FIELDS if field not in data]
    if problems:
        return problems

    if data["workflow_id"] != workflow_id:
        problems.append(f"workflow_id {data['workflow_id']!r} does not match")
    if not isinstance(data["current_step"], str) or data["current_step"] not in registry:
        problems.append(f"unknown current step {data['current_step']!r}")

    completed = data.get("completed_steps") or []
    skipped = data.get("skipped_steps") or []
    if not isinstance(completed, list) or not isinstance(skipped, list):
        problems.append("step lists are malformed")
        return problems
    if not all(isinstance(step_id, str) for step_id in completed + skipped):
        problems.append("step lists contain non-string entries")
        return problems
    for step_id in registry.unknown_ids(completed + skipped):
        problems.append(f"unknown step {step_id!r} in history")
    overlap = set(completed) & set(skipped)
    if overlap:
        problems.append(f"steps both completed and skipped: {sorted(overlap)}")
    return problems


class StatePersistence:
    """Read and write workflow state through a :class:`StateStore`.

    Writes that fail are retried in the background with a linearly increasing
    delay. Once ``max_retries`` is exhausted the failure is logged and
    dropped; callers are never interrupted by a failed write.
    """

    def __init__(
        self,
        store: StateStore,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.store = store
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._generations: Dict[str, int] = {}
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_retries(self) -> int:
        return len(self._pending)

    def _bump(self, key: str) -> int:
        generation = self._generations.get(key, 0) + 1
        self._generations[key] = generation
        return generation

    # ------------------------------------------------------------------
    async def save(self, state: WorkflowState) -> bool:
        """Persist ``state`` and stamp its ``last_saved`` on success."""

        key = state_key(state.workflow_id)
        stamp = utcnow()
        payload = state.model_copy(update={"last_saved": stamp}).to_json()
        generation = self._bump(key)
        try:
            await self.store.set(key, payload)
        except Exception as e:
            logger.error(f"Failed to save workflow state for workflow_id={state.workflow_id}: {e}")
            self._schedule_retry(state, key, payload, stamp, generation, attempt=1)
            return False
        state.last_saved = stamp
        return True

    def _schedule_retry(
        self,
        state: WorkflowState,
        key: str,
        payload: str,
        stamp: datetime,
        generation: int,
        attempt: int,
    ) -> None:
        if attempt > self.max_retries:
            logger.error(
                f"Giving up saving workflow state for workflow_id={state.workflow_id} "
                f"after {self.max_retries} retries"
            )
            return
        task = asyncio.create_task(
            self._retry(state, key, payload, stamp, generation, attempt)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _retry(
        self,
        state: WorkflowState,
        key: str,
        payload: str,
        stamp: datetime,
        generation: int,
        attempt: int,
    ) -> None:
        await asyncio.sleep(self.retry_delay * attempt)
        if self._generations.get(key) != generation:
            logger.debug(f"Retry {attempt} for {key} superseded by a newer write")
            return
        try:
            await self.store.set(key, payload)
        except Exception as e:
            logger.warning(f"Retry {attempt} saving {key} failed: {e}")
            self._schedule_retry(state, key, payload, stamp, generation, attempt + 1)
            return
        state.last_saved = stamp
        logger.info(f"Saved workflow state for {key} on retry {attempt}")

    async def flush(self) -> None:
        """Wait until every scheduled retry has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel_pending(self) -> None:
        """Cancel scheduled retries; await :meth:`flush` to let them unwind."""
        for task in list(self._pending):
            task.cancel()

    # ------------------------------------------------------------------
    async def load(
        self, workflow_id: str, registry: StepRegistry
    ) -> Optional[WorkflowState]:
        """Load and validate the stored state for ``workflow_id``.

        Invalid records are removed from the store so the next load starts
        from scratch.
        """

        key = state_key(workflow_id)
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"Failed to read workflow state {key}: {e}")
            await self.clear(workflow_id)
            return None
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise ValueError("record is not an object")
            data = migrate(data)
        except (TypeError, ValueError) as e:
            logger.warning(f"Discarding unreadable workflow state {key}: {e}")
            await self.clear(workflow_id)
            return None

        try:
            problems = check_record(data, workflow_id, registry)
        except TypeError as e:
            problems = [f"malformed record: {e}"]
        if problems:
            logger.warning(f"Discarding stale workflow state {key}: {'; '.join(problems)}")
            await self.clear(workflow_id)
            return None

        try:
            return WorkflowState.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding malformed workflow state {key}: {e}")
            await self.clear(workflow_id)
            return None

    async def clear(self, workflow_id: str) -> None:
        """Remove the stored state for ``workflow_id``. Never raises."""

        key = state_key(workflow_id)
        self._bump(key)
        try:
            await self.store.delete(key)
        except Exception as e:
            logger.warning(f"Failed to clear workflow state {key}: {e}")

    async def list_workflow_ids(self) -> List[str]:
        keys = await self.store.keys(STATE_KEY_PREFIX)
        return [key[len(STATE_KEY_PREFIX):] for key in keys]
