"""State engine driving one multi-step workflow instance."""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Literal, Mapping, Optional

from .autosave import AutoSaveScheduler
from .contracts import (
    EventType,
    StateChangeEvent,
    StateChangeListener,
    StepDefinition,
    ValidationResult,
    WorkflowConfig,
    WorkflowState,
)
from .events import ListenerBus
from .persistence import InMemoryStateStore, StatePersistence, StateStore, check_record
from .recovery import ErrorHandler, ErrorResponse
from .registry import StepRegistry

logger = logging.getLogger(__name__)


class WorkflowEngine:
    """Finite-state machine over an ordered list of workflow steps.

    Transitions are gated by step validators and declared dependencies.
    Gating failures never raise: they populate ``state.errors`` and the
    transition returns ``False``. Callers must not issue overlapping
    transitions against the same instance.

    Use :meth:`open` to restore persisted progress and start auto-saving;
    the plain constructor only builds the initial state.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        store: Optional[StateStore] = None,
        error_handler: Optional[ErrorHandler] = None,
        initial_state: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.config = config
        self.registry = StepRegistry(config.steps)
        self.persistence = StatePersistence(
            store or InMemoryStateStore(),
            max_retries=config.max_retries,
            retry_delay=config.retry_delay,
        )
        self.error_handler = error_handler or ErrorHandler()
        self.bus = ListenerBus()
        self._state = self._create_initial_state(initial_state)
        self._autosave: Optional[AutoSaveScheduler] = None
        if config.auto_save:
            self._autosave = AutoSaveScheduler(
                self.save, config.auto_save_interval, name=config.id
            )
        self._destroyed = False

    @classmethod
    async def open(
        cls,
        config: WorkflowConfig,
        store: Optional[StateStore] = None,
        error_handler: Optional[ErrorHandler] = None,
        initial_state: Optional[Mapping[str, Any]] = None,
    ) -> "WorkflowEngine":
        """Build an engine, restore persisted progress and start auto-save."""

        engine = cls(config, store, error_handler, initial_state)
        await engine.restore()
        if engine._autosave is not None:
            engine._autosave.start()
        return engine

    # ------------------------------------------------------------------
    # State construction
    def _create_initial_state(
        self, overlay: Optional[Mapping[str, Any]] = None
    ) -> WorkflowState:
        state = WorkflowState(
            workflow_id=self.config.id, current_step=self.registry.first.id
        )
        if overlay:
            state = WorkflowState.model_validate({**state.model_dump(), **overlay})
            problems = check_record(state.model_dump(), self.config.id, self.registry)
            if problems:
                raise ValueError(f"Invalid initial state: {'; '.join(problems)}")
        self._refresh(state)
        return state

    def _refresh(self, state: WorkflowState) -> None:
        """Recompute derived fields after any change."""
        total = len(self.registry)
        done = len(state.completed_steps) + len(state.skipped_steps)
        state.progress = done / total * 100 if total else 0.0
        position = self.registry.index_of(state.current_step)
        state.can_go_back = position > 0 and self.config.allow_back_navigation
        state.can_go_forward = position < total - 1

    async def restore(self) -> bool:
        """Replace the current state with a validated persisted snapshot."""

        self._ensure_active()
        loaded = await self.persistence.load(self.config.id, self.registry)
        if loaded is None:
            return False
        self._refresh(loaded)
        self._state = loaded
        logger.info(
            f"Restored workflow_id={self.config.id} at step {loaded.current_step}"
        )
        self._emit("progress_updated", metadata={"source": "persisted_load"})
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    def _ensure_active(self) -> None:
        if self._destroyed:
            raise RuntimeError(f"Workflow engine {self.config.id} has been destroyed")

    def _snapshot(self) -> WorkflowState:
        return self._state.model_copy(deep=True)

    def _apply(self, **updates: Any) -> None:
        for field, value in updates.items():
            setattr(self._state, field, value)
        self._refresh(self._state)

    def _emit(
        self,
        event_type: EventType,
        previous: Optional[WorkflowState] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.bus.emit(
            StateChangeEvent(
                type=event_type,
                previous_state=previous,
                current_state=self._snapshot(),
                metadata=metadata or {},
            )
        )

    async def _persist(self) -> None:
        if self.config.auto_save:
            await self.persistence.save(self._state)

    def _unmet_dependencies(
        self, step: StepDefinition, also_done: Optional[str] = None
    ) -> List[str]:
        done = set(self._state.completed_steps)
        if also_done is not None:
            done.add(also_done)
        return [dep for dep in step.dependencies if dep not in done]

    def _run_validation(self, step: StepDefinition) -> bool:
        if step.validation is None:
            return True
        result = step.validation(self.get_step_data(step.id))
        if result.is_valid:
            return True
        errors = dict(result.errors) or {"validation": f"{step.title} is incomplete"}
        self._apply(errors=errors, warnings=dict(result.warnings))
        logger.info(f"Validation failed for step {step.id} of workflow_id={self.config.id}")
        self._emit(
            "validation_failed",
            metadata={"step_id": step.id, "validation_result": result},
        )
        return False

    async def _advance(
        self, step: StepDefinition, mark: Literal["completed", "skipped"]
    ) -> bool:
        target = self.registry.next_after(step.id)
        if target is None:
            self._apply(errors={"navigation": f"{step.title} is the last step"})
            return False

        # the step being completed counts towards the next step's dependencies
        unmet = self._unmet_dependencies(
            target, also_done=step.id if mark == "completed" else None
        )
        if unmet:
            self._apply(
                errors={"dependencies": f"Cannot proceed. Please complete: {', '.join(unmet)}"}
            )
            return False

        previous = self._snapshot()
        completed = list(self._state.completed_steps)
        skipped = list(self._state.skipped_steps)
        if mark == "completed":
            if step.id not in completed:
                completed.append(step.id)
            if step.id in skipped:
                skipped.remove(step.id)
        self._apply(
            current_step=target.id,
            completed_steps=completed,
            skipped_steps=skipped,
            errors={},
            warnings={},
        )
        logger.info(
            f"Workflow {self.config.id} moved forward from {step.id} to {target.id}"
        )
        self._emit(
            "step_changed",
            previous,
            {
                "direction": "forward",
                "from_step": step.id,
                "to_step": target.id,
                "skipped": mark == "skipped",
            },
        )
        await self._persist()
        return True

    def _navigation_problem(self, target: StepDefinition) -> Optional[Dict[str, str]]:
        target_index = self.registry.index_of(target.id)
        current_index = self.registry.index_of(self._state.current_step)

        if target_index > current_index:
            for step in self.registry.span(current_index, target_index):
                if step.id not in self._state.completed_steps and not step.can_skip:
                    return {
                        "navigation": (
                            f"Cannot skip to {target.title}. "
                            f"Please complete {step.title} first."
                        )
                    }
        elif target_index < current_index and not self.config.allow_back_navigation:
            return {"navigation": "Back navigation is disabled for this workflow"}

        unmet = self._unmet_dependencies(target)
        if unmet:
            return {
                "dependencies": (
                    f"Cannot navigate to {target.title}. "
                    f"Please complete: {', '.join(unmet)}"
                )
            }
        return None

    # ------------------------------------------------------------------
    # Accessors
    @property
    def state(self) -> WorkflowState:
        return self._snapshot()

    @property
    def steps(self) -> List[StepDefinition]:
        return list(self.registry)

    @property
    def current_step_definition(self) -> StepDefinition:
        return self.registry.get(self._state.current_step)

    def get_step(self, step_id: str) -> Optional[StepDefinition]:
        return self.registry.get(step_id)

    def get_step_data(self, step_id: str) -> Any:
        """Return a copy of the payload stored for ``step_id``, or ``{}``."""
        if step_id not in self._state.step_data:
            return {}
        return copy.deepcopy(self._state.step_data[step_id])

    def get_current_step_data(self) -> Any:
        return self.get_step_data(self._state.current_step)

    def add_listener(self, listener: StateChangeListener) -> None:
        self.bus.add_listener(listener)

    def remove_listener(self, listener: StateChangeListener) -> None:
        self.bus.remove_listener(listener)

    # ------------------------------------------------------------------
    # Navigation
    async def next_step(self) -> bool:
        """Validate the current step and move to the following one."""

        self._ensure_active()
        step = self.current_step_definition
        if not self._run_validation(step):
            await self._persist()
            return False
        return await self._advance(step, mark="completed")

    async def previous_step(self) -> bool:
        """Move back one step without un-completing the step being left."""

        self._ensure_active()
        if not self.config.allow_back_navigation:
            self._apply(errors={"navigation": "Back navigation is disabled for this workflow"})
            return False

        current = self.current_step_definition
        target = self.registry.previous_before(current.id)
        if target is None:
            self._apply(errors={"navigation": "Already at the first step"})
            return False

        previous = self._snapshot()
        self._apply(current_step=target.id, errors={}, warnings={})
        logger.info(f"Workflow {self.config.id} moved back from {current.id} to {target.id}")
        self._emit(
            "step_changed",
            previous,
            {"direction": "backward", "from_step": current.id, "to_step": target.id},
        )
        await self._persist()
        return True

    async def go_to_step(self, step_id: str) -> bool:
        """Jump directly to ``step_id``.

        Jumping ahead requires every step from the current one up to the
        target to be completed or skippable. The target's dependencies must be
        completed in either direction. The target's own data is not validated
        on arrival; that happens on the next forward move.
        """

        self._ensure_active()
        target = self.registry.get(step_id)
        if target is None:
            self._apply(errors={"navigation": f"Unknown step: {step_id}"})
            return False

        problem = self._navigation_problem(target)
        if problem:
            self._apply(errors=problem)
            return False

        previous = self._snapshot()
        from_index = self.registry.index_of(previous.current_step)
        self._apply(current_step=target.id, errors={}, warnings={})
        logger.info(f"Workflow {self.config.id} jumped from {previous.current_step} to {target.id}")
        self._emit(
            "step_changed",
            previous,
            {
                "direction": (
                    "forward" if self.registry.index_of(target.id) > from_index else "backward"
                ),
                "from_step": previous.current_step,
                "to_step": target.id,
                "is_direct_navigation": True,
            },
        )
        await self._persist()
        return True

    def can_navigate_to_step(self, step_id: str) -> bool:
        """Report whether :meth:`go_to_step` would succeed, without side effects."""
        target = self.registry.get(step_id)
        return target is not None and self._navigation_problem(target) is None

    async def skip_step(self) -> bool:
        """Skip the current step if it is skip-eligible.

        The step is recorded as skipped and the engine advances without
        running the validator. Skipping the final step only records it.
        """

        self._ensure_active()
        step = self.current_step_definition
        if not step.can_skip:
            return False

        skipped = list(self._state.skipped_steps)
        if step.id not in skipped:
            skipped.append(step.id)
        completed = [s for s in self._state.completed_steps if s != step.id]

        if self.registry.next_after(step.id) is None:
            previous = self._snapshot()
            self._apply(
                skipped_steps=skipped, completed_steps=completed, errors={}, warnings={}
            )
            logger.info(f"Workflow {self.config.id} skipped final step {step.id}")
            self._emit("progress_updated", previous, {"action": "skip", "step_id": step.id})
            await self._persist()
            return True

        self._apply(skipped_steps=skipped, completed_steps=completed)
        return await self._advance(step, mark="skipped")

    async def finish(self) -> bool:
        """Validate and complete the final step."""

        self._ensure_active()
        step = self.current_step_definition
        if step.id != self.registry.last.id:
            self._apply(errors={"navigation": "Only the last step can finish the workflow"})
            return False
        if not self._run_validation(step):
            await self._persist()
            return False

        previous = self._snapshot()
        completed = list(self._state.completed_steps)
        if step.id not in completed:
            completed.append(step.id)
        skipped = [s for s in self._state.skipped_steps if s != step.id]
        self._apply(
            completed_steps=completed, skipped_steps=skipped, errors={}, warnings={}
        )
        logger.info(f"Workflow {self.config.id} finished at {step.id}")
        self._emit("progress_updated", previous, {"action": "finish", "step_id": step.id})
        await self._persist()
        return True

    # ------------------------------------------------------------------
    # Data and messages
    async def update_step_data(self, step_id: str, data: Mapping[str, Any]) -> None:
        """Shallow-merge ``data`` into the payload stored for ``step_id``."""

        self._ensure_active()
        if step_id not in self.registry:
            raise KeyError(f"Unknown step: {step_id}")

        previous = self._snapshot()
        step_data = dict(self._state.step_data)
        existing = step_data.get(step_id)
        # a non-mapping payload is replaced rather than merged
        base = existing if isinstance(existing, Mapping) else {}
        step_data[step_id] = {**base, **data}
        self._apply(step_data=step_data)
        self._emit(
            "data_updated",
            previous,
            {"step_id": step_id, "updated_data": dict(data)},
        )
        await self._persist()

    async def update_current_step_data(self, data: Mapping[str, Any]) -> None:
        await self.update_step_data(self._state.current_step, data)

    def _set(self, action: str, **updates: Any) -> None:
        self._ensure_active()
        previous = self._snapshot()
        self._apply(**updates)
        self._emit("progress_updated", previous, {"action": action})

    def set_processing(self, is_processing: bool, message: Optional[str] = None) -> None:
        self._set("set_processing", is_processing=is_processing, processing_message=message)

    def add_error(self, field: str, message: str) -> None:
        self._set("add_error", errors={**self._state.errors, field: message})

    def add_warning(self, field: str, message: str) -> None:
        self._set("add_warning", warnings={**self._state.warnings, field: message})

    def clear_errors(self) -> None:
        self._set("clear_errors", errors={})

    def clear_warnings(self) -> None:
        self._set("clear_warnings", warnings={})

    async def report_error(
        self, error: Any, context: Optional[Mapping[str, Any]] = None
    ) -> ErrorResponse:
        """Classify an externally observed failure and surface it on the state.

        Recovery strategies and fallback workflows in the response are for
        the caller to run.
        """

        self._ensure_active()
        full_context = {
            "workflow_id": self.config.id,
            "current_step": self._state.current_step,
            **(context or {}),
        }
        response = await self.error_handler.handle_error(error, full_context)
        previous = self._snapshot()
        self._apply(errors={**self._state.errors, "general": response.user_message})
        self._emit(
            "error_occurred",
            previous,
            {"error": response.error, "fallback": response.fallback},
        )
        return response

    # ------------------------------------------------------------------
    # Progress
    def is_complete(self) -> bool:
        done = set(self._state.completed_steps) | set(self._state.skipped_steps)
        return all(step_id in done for step_id in self.registry.mandatory_ids())

    def completion_percentage(self) -> float:
        return self._state.progress

    def validate_current_step(self) -> ValidationResult:
        """Run the current step's validator without touching state."""
        step = self.current_step_definition
        if step.validation is None:
            return ValidationResult.ok()
        return step.validation(self.get_step_data(step.id))

    # ------------------------------------------------------------------
    # Lifecycle
    async def save(self) -> bool:
        return await self.persistence.save(self._state)

    async def reset(self) -> None:
        """Discard persisted progress and start over from the first step."""

        self._ensure_active()
        previous = self._snapshot()
        await self.persistence.clear(self.config.id)
        self._state = self._create_initial_state()
        logger.info(f"Workflow {self.config.id} reset")
        self._emit("progress_updated", previous, {"action": "reset"})

    async def destroy(self) -> None:
        """Stop auto-saving, drop listeners and write one final snapshot.

        Save retries still pending afterwards are cancelled, so a failed final
        write is logged and dropped.
        """

        if self._destroyed:
            return
        if self._autosave is not None:
            await self._autosave.stop()
        self.bus.clear()
        await self.save()
        self.persistence.cancel_pending()
        await self.persistence.flush()
        self._destroyed = True
