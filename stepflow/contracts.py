"""Core data contracts for the stepflow workflow engine."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .constants import (
    DEFAULT_AUTO_SAVE_INTERVAL_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    STATE_VERSION,
)

EventType = Literal[
    "step_changed",
    "data_updated",
    "validation_failed",
    "error_occurred",
    "progress_updated",
]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ValidationResult(BaseModel):
    """Outcome of running a step validator over step data."""

    is_valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)
    warnings: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def ok(cls, warnings: Optional[Dict[str, str]] = None) -> "ValidationResult":
        return cls(is_valid=True, warnings=warnings or {})

    @classmethod
    def failed(
        cls, errors: Dict[str, str], warnings: Optional[Dict[str, str]] = None
    ) -> "ValidationResult":
        return cls(is_valid=False, errors=errors, warnings=warnings or {})


Validator = Callable[[Any], ValidationResult]


class StepDefinition(BaseModel):
    """Defines one named stage of a workflow."""

    id: str
    title: str
    description: str = ""
    can_skip: bool = False
    estimated_time: Optional[float] = None
    dependencies: Tuple[str, ...] = ()
    validation: Optional[Validator] = None

    model_config = ConfigDict(frozen=True)


class WorkflowConfig(BaseModel):
    """Configuration accepted by :class:`~stepflow.engine.WorkflowEngine`.

    ``auto_save_interval`` is expressed in milliseconds, ``retry_delay`` in
    seconds.
    """

    id: str
    name: str
    steps: List[StepDefinition]
    allow_back_navigation: bool = True
    auto_save: bool = True
    auto_save_interval: int = Field(default=DEFAULT_AUTO_SAVE_INTERVAL_MS, gt=0)
    max_retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    retry_delay: float = Field(default=DEFAULT_RETRY_DELAY, ge=0)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_steps(self) -> WorkflowConfig:
        if not self.steps:
            raise ValueError("workflow must define at least one step")
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id}")
            # dependencies may only point backwards, which keeps the graph acyclic
            for dep in step.dependencies:
                if dep not in seen:
                    raise ValueError(
                        f"step {step.id} depends on {dep}, which is not an earlier step"
                    )
            seen.add(step.id)
        return self


class WorkflowState(BaseModel):
    """Canonical record of a workflow instance's progress."""

    workflow_id: str
    current_step: str
    step_data: Dict[str, Any] = Field(default_factory=dict)
    completed_steps: List[str] = Field(default_factory=list)
    skipped_steps: List[str] = Field(default_factory=list)
    progress: float = 0.0
    is_processing: bool = False
    processing_message: Optional[str] = None
    errors: Dict[str, str] = Field(default_factory=dict)
    warnings: Dict[str, str] = Field(default_factory=dict)
    can_go_back: bool = False
    can_go_forward: bool = True
    last_saved: datetime = Field(default_factory=utcnow)
    version: str = STATE_VERSION

    def to_json(self) -> str:
        """Serialize state to JSON."""
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "WorkflowState":
        """Deserialize state from JSON."""
        return cls.model_validate_json(data)


class StateChangeEvent(BaseModel):
    """Notification delivered to state change listeners."""

    type: EventType
    current_state: WorkflowState
    previous_state: Optional[WorkflowState] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


StateChangeListener = Callable[[StateChangeEvent], None]
