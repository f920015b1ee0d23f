"""Data models for classified workflow failures and their remedies."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Literal, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..contracts import utcnow

ErrorType = Literal[
    "network", "authentication", "rate_limit", "validation", "ai_service", "unknown"
]
Severity = Literal["low", "medium", "high", "critical"]
ActionKind = Literal["recovery", "fallback", "go_back", "start_over"]

RecoveryAction = Callable[[], Awaitable[bool]]


def new_error_id() -> str:
    return f"error_{uuid.uuid4().hex[:12]}"


class WorkflowError(BaseModel):
    """A failure reported into the classifier, with its taxonomy entry."""

    id: str = Field(default_factory=new_error_id)
    type: ErrorType
    severity: Severity
    message: str
    details: Any = Field(default=None, exclude=True)
    timestamp: datetime = Field(default_factory=utcnow)
    step: Optional[str] = None
    recoverable: bool = True
    retryable: bool = False
    fallback_available: bool = False


async def acknowledge() -> bool:
    """Default action for strategies whose real work belongs to the caller."""
    return True


class RecoveryStrategy(BaseModel):
    """Named remedial action offered for a class of errors."""

    id: str
    name: str
    description: str
    user_message: str
    button_text: str
    requires_user_input: bool = False
    action: RecoveryAction = acknowledge

    model_config = ConfigDict(frozen=True)

    async def run(self) -> bool:
        return await self.action()


class FallbackPlan(BaseModel):
    """Where a fallback workflow starts and what it carries over."""

    workflow_id: str
    step: str
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)


class FallbackWorkflow(BaseModel):
    """Simpler step sequence substituted when the primary path fails."""

    id: str
    name: str
    description: str
    steps: Tuple[str, ...]
    message: str
    data: Dict[str, Any] = Field(default_factory=dict)
    context_keys: Tuple[str, ...] = ()
    preserve_context: bool = False

    model_config = ConfigDict(frozen=True)

    async def execute(self, context: Optional[Mapping[str, Any]] = None) -> FallbackPlan:
        """Build the entry plan for this fallback from the caller's context."""
        context = context or {}
        data = dict(self.data)
        for key in self.context_keys:
            data[key] = context.get(key)
        if self.preserve_context:
            data["preserved_data"] = dict(context)
        return FallbackPlan(
            workflow_id=self.id, step=self.steps[0], message=self.message, data=data
        )


class UserAction(BaseModel):
    """One choice presented to the user after a failure.

    ``go_back`` and ``start_over`` carry no action; the caller maps them onto
    engine navigation.
    """

    label: str
    kind: ActionKind
    target_id: Optional[str] = None
    action: Optional[Callable[[], Awaitable[Any]]] = None


class ErrorResponse(BaseModel):
    """Everything a caller needs to present and recover from a failure."""

    handled: bool = True
    error: WorkflowError
    user_message: str
    recovery: Optional[RecoveryStrategy] = None
    strategies: List[RecoveryStrategy] = Field(default_factory=list)
    fallback: Optional[FallbackWorkflow] = None
    actions: List[UserAction] = Field(default_factory=list)


class ErrorStats(BaseModel):
    total_errors: int
    errors_by_type: Dict[str, int] = Field(default_factory=dict)
    errors_by_severity: Dict[str, int] = Field(default_factory=dict)
    recent_errors: List[WorkflowError] = Field(default_factory=list)
