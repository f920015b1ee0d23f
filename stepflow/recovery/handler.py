"""Turn externally reported failures into user-actionable responses."""

from __future__ import annotations

import logging
from collections import Counter, deque
from typing import Any, Awaitable, Callable, Deque, List, Mapping, Optional, Sequence, TypeVar

from ..config import ErrorHandlingConfig
from ..constants import DEFAULT_BACKOFF_DELAYS, DEFAULT_ERROR_LOG_SIZE, DEFAULT_MAX_RETRIES
from ..utils.retry import retry_with_backoff
from .catalog import RecoveryCatalog
from .classifier import ErrorClassifier
from .models import (
    ErrorResponse,
    ErrorStats,
    FallbackWorkflow,
    RecoveryStrategy,
    UserAction,
    WorkflowError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_BASE_MESSAGES = {
    "network": "We're having trouble connecting to our servers.",
    "ai_service": "Our AI service is temporarily unavailable.",
    "authentication": "Your session has expired.",
    "rate_limit": "We're receiving a lot of requests right now.",
    "validation": "There are some issues with the information provided.",
    "unknown": "Something unexpected happened.",
}

_SEVERITY_MODIFIERS = {
    "low": "This is a minor issue that we can easily fix.",
    "medium": "Don't worry, we have several ways to resolve this.",
    "high": "This is a significant issue, but we have solutions.",
    "critical": "This is a serious problem, but we won't leave you stuck.",
}


class ErrorHandler:
    """Classify failures, keep a bounded error log and propose remedies."""

    def __init__(
        self,
        classifier: Optional[ErrorClassifier] = None,
        catalog: Optional[RecoveryCatalog] = None,
        log_size: int = DEFAULT_ERROR_LOG_SIZE,
        backoff_delays: Sequence[float] = DEFAULT_BACKOFF_DELAYS,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        self.classifier = classifier or ErrorClassifier()
        self.catalog = catalog or RecoveryCatalog()
        self.backoff_delays = list(backoff_delays)
        self.max_retries = max_retries
        self._log: Deque[WorkflowError] = deque(maxlen=log_size)

    @classmethod
    def from_config(cls, config: ErrorHandlingConfig) -> "ErrorHandler":
        return cls(
            catalog=RecoveryCatalog(rate_limit_wait=config.rate_limit_wait),
            log_size=config.log_size,
            backoff_delays=config.backoff_delays,
        )

    async def handle_error(
        self, error: Any, context: Optional[Mapping[str, Any]] = None
    ) -> ErrorResponse:
        """Classify ``error`` and assemble the remedies offered to the user."""

        context = context or {}
        workflow_error = self.classifier.classify(error, context)
        self._record(workflow_error)

        strategies = self.catalog.get_recovery_strategies(workflow_error.type)
        fallback = self.catalog.get_fallback_workflow(workflow_error, context)
        return ErrorResponse(
            error=workflow_error,
            user_message=self.user_message(workflow_error),
            recovery=strategies[0] if strategies else None,
            strategies=strategies,
            fallback=fallback,
            actions=self._actions(strategies, fallback, context),
        )

    def user_message(self, error: WorkflowError) -> str:
        return f"{_BASE_MESSAGES[error.type]} {_SEVERITY_MODIFIERS[error.severity]}"

    def _actions(
        self,
        strategies: List[RecoveryStrategy],
        fallback: Optional[FallbackWorkflow],
        context: Mapping[str, Any],
    ) -> List[UserAction]:
        actions: List[UserAction] = []
        if strategies:
            primary = strategies[0]
            actions.append(
                UserAction(
                    label=primary.button_text or primary.name,
                    kind="recovery",
                    target_id=primary.id,
                    action=primary.run,
                )
            )
        if fallback is not None:

            async def start_fallback() -> Any:
                return await fallback.execute(context)

            actions.append(
                UserAction(
                    label=f"Use {fallback.name}",
                    kind="fallback",
                    target_id=fallback.id,
                    action=start_fallback,
                )
            )
        for strategy in strategies[1:3]:
            actions.append(
                UserAction(
                    label=strategy.button_text or strategy.name,
                    kind="recovery",
                    target_id=strategy.id,
                    action=strategy.run,
                )
            )
        actions.append(UserAction(label="Go Back", kind="go_back"))
        actions.append(UserAction(label="Start Over", kind="start_over"))
        return actions

    def _record(self, error: WorkflowError) -> None:
        self._log.append(error)
        logger.error(
            f"Workflow error {error.id} type={error.type} severity={error.severity} "
            f"step={error.step}: {error.message}"
        )

    # ------------------------------------------------------------------
    def is_retryable(self, error: Any) -> bool:
        return self.classifier.classify(error).retryable

    def has_fallback(self, error: Any, context: Optional[Mapping[str, Any]] = None) -> bool:
        return self.classifier.classify(error, context).fallback_available

    def get_fallback_workflow(
        self, error: WorkflowError, context: Optional[Mapping[str, Any]] = None
    ) -> Optional[FallbackWorkflow]:
        return self.catalog.get_fallback_workflow(error, context)

    async def retry_with_backoff(
        self, operation: Callable[[], Awaitable[T]], max_retries: Optional[int] = None
    ) -> T:
        return await retry_with_backoff(
            operation,
            max_retries=self.max_retries if max_retries is None else max_retries,
            delays=self.backoff_delays,
        )

    def get_error_stats(self) -> ErrorStats:
        errors = list(self._log)
        return ErrorStats(
            total_errors=len(errors),
            errors_by_type=dict(Counter(e.type for e in errors)),
            errors_by_severity=dict(Counter(e.severity for e in errors)),
            recent_errors=errors[-10:],
        )

    def clear_error_log(self) -> None:
        self._log.clear()
