"""Recovery strategies and fallback workflows keyed by error type."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..constants import DEFAULT_RATE_LIMIT_WAIT
from .models import (
    FallbackWorkflow,
    RecoveryAction,
    RecoveryStrategy,
    Severity,
    WorkflowError,
)

logger = logging.getLogger(__name__)


def _default_strategies() -> Dict[str, List[RecoveryStrategy]]:
    return {
        "network": [
            RecoveryStrategy(
                id="retry_request",
                name="Retry Request",
                description="Retry the failed request with backoff",
                user_message="We'll try the request again automatically.",
                button_text="Retry Now",
            ),
            RecoveryStrategy(
                id="check_connection",
                name="Check Connection",
                description="Ask the user to check their internet connection",
                user_message="Please check your internet connection and try again.",
                button_text="I've Checked My Connection",
                requires_user_input=True,
            ),
        ],
        "ai_service": [
            RecoveryStrategy(
                id="retry_ai_request",
                name="Retry AI Request",
                description="Retry the AI service request",
                user_message="We'll try to contact the AI service again.",
                button_text="Retry AI Request",
            ),
            RecoveryStrategy(
                id="use_fallback_ai",
                name="Use Fallback AI",
                description="Switch to the backup AI service",
                user_message="We'll try using our backup AI service.",
                button_text="Use Backup Service",
            ),
        ],
        "authentication": [
            RecoveryStrategy(
                id="refresh_token",
                name="Refresh Authentication",
                description="Attempt to refresh the authentication token",
                user_message="We'll try to refresh your authentication.",
                button_text="Refresh Authentication",
            ),
            RecoveryStrategy(
                id="relogin",
                name="Re-login",
                description="Send the user back to the login page",
                user_message="Please log in again to continue.",
                button_text="Go to Login",
                requires_user_input=True,
            ),
        ],
        "rate_limit": [
            RecoveryStrategy(
                id="wait_and_retry",
                name="Wait and Retry",
                description="Wait for the rate limit to reset and retry",
                user_message="We'll wait a moment and try again automatically.",
                button_text="Wait and Retry",
            ),
            RecoveryStrategy(
                id="use_cached_data",
                name="Use Cached Data",
                description="Continue with previously cached data",
                user_message="We'll use previously saved data to continue.",
                button_text="Use Saved Data",
            ),
        ],
        "validation": [
            RecoveryStrategy(
                id="fix_validation",
                name="Fix Input",
                description="Guide the user to fix validation errors",
                user_message="Please review and correct the highlighted fields.",
                button_text="I've Fixed the Issues",
                requires_user_input=True,
            ),
        ],
        "unknown": [
            RecoveryStrategy(
                id="generic_retry",
                name="Try Again",
                description="Generic retry for unknown errors",
                user_message="Let's try that again.",
                button_text="Try Again",
            ),
            RecoveryStrategy(
                id="report_error",
                name="Report Error",
                description="Let the user report the error",
                user_message="Help us improve by reporting this error.",
                button_text="Report Error",
                requires_user_input=True,
            ),
        ],
    }


def _default_fallbacks() -> Dict[str, FallbackWorkflow]:
    return {
        "ai_discovery_failed": FallbackWorkflow(
            id="manual_repository_entry",
            name="Manual Repository Entry",
            description="Switch to manual repository entry when AI discovery fails",
            steps=("manual-repository-entry", "repository-validation", "project-preview"),
            message=(
                "AI discovery is temporarily unavailable. "
                "You can manually enter a repository URL instead."
            ),
            data={"mode": "manual", "previous_attempt": "ai_discovery"},
        ),
        "repository_analysis_failed": FallbackWorkflow(
            id="basic_repository_info",
            name="Basic Repository Information",
            description="Use basic repository metadata when detailed analysis fails",
            steps=("basic-repository-info", "simple-project-preview"),
            message=(
                "We'll create a basic learning plan using the repository's "
                "general information."
            ),
            data={"analysis_mode": "basic"},
            context_keys=("repository",),
        ),
        "curriculum_generation_failed": FallbackWorkflow(
            id="template_curriculum",
            name="Template-based Curriculum",
            description="Use pre-built curriculum templates when AI generation fails",
            steps=("template-selection", "template-customization", "project-creation"),
            message="We'll help you choose from our pre-built learning templates.",
            data={"mode": "template"},
            context_keys=("technologies",),
        ),
        "enhanced_workflow_failed": FallbackWorkflow(
            id="simple_project_creation",
            name="Simple Project Creation",
            description="Fall back to basic project creation when the full workflow fails",
            steps=("simple-project-form", "project-creation"),
            message="Let's create a simple project to get you started quickly.",
            data={"mode": "simple"},
            preserve_context=True,
        ),
        "network_unavailable": FallbackWorkflow(
            id="offline_mode",
            name="Offline Mode",
            description="Continue with cached data when the network is unavailable",
            steps=("offline-notification", "cached-data-workflow"),
            message="Working offline with previously saved data.",
            data={"mode": "offline"},
            context_keys=("cached_data",),
        ),
    }


# (fallback key, error type, step, severity); None matches anything
FallbackRule = Tuple[str, Optional[str], Optional[str], Optional[Severity]]

_DEFAULT_RULES: List[FallbackRule] = [
    ("ai_discovery_failed", "ai_service", "ai-discovery", None),
    ("repository_analysis_failed", "ai_service", "repository-analysis", None),
    ("curriculum_generation_failed", "ai_service", "curriculum-generation", None),
    ("network_unavailable", "network", None, None),
    ("enhanced_workflow_failed", None, None, "critical"),
]


class RecoveryCatalog:
    """Lookup of recovery strategies and fallback workflows.

    The catalog only describes remedies; executing them is up to the caller.
    Strategy actions default to acknowledging the choice and can be replaced
    with real implementations through :meth:`bind_action`.
    """

    def __init__(self, rate_limit_wait: float = DEFAULT_RATE_LIMIT_WAIT) -> None:
        self.rate_limit_wait = rate_limit_wait
        self._strategies = _default_strategies()
        self._fallbacks = _default_fallbacks()
        self._rules: List[FallbackRule] = list(_DEFAULT_RULES)
        self.bind_action("wait_and_retry", self._wait_for_rate_limit)

    async def _wait_for_rate_limit(self) -> bool:
        await asyncio.sleep(self.rate_limit_wait)
        return True

    def get_recovery_strategies(self, error_type: str) -> List[RecoveryStrategy]:
        strategies = self._strategies.get(error_type) or self._strategies["unknown"]
        return list(strategies)

    def bind_action(self, strategy_id: str, action: RecoveryAction) -> None:
        """Replace the action of every strategy named ``strategy_id``."""

        found = False
        for strategies in self._strategies.values():
            for pos, strategy in enumerate(strategies):
                if strategy.id == strategy_id:
                    strategies[pos] = strategy.model_copy(update={"action": action})
                    found = True
        if not found:
            raise KeyError(f"Unknown recovery strategy: {strategy_id}")

    def add_strategy(self, error_type: str, strategy: RecoveryStrategy) -> None:
        self._strategies.setdefault(error_type, []).append(strategy)

    def get_fallback(self, key: str) -> Optional[FallbackWorkflow]:
        return self._fallbacks.get(key)

    def register_fallback(
        self,
        key: str,
        workflow: FallbackWorkflow,
        error_type: Optional[str] = None,
        step: Optional[str] = None,
        severity: Optional[Severity] = None,
    ) -> None:
        """Add a fallback that takes precedence over the built-in rules."""

        self._fallbacks[key] = workflow
        self._rules.insert(0, (key, error_type, step, severity))

    def get_fallback_workflow(
        self, error: WorkflowError, context: Optional[Mapping[str, Any]] = None
    ) -> Optional[FallbackWorkflow]:
        context = context or {}
        current_step = context.get("current_step", error.step)
        for key, error_type, step, severity in self._rules:
            if error_type is not None and error.type != error_type:
                continue
            if step is not None and current_step != step:
                continue
            if severity is not None and error.severity != severity:
                continue
            logger.debug(f"Fallback {key} selected for {error.type} at {current_step}")
            return self._fallbacks[key]
        return None
