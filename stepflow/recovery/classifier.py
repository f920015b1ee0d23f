"""Assign taxonomy entries to arbitrary failure objects."""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, get_args

import httpx

from .models import ErrorType, Severity, WorkflowError

_AI_MESSAGE = re.compile(r"\b(AI|LLM)\b")
_SEVERITIES = set(get_args(Severity))

# type -> (severity, message, recoverable, retryable, fallback_available)
_RULES: dict[str, tuple[Severity, str, bool, bool, bool]] = {
    "network": ("medium", "Network connection issue", True, True, True),
    "authentication": ("high", "Authentication required", True, False, False),
    "rate_limit": ("medium", "Rate limit exceeded", True, True, True),
    "validation": ("low", "Invalid input data", True, False, False),
    "ai_service": ("high", "AI service unavailable", True, True, True),
    "unknown": ("medium", "An unexpected error occurred", True, True, True),
}


def _field(error: Any, name: str) -> Any:
    if isinstance(error, Mapping):
        return error.get(name)
    return getattr(error, name, None)


def _status_code(error: Any) -> Optional[int]:
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code
    response = _field(error, "response")
    if response is not None:
        for name in ("status_code", "status"):
            status = _field(response, name)
            if isinstance(status, int):
                return status
    for name in ("status_code", "status"):
        status = _field(error, name)
        if isinstance(status, int):
            return status
    return None


def _error_name(error: Any) -> Optional[str]:
    if isinstance(error, BaseException):
        return type(error).__name__
    return _field(error, "name")


def _error_message(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error)
    message = _field(error, "message")
    return message if isinstance(message, str) else ""


class ErrorClassifier:
    """Map a raw failure plus workflow context onto a :class:`WorkflowError`.

    Failures may be exceptions (``httpx`` errors are recognised directly) or
    mappings shaped like ``{"response": {"status": 503}, "service": "ai"}``.
    Rules are checked in priority order: network, authentication, rate
    limiting, validation, AI service, then unknown. A failure explicitly
    attributed to the AI service (``service="ai"``) is not treated as a
    network failure because of a 5xx status alone.
    """

    def error_type(self, error: Any) -> ErrorType:
        status = _status_code(error)
        name = _error_name(error)
        ai_attributed = _field(error, "service") == "ai"

        if (
            isinstance(error, (httpx.TransportError, ConnectionError, TimeoutError))
            or name == "NetworkError"
            or _field(error, "code") == "NETWORK_ERROR"
            or (status is not None and status >= 500 and not ai_attributed)
        ):
            return "network"
        if status in (401, 403):
            return "authentication"
        if status == 429:
            return "rate_limit"
        if _field(error, "type") == "validation" or name == "ValidationError":
            return "validation"
        if ai_attributed or _AI_MESSAGE.search(_error_message(error)):
            return "ai_service"
        return "unknown"

    def classify(
        self, error: Any, context: Optional[Mapping[str, Any]] = None
    ) -> WorkflowError:
        context = context or {}
        error_type = self.error_type(error)
        severity, message, recoverable, retryable, fallback = _RULES[error_type]

        declared = _field(error, "severity")
        if isinstance(declared, str) and declared in _SEVERITIES:
            severity = declared
        if error_type == "unknown":
            message = _error_message(error) or message

        return WorkflowError(
            type=error_type,
            severity=severity,
            message=message,
            details=error,
            step=context.get("current_step"),
            recoverable=recoverable,
            retryable=retryable,
            fallback_available=fallback,
        )
