"""Error classification and recovery catalog."""

from .catalog import RecoveryCatalog
from .classifier import ErrorClassifier
from .handler import ErrorHandler
from .models import (
    ErrorResponse,
    ErrorStats,
    FallbackPlan,
    FallbackWorkflow,
    RecoveryStrategy,
    UserAction,
    WorkflowError,
)

__all__ = [
    "ErrorClassifier",
    "ErrorHandler",
    "ErrorResponse",
    "ErrorStats",
    "FallbackPlan",
    "FallbackWorkflow",
    "RecoveryCatalog",
    "RecoveryStrategy",
    "UserAction",
    "WorkflowError",
]
