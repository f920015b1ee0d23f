"""Stepflow: validated, persistent multi-step workflows."""

from .config import StepflowConfig, build_workflow_config, load_config
from .contracts import (
    StateChangeEvent,
    StepDefinition,
    ValidationResult,
    WorkflowConfig,
    WorkflowState,
)
from .engine import WorkflowEngine
from .persistence import StatePersistence, get_store
from .recovery import ErrorClassifier, ErrorHandler, RecoveryCatalog, WorkflowError
from .registry import StepRegistry

__version__ = "0.1.0"
__all__ = [
    "ErrorClassifier",
    "ErrorHandler",
    "RecoveryCatalog",
    "StateChangeEvent",
    "StatePersistence",
    "StepDefinition",
    "StepRegistry",
    "StepflowConfig",
    "ValidationResult",
    "WorkflowConfig",
    "WorkflowEngine",
    "WorkflowError",
    "WorkflowState",
    "build_workflow_config",
    "get_store",
    "load_config",
]
