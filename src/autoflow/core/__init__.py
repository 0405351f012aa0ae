"""Core engine components."""

from .config import ConfigLoader, EngineConfig
from .errors import (
    AutoflowError,
    ConfigError,
    ExpressionError,
    PluginError,
    StepExecutionError,
    StepTimeoutError,
    StepValidationError,
    StorageError,
    UnknownStepTypeError,
)
from .models import OnError, Run, RunStatus, StepContext, StepResult, StepSpec, Workflow

__all__ = [
    "ConfigLoader",
    "EngineConfig",
    "AutoflowError",
    "ConfigError",
    "ExpressionError",
    "PluginError",
    "StepExecutionError",
    "StepTimeoutError",
    "StepValidationError",
    "StorageError",
    "UnknownStepTypeError",
    "OnError",
    "Run",
    "RunStatus",
    "StepContext",
    "StepResult",
    "StepSpec",
    "Workflow",
]
