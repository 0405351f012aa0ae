"""Engine error definitions."""

from typing import Optional, Any
from enum import Enum


class ErrorCategory(Enum):
    """Error categories for routing and handling."""
    VALIDATION = "validation"         # Step params rejected before execution
    EXECUTION = "execution"           # Executor reported or raised a failure
    TIMEOUT = "timeout"               # Step lost the race against its timeout
    PERMANENT = "permanent"           # Unknown step type - won't resolve
    EXPRESSION = "expression"         # Condition/expression could not be evaluated
    STORAGE = "storage"               # Run ledger failure
    CONFIGURATION = "configuration"   # Config, workflow document or plugin error


class AutoflowError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        context: Optional[dict[str, Any]] = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or {}
        self.retryable = retryable

    def to_dict(self) -> dict[str, Any]:
        """Serialize error for logging/storage."""
        return {
            "type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "context": self.context,
            "retryable": self.retryable,
        }


class ConfigError(AutoflowError):
    """Configuration or workflow document loading error."""

    def __init__(self, message: str, config_path: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["config_path"] = config_path


class StepValidationError(AutoflowError):
    """Step parameters failed the executor's validation."""

    def __init__(self, message: str, step: Optional[str] = None, step_type: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["step"] = step
        self.context["step_type"] = step_type


class StepExecutionError(AutoflowError):
    """Step execution error."""

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        attempt: Optional[int] = None,
        **kwargs
    ):
        super().__init__(message, **kwargs)
        self.context["step"] = step
        self.context["attempt"] = attempt


class StepTimeoutError(StepExecutionError):
    """Step did not finish within its timeout."""

    def __init__(self, timeout_ms: float, step: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        super().__init__(
            f"Step execution timed out after {timeout_ms:g}ms",
            step=step,
            **kwargs
        )
        self.context["timeout_ms"] = timeout_ms


class UnknownStepTypeError(AutoflowError):
    """No executor is registered for a step type."""

    def __init__(self, step_type: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.PERMANENT)
        kwargs.setdefault("retryable", False)
        super().__init__(f"Unknown step type: {step_type}", **kwargs)
        self.context["step_type"] = step_type


class ExpressionError(AutoflowError):
    """Expression could not be tokenized, parsed or evaluated."""

    def __init__(self, message: str, expression: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.EXPRESSION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["expression"] = expression


class StorageError(AutoflowError):
    """Run ledger misuse or I/O failure."""

    def __init__(self, message: str, run_id: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.STORAGE)
        super().__init__(message, **kwargs)
        self.context["run_id"] = run_id


class PluginError(AutoflowError):
    """Invalid plugin or step executor registration."""

    def __init__(self, message: str, plugin: Optional[str] = None, **kwargs):
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        kwargs.setdefault("retryable", False)
        super().__init__(message, **kwargs)
        self.context["plugin"] = plugin
