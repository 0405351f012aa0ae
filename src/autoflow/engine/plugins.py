"""Step executor contract and plugin definitions."""

import inspect
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Union

from ..core.models import StepContext, StepResult


class StepExecutor(ABC):
    """
    Handler for one step type.

    Subclasses set ``type`` (the registry key) and implement ``execute``.
    ``execute`` may return a failed StepResult or raise; the step runner
    treats both the same way.
    """

    type: str = ""

    def validate(self, params: dict[str, Any]) -> bool:
        """Structural check run before every attempt."""
        return True

    @abstractmethod
    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        ...


# Hooks may be plain functions or coroutines
Hook = Callable[..., Union[None, Awaitable[None]]]


@dataclass
class PluginHooks:
    """Lifecycle callbacks a plugin can attach."""
    before_workflow: Optional[Hook] = None   # (workflow, {"run_id", "variables"})
    after_workflow: Optional[Hook] = None    # (workflow, run)
    before_step: Optional[Hook] = None       # (step, context)
    after_step: Optional[Hook] = None        # (step, result, context)


@dataclass
class Plugin:
    """A bundle of step executors and lifecycle hooks."""
    name: str
    version: str = "0.1.0"
    step_executors: list[StepExecutor] = field(default_factory=list)
    hooks: Optional[PluginHooks] = None


async def call_hook(hook: Hook, *args: Any) -> None:
    """Invoke a hook and await it if it returned an awaitable."""
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
