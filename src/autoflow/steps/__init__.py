"""Built-in step executors."""

from ..engine.workflow import WorkflowEngine
from .builtin import ConditionalStepExecutor, LogStepExecutor, WaitStepExecutor
from .foreach import ForEachStepExecutor
from .http import HttpStepExecutor


def register_builtin_executors(engine: WorkflowEngine) -> None:
    """Register log, wait, http, conditional and foreach on an engine."""
    engine.register_step_executor(LogStepExecutor())
    engine.register_step_executor(WaitStepExecutor())
    engine.register_step_executor(HttpStepExecutor())
    engine.register_step_executor(ConditionalStepExecutor())
    engine.register_step_executor(ForEachStepExecutor(engine.runner, engine.config.fan_out))


__all__ = [
    "ConditionalStepExecutor",
    "ForEachStepExecutor",
    "HttpStepExecutor",
    "LogStepExecutor",
    "WaitStepExecutor",
    "register_builtin_executors",
]
