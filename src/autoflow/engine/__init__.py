"""Workflow engine, step runner and plugin contracts."""

from .plugins import Plugin, PluginHooks, StepExecutor
from .runner import StepRunner
from .workflow import WorkflowEngine

__all__ = ["Plugin", "PluginHooks", "StepExecutor", "StepRunner", "WorkflowEngine"]
