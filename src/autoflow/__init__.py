"""
Autoflow - workflow automation engine

Runs declarative workflows: ordered sequences of typed steps bound together by
variables, conditions, retries and timeouts, with:
- Pluggable step executors and lifecycle hooks
- Bounded-concurrency fan-out over item collections
- Run checkpoints in SQLite or in memory
"""

from .core import EngineConfig, OnError, Run, RunStatus, StepContext, StepResult, StepSpec, Workflow
from .core.loader import WorkflowLoader
from .engine import Plugin, PluginHooks, StepExecutor, StepRunner, WorkflowEngine
from .steps import register_builtin_executors
from .storage import InMemoryRunLedger, RunLedger, SqliteRunLedger, create_ledger

__version__ = "0.1.0"

__all__ = [
    "EngineConfig",
    "OnError",
    "Run",
    "RunStatus",
    "StepContext",
    "StepResult",
    "StepSpec",
    "Workflow",
    "WorkflowLoader",
    "Plugin",
    "PluginHooks",
    "StepExecutor",
    "StepRunner",
    "WorkflowEngine",
    "register_builtin_executors",
    "InMemoryRunLedger",
    "RunLedger",
    "SqliteRunLedger",
    "create_ledger",
]
