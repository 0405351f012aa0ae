"""Shared fixtures for engine tests."""

import pytest

from autoflow.core.config import BackoffConfig, EngineConfig
from autoflow.core.models import StepContext, StepSpec, Workflow
from autoflow.engine import WorkflowEngine
from autoflow.steps import register_builtin_executors
from autoflow.storage import InMemoryRunLedger


class RecordingLogger:
    """
    Run logger double that keeps (level, message, meta) tuples.

    Implements only the debug/info/warn/error methods executors may rely on.
    """

    def __init__(self):
        self.records = []

    def debug(self, message, meta=None):
        self.records.append(("debug", message, meta))

    def info(self, message, meta=None):
        self.records.append(("info", message, meta))

    def warn(self, message, meta=None):
        self.records.append(("warn", message, meta))

    def error(self, message, meta=None):
        self.records.append(("error", message, meta))

    def messages(self, level=None):
        return [m for lvl, m, _ in self.records if level is None or lvl == level]


@pytest.fixture
def run_logger():
    return RecordingLogger()


@pytest.fixture
def make_context(run_logger):
    """Factory for step contexts outside of a real run."""
    workflow = Workflow(
        name="test-workflow",
        steps=[StepSpec(name="noop", type="log", params={"message": "noop"})],
    )

    def factory(variables=None, steps=None, current_step="step"):
        return StepContext(
            workflow=workflow,
            variables=variables if variables is not None else {},
            steps=steps if steps is not None else {},
            current_step=current_step,
            run_id="run-test",
            logger=run_logger,
        )

    return factory


@pytest.fixture
def engine_config():
    """Engine config with no backoff wait between attempts."""
    return EngineConfig(retry=BackoffConfig(base_delay_ms=0))


@pytest.fixture
def ledger():
    return InMemoryRunLedger()


@pytest.fixture
def engine(ledger, run_logger, engine_config):
    """Engine with the built-in executors and an in-memory ledger."""
    engine = WorkflowEngine(ledger, logger=run_logger, config=engine_config)
    register_builtin_executors(engine)
    return engine
