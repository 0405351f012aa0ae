"""Tests for single-step execution: retries, backoff, timeouts, validation."""

import asyncio

import pytest

from autoflow.core.config import BackoffConfig, EngineConfig
from autoflow.core.errors import PluginError
from autoflow.core.models import StepResult, StepSpec
from autoflow.engine import StepExecutor, StepRunner


class EchoExecutor(StepExecutor):
    type = "echo"

    async def execute(self, params, context):
        return StepResult.ok(params)


class FlakyExecutor(StepExecutor):
    """Raises for the first ``failures`` calls, then succeeds."""

    type = "flaky"

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def execute(self, params, context):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"boom {self.calls}")
        return StepResult.ok({"calls": self.calls})


class ReportsFailureExecutor(StepExecutor):
    """Returns a failed result instead of raising."""

    type = "reports_failure"

    def __init__(self):
        self.calls = 0

    async def execute(self, params, context):
        self.calls += 1
        return StepResult.fail("upstream said no", data={"attempt": self.calls})


class StrictExecutor(StepExecutor):
    type = "strict"

    def __init__(self):
        self.calls = 0

    def validate(self, params):
        return "required" in params

    async def execute(self, params, context):
        self.calls += 1
        return StepResult.ok()


class SlowExecutor(StepExecutor):
    type = "slow"

    def __init__(self):
        self.started = 0
        self.cancelled = 0

    async def execute(self, params, context):
        self.started += 1
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        return StepResult.ok()


class PlainValueExecutor(StepExecutor):
    type = "plain"

    async def execute(self, params, context):
        return {"answer": 42}


class SleepRecorder:
    """Stands in for asyncio.sleep between attempts."""

    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def runner(sleeps):
    runner = StepRunner(EngineConfig())
    runner._sleep = sleeps
    return runner


class TestRegistry:
    """Test executor registration."""

    def test_register_and_list(self, runner):
        """Registered types are listed."""
        runner.register(EchoExecutor())
        runner.register(StrictExecutor())

        assert runner.list_types() == ["echo", "strict"]
        assert isinstance(runner.get("echo"), EchoExecutor)

    def test_later_registration_wins(self, runner):
        """Registering a type twice keeps the later executor."""
        first, second = FlakyExecutor(0), FlakyExecutor(0)
        runner.register(first)
        runner.register(second)

        assert runner.get("flaky") is second

    def test_unregister(self, runner):
        """Unregistering removes the type."""
        runner.register(EchoExecutor())
        runner.unregister("echo")
        runner.unregister("never-registered")

        assert runner.get("echo") is None

    def test_executor_without_type_rejected(self, runner):
        """An executor must declare its step type."""
        class Untyped(StepExecutor):
            async def execute(self, params, context):
                return StepResult.ok()

        with pytest.raises(PluginError):
            runner.register(Untyped())


class TestRetries:
    """Test attempt counting and backoff."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, runner, make_context, sleeps):
        """A passing step runs once and records no retries."""
        runner.register(EchoExecutor())
        step = StepSpec(name="echo", type="echo", params={"x": 1})

        result = await runner.run(step, make_context())

        assert result.success
        assert result.data == {"x": 1}
        assert result.error is None
        assert result.retries == 0
        assert result.duration >= 0
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, runner, make_context, sleeps):
        """retries=N and an always-failing executor means N+1 attempts."""
        executor = FlakyExecutor(failures=100)
        runner.register(executor)
        step = StepSpec(name="always-fails", type="flaky", retries=3)

        result = await runner.run(step, make_context())

        assert not result.success
        assert executor.calls == 4
        assert result.retries == 3
        assert result.error == "boom 4"
        # Exponential delays between attempts, none after the last
        assert sleeps.delays == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_flaky_recovers(self, runner, make_context, sleeps):
        """A step that fails twice then passes succeeds on the third attempt."""
        executor = FlakyExecutor(failures=2)
        runner.register(executor)
        step = StepSpec(name="flaky", type="flaky", retries=2)

        result = await runner.run(step, make_context())

        assert result.success
        assert result.data == {"calls": 3}
        assert result.retries == 2
        assert sleeps.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_failed_result_is_retried(self, runner, make_context):
        """A returned failure is retried like a raised error."""
        executor = ReportsFailureExecutor()
        runner.register(executor)
        step = StepSpec(name="reports", type="reports_failure", retries=1)

        result = await runner.run(step, make_context())

        assert not result.success
        assert executor.calls == 2
        assert result.error == "upstream said no"
        assert result.data == {"attempt": 2}

    def test_backoff_schedule(self, runner):
        """Backoff doubles from one second up to the cap."""
        assert runner.backoff_delay_ms(1) == 1000
        assert runner.backoff_delay_ms(2) == 2000
        assert runner.backoff_delay_ms(5) == 16000
        assert runner.backoff_delay_ms(6) == 30000
        assert runner.backoff_delay_ms(20) == 30000

    @pytest.mark.asyncio
    async def test_configured_backoff(self, make_context, sleeps):
        """Backoff base and cap come from the engine config."""
        config = EngineConfig(retry=BackoffConfig(base_delay_ms=10, max_delay_ms=25))
        runner = StepRunner(config)
        runner._sleep = sleeps
        runner.register(FlakyExecutor(failures=100))

        await runner.run(StepSpec(name="f", type="flaky", retries=3), make_context())

        assert sleeps.delays == [0.01, 0.02, 0.025]


class TestValidationAndUnknownTypes:
    """Test failures that are never retried."""

    @pytest.mark.asyncio
    async def test_validation_failure_not_retried(self, runner, make_context, sleeps):
        """Invalid params fail at once without calling the executor."""
        executor = StrictExecutor()
        runner.register(executor)
        step = StepSpec(name="strict", type="strict", params={}, retries=5)

        result = await runner.run(step, make_context())

        assert not result.success
        assert result.error == "Invalid parameters for step type 'strict'"
        assert result.retries == 0
        assert executor.calls == 0
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_unknown_step_type(self, runner, make_context, sleeps):
        """An unregistered type fails at once without retries."""
        step = StepSpec(name="mystery", type="foobar", retries=3)

        result = await runner.run(step, make_context())

        assert not result.success
        assert result.error == "Unknown step type: foobar"
        assert result.retries == 0
        assert sleeps.delays == []

    @pytest.mark.asyncio
    async def test_plain_return_value_wrapped(self, runner, make_context):
        """A plain return value becomes a successful result."""
        runner.register(PlainValueExecutor())

        result = await runner.run(StepSpec(name="p", type="plain"), make_context())

        assert result.success
        assert result.data == {"answer": 42}


class TestTimeouts:
    """Test timeout enforcement."""

    @pytest.mark.asyncio
    async def test_timeout_cancels_executor(self, runner, make_context, sleeps):
        """A timed-out attempt is cancelled and counts as a failure."""
        executor = SlowExecutor()
        runner.register(executor)
        step = StepSpec(name="slow", type="slow", timeout=50, retries=1)

        result = await runner.run(step, make_context())

        assert not result.success
        assert result.error == "Step execution timed out after 50ms"
        assert result.retries == 1
        assert executor.started == 2
        assert executor.cancelled == 2
        assert sleeps.delays == [1.0]

    @pytest.mark.asyncio
    async def test_fast_step_within_timeout(self, runner, make_context):
        """A step that finishes in time is unaffected by its timeout."""
        runner.register(EchoExecutor())
        step = StepSpec(name="echo", type="echo", params={"ok": True}, timeout=1000)

        result = await runner.run(step, make_context())

        assert result.success
        assert result.data == {"ok": True}
