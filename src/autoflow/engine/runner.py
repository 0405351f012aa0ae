"""Single-step execution with validation, timeout and retry/backoff."""

import asyncio
import dataclasses
import time
from typing import Any, Optional

import structlog

from ..core.config import EngineConfig
from ..core.errors import (
    AutoflowError,
    PluginError,
    StepExecutionError,
    StepTimeoutError,
    StepValidationError,
    UnknownStepTypeError,
)
from ..core.models import StepContext, StepResult, StepSpec, utcnow
from .plugins import StepExecutor


logger = structlog.get_logger()


class StepRunner:
    """
    Runs one step through its registered executor.

    Features:
    - Executor registry keyed by step type
    - Parameter validation before each attempt (never retried)
    - Timeout enforcement with cancellation of the losing executor call
    - Exponential backoff between attempts, capped

    ``run`` never raises: every outcome is a StepResult.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()
        self.backoff = self.config.retry

        # Step executors registry
        self._executors: dict[str, StepExecutor] = {}

        # Swappable so tests can observe backoff without waiting
        self._sleep = asyncio.sleep

    def register(self, executor: StepExecutor) -> None:
        """Register an executor under its step type, replacing any previous one."""
        if not getattr(executor, "type", None):
            raise PluginError(f"Step executor {executor!r} has no type")
        self._executors[executor.type] = executor

    def unregister(self, step_type: str) -> None:
        """Unregister an executor."""
        self._executors.pop(step_type, None)

    def get(self, step_type: str) -> Optional[StepExecutor]:
        return self._executors.get(step_type)

    def list_types(self) -> list[str]:
        """List all registered step types."""
        return list(self._executors.keys())

    def backoff_delay_ms(self, attempt: int) -> float:
        """Delay after failed attempt ``attempt`` before the next one."""
        return self.backoff.delay_ms(attempt)

    async def run(self, step: StepSpec, context: StepContext) -> StepResult:
        """
        Execute a step with retry logic.

        Args:
            step: The step to execute
            context: Run state visible to the executor

        Returns:
            StepResult with success status, data, error and retries consumed
        """
        start_time = time.monotonic()
        log = logger.bind(run_id=context.run_id, step=step.name, step_type=step.type)

        executor = self._executors.get(step.type)
        if executor is None:
            error = UnknownStepTypeError(step.type)
            log.warning("step_unknown_type")
            return StepResult.fail(error.message, retries=0)

        max_attempts = step.retries + 1
        attempts = 0
        last_error: Optional[AutoflowError] = None
        last_data: Any = None

        while attempts < max_attempts:
            attempts += 1
            log.debug("step_attempt_started", attempt=attempts, max_attempts=max_attempts)

            if not self._is_valid(executor, step):
                error = StepValidationError(
                    f"Invalid parameters for step type '{step.type}'",
                    step=step.name,
                    step_type=step.type,
                )
                log.warning("step_validation_failed", error=error.message)
                return StepResult.fail(
                    error.message,
                    duration=self._elapsed_ms(start_time),
                    retries=attempts - 1,
                )

            last_data = None
            try:
                result = await self._execute_with_timeout(executor, step, context)

            except StepTimeoutError as e:
                last_error = e
                e.context["attempt"] = attempts

            except AutoflowError as e:
                last_error = e
                e.context["step"] = step.name
                e.context["attempt"] = attempts

            except Exception as e:
                last_error = StepExecutionError(str(e) or type(e).__name__, step=step.name, attempt=attempts)

            else:
                if result.success:
                    duration = self._elapsed_ms(start_time)
                    log.info("step_completed", duration_ms=round(duration, 1), attempts=attempts)
                    return dataclasses.replace(
                        result,
                        error=None,
                        duration=duration,
                        timestamp=utcnow(),
                        retries=attempts - 1,
                    )
                last_error = StepExecutionError(
                    result.error or f"Step '{step.name}' failed",
                    step=step.name,
                    attempt=attempts,
                )
                last_data = result.data

            log.warning(
                "step_attempt_failed",
                attempt=attempts,
                max_attempts=max_attempts,
                error=last_error.message,
            )

            # No delay after the final attempt
            if attempts < max_attempts:
                delay_ms = self.backoff_delay_ms(attempts)
                log.debug("step_retry_backoff", delay_ms=delay_ms)
                await self._sleep(delay_ms / 1000)

        return StepResult.fail(
            last_error.message if last_error else f"Step '{step.name}' failed",
            data=last_data,
            duration=self._elapsed_ms(start_time),
            retries=attempts - 1,
        )

    def _is_valid(self, executor: StepExecutor, step: StepSpec) -> bool:
        try:
            return bool(executor.validate(step.params))
        except Exception as e:
            logger.warning("step_validator_raised", step=step.name, error=str(e))
            return False

    async def _execute_with_timeout(
        self,
        executor: StepExecutor,
        step: StepSpec,
        context: StepContext,
    ) -> StepResult:
        """Await the executor, cancelling it if the step timeout elapses first."""
        call = executor.execute(step.params, context)
        if not step.timeout:
            result = await call
        else:
            try:
                result = await asyncio.wait_for(call, timeout=step.timeout / 1000)
            except asyncio.TimeoutError:
                raise StepTimeoutError(step.timeout, step=step.name)

        if not isinstance(result, StepResult):
            return StepResult.ok(data=result)
        return result

    @staticmethod
    def _elapsed_ms(start_time: float) -> float:
        return (time.monotonic() - start_time) * 1000
