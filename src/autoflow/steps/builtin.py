"""Built-in control and notification steps: log, wait, conditional."""

import asyncio
from typing import Any

from ..core.models import StepContext, StepResult, utcnow
from ..engine.plugins import StepExecutor
from ..expressions import evaluate_condition, interpolate


class LogStepExecutor(StepExecutor):
    """Log an interpolated message through the run logger."""

    type = "log"

    # Level name -> run logger method
    LEVELS = {
        "debug": "debug",
        "info": "info",
        "warn": "warn",
        "warning": "warn",
        "error": "error",
    }

    def validate(self, params: dict[str, Any]) -> bool:
        return bool(params.get("message"))

    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        message = interpolate(str(params["message"]), context.namespace())
        level = params.get("level", "info")

        log_method = getattr(context.logger, self.LEVELS.get(str(level), "info"))
        log_method(message, params.get("data"))

        return StepResult.ok({
            "message": message,
            "level": level,
            "timestamp": utcnow().isoformat(),
        })


class WaitStepExecutor(StepExecutor):
    """Sleep for a fixed duration."""

    type = "wait"

    UNITS_MS = {
        "milliseconds": 1,
        "seconds": 1000,
        "minutes": 60 * 1000,
        "hours": 60 * 60 * 1000,
    }

    def validate(self, params: dict[str, Any]) -> bool:
        duration = params.get("duration")
        return (
            isinstance(duration, (int, float))
            and not isinstance(duration, bool)
            and duration > 0
        )

    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        unit = params.get("unit", "milliseconds")
        delay_ms = params["duration"] * self.UNITS_MS.get(unit, 1)

        context.logger.debug(f"Waiting for {delay_ms}ms")
        await asyncio.sleep(delay_ms / 1000)

        return StepResult.ok({"waited": delay_ms, "unit": unit})


class ConditionalStepExecutor(StepExecutor):
    """Pick the ``then`` or ``else`` value by evaluating a condition."""

    type = "conditional"

    def validate(self, params: dict[str, Any]) -> bool:
        return bool(params.get("condition")) and (
            params.get("then") is not None or params.get("else") is not None
        )

    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        condition = params["condition"]
        condition_result = evaluate_condition(condition, context.namespace(), context.logger)

        context.logger.debug(f'Condition "{condition}" evaluated to: {condition_result}')

        return StepResult.ok({
            "condition": condition,
            "conditionResult": condition_result,
            "selectedBranch": "then" if condition_result else "else",
            "result": params.get("then") if condition_result else params.get("else"),
        })
