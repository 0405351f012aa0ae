"""Fan-out step: run a nested step sequence once per item."""

import asyncio
import json
from typing import Any, Optional

import structlog
from pydantic import ValidationError

from ..core.config import FanOutConfig
from ..core.errors import StepExecutionError
from ..core.models import OnError, StepContext, StepResult, StepSpec
from ..engine.plugins import StepExecutor
from ..engine.runner import StepRunner
from ..expressions import MISSING, evaluate_condition, resolve_value


logger = structlog.get_logger()


class ForEachStepExecutor(StepExecutor):
    """
    Executes nested steps for each item of a collection.

    Params:
        items: list, or an expression such as ``${variables.users}``
        steps: sub-step documents (name, type, params, condition, retries,
            timeout, onError)
        itemVariable / indexVariable: names injected into variables
            (default ``item`` / ``index``)
        parallel: run iterations concurrently in batches
        maxConcurrency: batch size when parallel (default 5)

    Each iteration sees a fresh ``steps`` namespace. A failing sub-step with
    onError stop/retry aborts only its own iteration. The step succeeds when
    at least one iteration succeeded, or there were no errors at all.
    """

    type = "foreach"

    def __init__(self, runner: StepRunner, config: Optional[FanOutConfig] = None):
        self.runner = runner
        self.default_concurrency = (config or FanOutConfig()).max_concurrency

    def validate(self, params: dict[str, Any]) -> bool:
        steps = params.get("steps")
        return (
            isinstance(params.get("items"), (list, str))
            and isinstance(steps, list)
            and len(steps) > 0
            and all(
                isinstance(step, dict)
                and isinstance(step.get("name"), str)
                and isinstance(step.get("type"), str)
                and isinstance(step.get("params"), dict)
                for step in steps
            )
        )

    async def execute(self, params: dict[str, Any], context: StepContext) -> StepResult:
        try:
            items = self._resolve_items(params["items"], context)
            sub_steps = [StepSpec.model_validate(step) for step in params["steps"]]
        except (StepExecutionError, ValidationError) as e:
            return StepResult.fail(str(e))

        item_variable = params.get("itemVariable") or "item"
        index_variable = params.get("indexVariable") or "index"
        total = len(items)

        results: list[Any] = [None] * total
        errors: list[dict[str, Any]] = []

        context.logger.info(f"ForEach: Processing {total} items")

        async def iteration(index: int) -> dict[str, Any]:
            return await self._run_iteration(
                items[index], index, sub_steps, context, item_variable, index_variable
            )

        if params.get("parallel"):
            batch_size = max(1, int(params.get("maxConcurrency") or self.default_concurrency))
            for batch_start in range(0, total, batch_size):
                indices = range(batch_start, min(batch_start + batch_size, total))
                # The whole batch settles before the next one starts
                outcomes = await asyncio.gather(
                    *(iteration(i) for i in indices),
                    return_exceptions=True,
                )
                for index, outcome in zip(indices, outcomes):
                    if isinstance(outcome, Exception):
                        errors.append({"index": index, "error": str(outcome) or type(outcome).__name__})
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        results[index] = outcome
        else:
            for index in range(total):
                try:
                    results[index] = await iteration(index)
                except Exception as e:
                    errors.append({"index": index, "error": str(e) or type(e).__name__})

        errors.sort(key=lambda e: e["index"])
        success_count = sum(1 for r in results if r is not None)
        error_count = len(errors)

        context.logger.info(
            f"ForEach completed: {success_count} successful, {error_count} failed"
        )

        data = {
            "results": results,
            "errors": errors,
            "totalItems": total,
            "successCount": success_count,
            "errorCount": error_count,
        }
        if error_count == 0 or error_count < total:
            return StepResult.ok(data)
        return StepResult.fail(f"All {total} iterations failed", data=data)

    def _resolve_items(self, items: Any, context: StepContext) -> list[Any]:
        if isinstance(items, list):
            return items

        value = resolve_value(items, context.namespace())
        if value is MISSING:
            raise StepExecutionError(f"Items expression did not resolve: {items}", step=context.current_step)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                pass
        if isinstance(value, tuple):
            value = list(value)
        if not isinstance(value, list):
            raise StepExecutionError(
                "Items must be an array or expression that evaluates to an array",
                step=context.current_step,
            )
        return value

    async def _run_iteration(
        self,
        item: Any,
        index: int,
        sub_steps: list[StepSpec],
        parent: StepContext,
        item_variable: str,
        index_variable: str,
    ) -> dict[str, Any]:
        """Run all sub-steps for one item on an isolated context."""
        context = StepContext(
            workflow=parent.workflow,
            variables={**parent.variables, item_variable: item, index_variable: index},
            steps={},
            current_step=f"{parent.current_step}_iteration_{index}",
            run_id=parent.run_id,
            logger=parent.logger,
        )

        for step in sub_steps:
            if step.condition and not evaluate_condition(step.condition, context.namespace(), context.logger):
                logger.debug(
                    "foreach_step_skipped",
                    run_id=parent.run_id,
                    step=step.name,
                    iteration=index,
                    condition=step.condition,
                )
                continue

            result = await self.runner.run(step, context)
            context.steps[step.name] = result

            if result.success:
                continue

            if step.on_error is OnError.CONTINUE:
                context.logger.warn(
                    f"Step '{step.name}' failed in iteration {index} but continuing: {result.error}"
                )
                continue

            raise StepExecutionError(
                f"Step '{step.name}' failed in iteration {index}: {result.error}",
                step=step.name,
            )

        return {
            "item": item,
            "index": index,
            "steps": {name: result.to_dict() for name, result in context.steps.items()},
        }
