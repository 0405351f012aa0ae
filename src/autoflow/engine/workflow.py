"""
Workflow engine - the top-level run orchestrator.

Sequences steps in declared order, gates them on conditions, drives plugin
hooks, delegates execution to the step runner and checkpoints the run to
the ledger after every step.
"""

import uuid
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from ..core.config import EngineConfig
from ..core.errors import PluginError
from ..core.logger import RunLogger
from ..core.models import (
    OnError,
    Run,
    RunStatus,
    StepContext,
    StepResult,
    Workflow,
    utcnow,
)
from ..expressions import evaluate_condition
from ..storage.base import RunLedger
from .plugins import Plugin, StepExecutor, call_hook
from .runner import StepRunner


logger = structlog.get_logger()


class WorkflowEngine:
    """
    Executes workflows and records their runs.

    Flow per run:
    1. Save the run (status running)
    2. before_workflow hooks
    3. Per step: condition -> before_step hooks -> step runner -> after_step
       hooks -> checkpoint
    4. Final status, end time, after_workflow hooks

    ``execute`` never raises; failures are encoded in the returned Run.
    """

    def __init__(
        self,
        ledger: RunLedger,
        logger: Optional[Any] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.ledger = ledger
        self.config = config or EngineConfig()
        self.runner = StepRunner(self.config)

        # Message/meta logger handed to executors; one RunLogger per run if unset
        self._step_logger = logger

        # Registration order is hook order
        self._plugins: list[Plugin] = []

    @property
    def plugins(self) -> list[Plugin]:
        return list(self._plugins)

    def register_step_executor(self, executor: StepExecutor) -> None:
        """Register a step executor; a later registration for the same type wins."""
        self.runner.register(executor)
        logger.debug("step_executor_registered", step_type=executor.type)

    def register_plugin(self, plugin: Plugin) -> None:
        """Register a plugin's executors and append its hooks."""
        if not plugin.name:
            raise PluginError("Plugin has no name")

        for executor in plugin.step_executors:
            self.register_step_executor(executor)
        self._plugins.append(plugin)

        logger.info(
            "plugin_registered",
            plugin=plugin.name,
            version=plugin.version,
            step_types=[e.type for e in plugin.step_executors],
        )

    async def execute(
        self,
        workflow: Union[Workflow, dict[str, Any]],
        variables: Optional[dict[str, Any]] = None,
    ) -> Run:
        """
        Execute a workflow.

        Args:
            workflow: Workflow model (or a document dict to validate into one)
            variables: Caller variables, overriding the workflow's defaults

        Returns:
            The finished Run, status completed or failed

        An invalid document dict yields a failed Run instead of raising.
        """
        if not isinstance(workflow, Workflow):
            try:
                workflow = Workflow.model_validate(workflow)
            except ValidationError as e:
                return await self._reject_document(workflow, variables, e)

        run = Run(
            id=str(uuid.uuid4()),
            workflow_name=workflow.name,
            variables={**workflow.variables, **(variables or {})},
        )
        log = logger.bind(run_id=run.id, workflow=workflow.name)
        step_logger = self._step_logger or RunLogger(run.id, workflow=workflow.name)

        log.info("workflow_started", steps=len(workflow.steps))

        try:
            await self.ledger.save_run(run)

            await self._run_hooks(
                "before_workflow",
                workflow,
                {"run_id": run.id, "variables": run.variables},
            )

            for step in workflow.steps:
                context = StepContext(
                    workflow=workflow,
                    variables=run.variables,
                    steps=run.steps,
                    current_step=step.name,
                    run_id=run.id,
                    logger=step_logger,
                )

                if step.condition and not evaluate_condition(
                    step.condition, context.namespace(), step_logger
                ):
                    log.info("step_skipped", step=step.name, condition=step.condition)
                    continue

                await self._run_hooks("before_step", step, context)

                result = await self.runner.run(step, context)
                run.steps[step.name] = result

                await self._run_hooks("after_step", step, result, context)

                # Checkpoint
                await self.ledger.update_run(run.id, {"steps": run.steps})

                if not result.success and self._should_stop(run, step.name, step.on_error, result, log):
                    break

            if run.status is RunStatus.RUNNING:
                run.status = RunStatus.COMPLETED

            run.end_time = utcnow()
            await self.ledger.update_run(run.id, {
                "status": run.status,
                "end_time": run.end_time,
                "error": run.error,
            })

            await self._run_hooks("after_workflow", workflow, run)

            log.info(
                "workflow_finished",
                status=run.status.value,
                steps_run=len(run.steps),
                error=run.error,
            )
            return run

        except Exception as e:
            run.status = RunStatus.FAILED
            run.error = str(e) or type(e).__name__
            run.end_time = run.end_time or utcnow()

            log.exception("workflow_failed", error=run.error)

            try:
                await self.ledger.update_run(run.id, {
                    "status": run.status,
                    "end_time": run.end_time,
                    "error": run.error,
                })
            except Exception as persist_error:
                log.error("workflow_failure_not_persisted", error=str(persist_error))

            return run

    async def _reject_document(
        self,
        document: Any,
        variables: Optional[dict[str, Any]],
        error: ValidationError,
    ) -> Run:
        """Record a failed run for a document that is not a valid workflow."""
        name = document.get("name") if isinstance(document, dict) else None
        run = Run(
            id=str(uuid.uuid4()),
            workflow_name=str(name or "unknown"),
            status=RunStatus.FAILED,
            variables=dict(variables or {}),
            error=f"Invalid workflow: {error}",
            end_time=utcnow(),
        )

        logger.error(
            "workflow_invalid",
            run_id=run.id,
            workflow=run.workflow_name,
            errors=error.error_count(),
        )

        try:
            await self.ledger.save_run(run)
        except Exception as persist_error:
            logger.error("workflow_failure_not_persisted", run_id=run.id, error=str(persist_error))

        return run

    def _should_stop(
        self,
        run: Run,
        step_name: str,
        on_error: OnError,
        result: StepResult,
        log: Any,
    ) -> bool:
        """Apply the step's on_error policy to a failed result."""
        if on_error is OnError.CONTINUE:
            log.warning("step_failed_continuing", step=step_name, error=result.error)
            return False

        if on_error is OnError.RETRY:
            log.warning(
                "step_retries_exhausted",
                step=step_name,
                retries=result.retries,
                error=result.error,
            )

        run.status = RunStatus.FAILED
        run.error = f"Step '{step_name}' failed: {result.error}"
        return True

    async def _run_hooks(self, hook_name: str, *args: Any) -> None:
        """Run one hook across plugins in registration order. Exceptions propagate."""
        for plugin in self._plugins:
            hook = getattr(plugin.hooks, hook_name, None) if plugin.hooks else None
            if hook is not None:
                await call_hook(hook, *args)

    async def get_run(self, run_id: str) -> Optional[Run]:
        return await self.ledger.get_run(run_id)

    async def list_runs(self, workflow_name: Optional[str] = None) -> list[Run]:
        return await self.ledger.list_runs(workflow_name)
