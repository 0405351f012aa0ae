"""
Command line entry point.

Usage:
    autoflow run workflow.yaml --variables '{"env": "prod"}'
    autoflow validate workflow.yaml
    autoflow list --workflow my-workflow
    autoflow show <run-id>
    autoflow clear
"""

import argparse
import asyncio
import json
import sys
from typing import Any, Optional

import structlog
from dotenv import load_dotenv

from .core.config import ConfigLoader, EngineConfig
from .core.errors import AutoflowError
from .core.loader import WorkflowLoader
from .core.logger import configure_logging
from .core.models import Run, RunStatus
from .engine import WorkflowEngine
from .steps import register_builtin_executors
from .storage import create_ledger


logger = structlog.get_logger()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="autoflow",
        description="Workflow automation engine",
    )
    parser.add_argument("--config", help="Engine config file (YAML or JSON)")
    parser.add_argument("--db", help="SQLite database path (overrides config)")
    parser.add_argument("-d", "--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a workflow from a file")
    run.add_argument("file", help="Workflow file path (YAML or JSON)")
    run.add_argument("-v", "--variables", help="Variables as JSON object")

    validate = sub.add_parser("validate", help="Validate a workflow file")
    validate.add_argument("file", help="Workflow file path (YAML or JSON)")

    list_runs = sub.add_parser("list", help="List workflow runs")
    list_runs.add_argument("--workflow", help="Filter by workflow name")

    show = sub.add_parser("show", help="Show one run with its step results")
    show.add_argument("run_id")

    sub.add_parser("clear", help="Delete all stored runs")

    return parser


def load_config(args: argparse.Namespace) -> EngineConfig:
    config = ConfigLoader().load_engine_config(args.config)
    if args.db:
        config.storage.database_path = args.db
    if args.debug:
        config.logging.debug = True
    return config


def _format_run(run: Run) -> str:
    duration = ""
    if run.end_time:
        duration = f" {(run.end_time - run.start_time).total_seconds() * 1000:.0f}ms"
    line = f"{run.id}  {run.workflow_name:<24} {run.status.value:<10} {run.start_time.isoformat()}{duration}"
    if run.error:
        line += f"\n    error: {run.error}"
    return line


async def _cmd_run(args: argparse.Namespace, config: EngineConfig) -> int:
    variables: dict[str, Any] = {}
    if args.variables:
        try:
            variables = json.loads(args.variables)
        except json.JSONDecodeError as e:
            print(f"Invalid variables JSON: {e}", file=sys.stderr)
            return 1
        if not isinstance(variables, dict):
            print("Variables must be a JSON object", file=sys.stderr)
            return 1

    workflow = WorkflowLoader.load_file(args.file)

    async with create_ledger(config.storage) as ledger:
        engine = WorkflowEngine(ledger, config=config)
        register_builtin_executors(engine)
        run = await engine.execute(workflow, variables)

    if run.status is RunStatus.COMPLETED:
        print(f"Workflow completed successfully (ID: {run.id})")
        return 0
    print(f"Workflow failed: {run.error} (ID: {run.id})", file=sys.stderr)
    return 1


def _cmd_validate(args: argparse.Namespace) -> int:
    path = args.file
    data = ConfigLoader().load_file(path)
    valid, errors = WorkflowLoader.validate(data)
    if not valid:
        print("Workflow validation failed:")
        for error in errors:
            print(f"  - {error}")
        return 1

    workflow = WorkflowLoader.load_file(path)
    print("Workflow is valid")
    print(f"Name: {workflow.name}")
    print(f"Steps: {len(workflow.steps)}")
    return 0


async def _cmd_list(args: argparse.Namespace, config: EngineConfig) -> int:
    async with create_ledger(config.storage) as ledger:
        runs = await ledger.list_runs(args.workflow)

    if not runs:
        print("No workflow runs found")
        return 0
    for run in runs:
        print(_format_run(run))
    return 0


async def _cmd_show(args: argparse.Namespace, config: EngineConfig) -> int:
    async with create_ledger(config.storage) as ledger:
        run = await ledger.get_run(args.run_id)

    if run is None:
        print(f"Run not found: {args.run_id}", file=sys.stderr)
        return 1
    print(json.dumps(run.to_dict(), indent=2, default=str))
    return 0


async def _cmd_clear(config: EngineConfig) -> int:
    async with create_ledger(config.storage) as ledger:
        await ledger.clear_all_runs()
    print("All workflow runs cleared")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv()
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        configure_logging(config.logging)

        if args.command == "run":
            return asyncio.run(_cmd_run(args, config))
        if args.command == "validate":
            return _cmd_validate(args)
        if args.command == "list":
            return asyncio.run(_cmd_list(args, config))
        if args.command == "show":
            return asyncio.run(_cmd_show(args, config))
        if args.command == "clear":
            return asyncio.run(_cmd_clear(config))

    except AutoflowError as e:
        logger.error("command_failed", command=args.command, **e.to_dict())
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
