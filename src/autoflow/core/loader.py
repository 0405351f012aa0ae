"""Workflow document loading and validation (YAML/JSON)."""

import json
from pathlib import Path
from typing import Any, Union

import jsonschema
import yaml
from pydantic import ValidationError

from .config import ConfigLoader
from .errors import ConfigError
from .models import OnError, Workflow


STEP_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "type", "params"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"type": "string", "minLength": 1},
        "params": {"type": "object"},
        "condition": {"type": "string"},
        "retries": {"type": "integer", "minimum": 0},
        "timeout": {"type": "number", "exclusiveMinimum": 0},
        "onError": {"enum": [e.value for e in OnError]},
    },
}

WORKFLOW_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "steps"],
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "description": {"type": "string"},
        "version": {"type": "string"},
        "variables": {"type": ["object", "null"]},
        "steps": {"type": "array", "minItems": 1, "items": STEP_SCHEMA},
    },
}


class WorkflowLoader:
    """
    Loads workflow documents into Workflow models.

    Validation runs in two passes: the JSON schema above, then checks the
    schema cannot express (duplicate step names, required params of the
    built-in step types).
    """

    _validator = jsonschema.Draft7Validator(WORKFLOW_SCHEMA)

    @classmethod
    def load_file(cls, path: Union[str, Path]) -> Workflow:
        """Load and validate a workflow file (.yaml, .yml or .json)."""
        path = Path(path)
        try:
            data = ConfigLoader().load_file(path)
        except ConfigError as e:
            raise ConfigError(f"Failed to load workflow from {path}: {e.message}", config_path=str(path))
        return cls._build(data, source=str(path))

    @classmethod
    def load_string(cls, content: str, fmt: str = "yaml") -> Workflow:
        """Parse and validate a workflow document held in a string."""
        try:
            if fmt == "yaml":
                data = yaml.safe_load(content)
            elif fmt == "json":
                data = json.loads(content)
            else:
                raise ConfigError(f"Unsupported workflow format: {fmt}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse workflow: invalid YAML: {e}")
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse workflow: invalid JSON: {e}")
        return cls._build(data, source=None)

    @classmethod
    def validate(cls, data: Any) -> tuple[bool, list[str]]:
        """Return (valid, errors) for a raw workflow document."""
        errors = [
            f"{_format_path(error.absolute_path)}: {error.message}"
            for error in sorted(cls._validator.iter_errors(data), key=lambda e: list(e.absolute_path))
        ]

        steps = data.get("steps") if isinstance(data, dict) else None
        if isinstance(steps, list):
            seen: set[str] = set()
            for index, step in enumerate(steps):
                if not isinstance(step, dict):
                    continue
                name = step.get("name")
                if isinstance(name, str) and name:
                    if name in seen:
                        errors.append(f"Step {index}: duplicate step name '{name}'")
                    seen.add(name)
                errors.extend(_check_step_params(step, label=name or str(index)))

        return not errors, errors

    @classmethod
    def save_file(cls, workflow: Workflow, path: Union[str, Path]) -> None:
        """Write a workflow back out as YAML or JSON, chosen by extension."""
        path = Path(path)
        document = workflow.model_dump(mode="json", by_alias=True, exclude_none=True)
        try:
            if path.suffix in (".yaml", ".yml"):
                content = yaml.safe_dump(document, sort_keys=False, indent=2, width=120)
            else:
                content = json.dumps(document, indent=2)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"Failed to save workflow to {path}: {e}", config_path=str(path))

    @classmethod
    def _build(cls, data: Any, source: Any) -> Workflow:
        valid, errors = cls.validate(data)
        if not valid:
            raise ConfigError(f"Invalid workflow: {', '.join(errors)}", config_path=source)
        try:
            return Workflow.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"Invalid workflow: {e}", config_path=source)


def _format_path(path: Any) -> str:
    parts = [str(p) for p in path]
    return ".".join(parts) if parts else "(root)"


def _check_step_params(step: dict[str, Any], label: str) -> list[str]:
    """Required params of the built-in step types."""
    params = step.get("params")
    if not isinstance(params, dict):
        return []

    step_type = step.get("type")
    errors = []

    if step_type == "http":
        for field in ("url", "method"):
            if not params.get(field):
                errors.append(f"Step {label}: HTTP step requires '{field}' parameter")

    elif step_type == "wait":
        duration = params.get("duration")
        if isinstance(duration, bool) or not isinstance(duration, (int, float)) or duration <= 0:
            errors.append(f"Step {label}: Wait step requires positive 'duration' parameter")

    elif step_type == "log":
        if not params.get("message"):
            errors.append(f"Step {label}: Log step requires 'message' parameter")

    elif step_type == "foreach":
        if not isinstance(params.get("items"), (list, str)):
            errors.append(f"Step {label}: ForEach step requires 'items' list or expression")
        if not isinstance(params.get("steps"), list) or not params["steps"]:
            errors.append(f"Step {label}: ForEach step requires non-empty 'steps'")

    return errors
