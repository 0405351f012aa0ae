"""Variable interpolation and condition evaluation against run state."""

import json
import re
from collections.abc import Mapping
from datetime import datetime
from typing import Any, Optional

import structlog

from .parser import UNDEFINED, evaluate, truthy


logger = structlog.get_logger()

TOKEN_PATTERN = re.compile(r"\$\{([^}]+)\}")


class _Missing:
    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


def resolve_path(root: Any, path: str) -> Any:
    """
    Resolve a dotted path by sequential lookup from ``root``.

    Mappings are indexed by key, lists/tuples by integer index and other
    objects by public attribute. Returns ``MISSING`` if any segment is absent.
    """
    current = root
    for part in path.strip().split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, (list, tuple)):
            try:
                index = int(part)
            except ValueError:
                return MISSING
            if not 0 <= index < len(current):
                return MISSING
            current = current[index]
        elif part and not part.startswith("_") and hasattr(current, part):
            current = getattr(current, part)
        else:
            return MISSING
    return current


def _json_default(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def to_json(value: Any) -> str:
    return json.dumps(value, default=_json_default, separators=(",", ":"))


def stringify(value: Any) -> str:
    """Render a resolved value for textual substitution."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (Mapping, list, tuple)) or hasattr(value, "to_dict"):
        return to_json(value)
    return str(value)


def interpolate(text: str, namespace: Mapping[str, Any]) -> str:
    """Replace every resolvable ``${path}`` in ``text``; leave the rest as-is."""
    def replace(match: re.Match) -> str:
        value = resolve_path(namespace, match.group(1))
        if value is MISSING:
            return match.group(0)
        return stringify(value)

    return TOKEN_PATTERN.sub(replace, text)


def resolve_value(expression: Any, namespace: Mapping[str, Any]) -> Any:
    """
    Resolve an expression to a value.

    A string that is exactly one ``${path}`` token yields the raw value at
    that path (or ``MISSING``); other strings are interpolated; non-strings
    are returned unchanged.
    """
    if not isinstance(expression, str):
        return expression
    match = TOKEN_PATTERN.fullmatch(expression.strip())
    if match:
        return resolve_path(namespace, match.group(1))
    return interpolate(expression, namespace)


def interpolate_params(params: Any, namespace: Mapping[str, Any]) -> Any:
    """Recursively interpolate string values in step params."""
    if isinstance(params, str):
        value = resolve_value(params, namespace)
        return params if value is MISSING else value
    if isinstance(params, dict):
        return {k: interpolate_params(v, namespace) for k, v in params.items()}
    if isinstance(params, list):
        return [interpolate_params(v, namespace) for v in params]
    return params


def substitute_literals(expression: str, namespace: Mapping[str, Any]) -> str:
    """Replace each ``${path}`` with its JSON literal, ``undefined`` if unresolved."""
    def replace(match: re.Match) -> str:
        value = resolve_path(namespace, match.group(1))
        if value is MISSING:
            return "undefined"
        return to_json(value)

    return TOKEN_PATTERN.sub(replace, expression)


def evaluate_condition(
    expression: str,
    namespace: Mapping[str, Any],
    run_logger: Optional[Any] = None,
) -> bool:
    """
    Evaluate a step condition. Never raises.

    Errors of any kind are logged as warnings and evaluate to False.
    """
    try:
        substituted = substitute_literals(expression, namespace)
        return truthy(evaluate(substituted))
    except Exception as e:
        if run_logger is not None:
            run_logger.warn(f"Failed to evaluate condition: {expression}", {"error": str(e)})
        else:
            logger.warning("condition_evaluation_failed", condition=expression, error=str(e))
        return False


__all__ = [
    "MISSING",
    "UNDEFINED",
    "evaluate_condition",
    "interpolate",
    "interpolate_params",
    "resolve_path",
    "resolve_value",
    "stringify",
    "substitute_literals",
]
