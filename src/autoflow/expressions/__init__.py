"""Expression evaluation: ``${path}`` interpolation and step conditions."""

from .evaluator import (
    MISSING,
    UNDEFINED,
    evaluate_condition,
    interpolate,
    interpolate_params,
    resolve_path,
    resolve_value,
)

__all__ = [
    "MISSING",
    "UNDEFINED",
    "evaluate_condition",
    "interpolate",
    "interpolate_params",
    "resolve_path",
    "resolve_value",
]
