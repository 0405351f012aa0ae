"""Workflow, step and run data model."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class OnError(Enum):
    """What the engine does when a step fails."""
    STOP = "stop"
    CONTINUE = "continue"
    RETRY = "retry"  # stop once the step's own retries are exhausted


class RunStatus(Enum):
    """Workflow run status."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    PAUSED = "paused"  # reserved

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


class StepSpec(BaseModel):
    """Declarative description of one workflow step."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    params: dict[str, Any] = Field(default_factory=dict)
    condition: Optional[str] = None
    retries: int = Field(default=0, ge=0)
    timeout: Optional[float] = Field(default=None, gt=0)  # milliseconds
    on_error: OnError = Field(default=OnError.STOP, alias="onError")


class Workflow(BaseModel):
    """An ordered sequence of steps plus default variables."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    description: Optional[str] = None
    version: str = Field(default="1.0.0")
    variables: dict[str, Any] = Field(default_factory=dict)
    steps: list[StepSpec] = Field(min_length=1)

    @field_validator("variables", mode="before")
    @classmethod
    def _variables_default(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("steps")
    @classmethod
    def _unique_step_names(cls, steps: list[StepSpec]) -> list[StepSpec]:
        seen: set[str] = set()
        for step in steps:
            if step.name in seen:
                raise ValueError(f"duplicate step name '{step.name}'")
            seen.add(step.name)
        return steps

    def get_step(self, name: str) -> Optional[StepSpec]:
        return next((s for s in self.steps if s.name == name), None)


@dataclass
class StepResult:
    """Outcome of one executed step."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    duration: float = 0            # milliseconds
    timestamp: datetime = field(default_factory=utcnow)
    retries: int = 0

    @classmethod
    def ok(cls, data: Any = None, **kwargs) -> "StepResult":
        return cls(success=True, data=data, **kwargs)

    @classmethod
    def fail(cls, error: str, data: Any = None, **kwargs) -> "StepResult":
        return cls(success=False, error=error, data=data, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": self.data,
            "error": self.error,
            "duration": self.duration,
            "timestamp": self.timestamp.isoformat(),
            "retries": self.retries,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StepResult":
        return cls(
            success=bool(data["success"]),
            data=data.get("data"),
            error=data.get("error"),
            duration=data.get("duration", 0),
            timestamp=_parse_datetime(data.get("timestamp")) or utcnow(),
            retries=data.get("retries", 0),
        )


@dataclass
class Run:
    """One execution instance of a workflow."""
    id: str
    workflow_name: str
    status: RunStatus = RunStatus.RUNNING
    start_time: datetime = field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    variables: dict[str, Any] = field(default_factory=dict)
    steps: dict[str, StepResult] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "workflow_name": self.workflow_name,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "variables": self.variables,
            "steps": {name: result.to_dict() for name, result in self.steps.items()},
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Run":
        return cls(
            id=data["id"],
            workflow_name=data["workflow_name"],
            status=RunStatus(data["status"]),
            start_time=_parse_datetime(data["start_time"]),
            end_time=_parse_datetime(data.get("end_time")),
            variables=dict(data.get("variables") or {}),
            steps={
                name: StepResult.from_dict(result)
                for name, result in (data.get("steps") or {}).items()
            },
            error=data.get("error"),
        )


@dataclass
class StepContext:
    """Everything an executor can see while a step runs."""
    workflow: Workflow
    variables: dict[str, Any]
    steps: dict[str, StepResult]
    current_step: str
    run_id: str
    logger: Any

    def namespace(self) -> dict[str, Any]:
        """Root object for ``${path}`` resolution."""
        return {"variables": self.variables, "steps": self.steps}
