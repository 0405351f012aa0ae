"""Run ledger contract shared by all storage backends."""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from ..core.errors import StorageError
from ..core.models import Run, RunStatus, StepResult


# Fields of a Run that may change after it is saved
UPDATABLE_FIELDS = frozenset({"status", "end_time", "steps", "variables", "error"})

DEFAULT_LIST_LIMIT = 100


def _json_default(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def dump_json(value: Any) -> str:
    return json.dumps(value, default=_json_default)


def encode_updates(run_id: str, updates: dict[str, Any]) -> dict[str, Any]:
    """
    Convert a partial run update into JSON-safe column values.

    Raises StorageError for fields that cannot be updated.
    """
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise StorageError(
            f"Cannot update run fields: {', '.join(sorted(unknown))}",
            run_id=run_id,
        )

    encoded: dict[str, Any] = {}
    for key, value in updates.items():
        if key == "status":
            encoded[key] = value.value if isinstance(value, RunStatus) else RunStatus(value).value
        elif key == "end_time":
            encoded[key] = value.isoformat() if isinstance(value, datetime) else value
        elif key == "steps":
            encoded[key] = {
                name: result.to_dict() if isinstance(result, StepResult) else result
                for name, result in value.items()
            }
        else:
            encoded[key] = value
    return encoded


class RunLedger(ABC):
    """
    Persistence interface the engine checkpoints runs through.

    Backends must tolerate concurrent ``update_run``/``get_run`` calls for
    different runs.
    """

    async def initialize(self) -> None:
        """Prepare the backend (create tables, open connections)."""

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> "RunLedger":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    @abstractmethod
    async def save_run(self, run: Run) -> None:
        """Persist a new run."""

    @abstractmethod
    async def get_run(self, run_id: str) -> Optional[Run]:
        """Fetch a run by id, or None."""

    @abstractmethod
    async def list_runs(self, workflow_name: Optional[str] = None) -> list[Run]:
        """Most recent runs first, at most 100, optionally for one workflow."""

    @abstractmethod
    async def update_run(self, run_id: str, updates: dict[str, Any]) -> None:
        """Apply a partial update (checkpoint) to a saved run."""

    @abstractmethod
    async def clear_all_runs(self) -> None:
        """Delete every stored run."""
