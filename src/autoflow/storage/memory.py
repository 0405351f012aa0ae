"""In-process run ledger."""

import asyncio
import json
from typing import Any, Optional

from ..core.errors import StorageError
from ..core.models import Run
from .base import DEFAULT_LIST_LIMIT, RunLedger, dump_json, encode_updates


class InMemoryRunLedger(RunLedger):
    """
    Keeps runs as JSON-encoded snapshots in a dict.

    Stored runs are independent copies: mutating a Run after saving it does
    not change the ledger until the next ``update_run``.
    """

    def __init__(self, list_limit: int = DEFAULT_LIST_LIMIT):
        self.list_limit = list_limit
        self._runs: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def save_run(self, run: Run) -> None:
        async with self._lock:
            if run.id in self._runs:
                raise StorageError(f"Run already exists: {run.id}", run_id=run.id)
            self._runs[run.id] = json.loads(dump_json(run.to_dict()))

    async def get_run(self, run_id: str) -> Optional[Run]:
        record = self._runs.get(run_id)
        if record is None:
            return None
        return Run.from_dict(json.loads(json.dumps(record)))

    async def list_runs(self, workflow_name: Optional[str] = None) -> list[Run]:
        records = [
            r for r in self._runs.values()
            if workflow_name is None or r["workflow_name"] == workflow_name
        ]
        records.sort(key=lambda r: r["start_time"], reverse=True)
        return [Run.from_dict(json.loads(json.dumps(r))) for r in records[:self.list_limit]]

    async def update_run(self, run_id: str, updates: dict[str, Any]) -> None:
        encoded = json.loads(dump_json(encode_updates(run_id, updates)))
        async with self._lock:
            record = self._runs.get(run_id)
            if record is None:
                raise StorageError(f"Run not found: {run_id}", run_id=run_id)
            record.update(encoded)

    async def clear_all_runs(self) -> None:
        async with self._lock:
            self._runs.clear()
