"""Persistent run ledger using SQLite."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import aiosqlite

from ..core.errors import StorageError
from ..core.models import Run
from .base import DEFAULT_LIST_LIMIT, RunLedger, dump_json, encode_updates


# Run field -> column
COLUMNS = {
    "status": "status",
    "end_time": "end_time",
    "steps": "steps_json",
    "variables": "variables_json",
    "error": "error",
}

JSON_FIELDS = ("steps", "variables")


class SqliteRunLedger(RunLedger):
    """Stores workflow runs in SQLite; steps and variables as JSON text."""

    def __init__(self, db_path: str = "./data/autoflow.db", list_limit: int = DEFAULT_LIST_LIMIT):
        self.db_path = db_path
        self.list_limit = list_limit
        self._db: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create tables."""
        if self._db is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row

        await self._db.executescript("""
            CREATE TABLE IF NOT EXISTS workflow_runs (
                id TEXT PRIMARY KEY,
                workflow_name TEXT NOT NULL,
                status TEXT NOT NULL,
                start_time TEXT NOT NULL,
                end_time TEXT,
                steps_json TEXT,
                variables_json TEXT,
                error TEXT,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                updated_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_workflow_runs_name ON workflow_runs(workflow_name);
            CREATE INDEX IF NOT EXISTS idx_workflow_runs_status ON workflow_runs(status);
            CREATE INDEX IF NOT EXISTS idx_workflow_runs_start ON workflow_runs(start_time);
        """)
        await self._db.commit()

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None

    def _conn(self) -> aiosqlite.Connection:
        if self._db is None:
            raise StorageError("Run ledger is not initialized")
        return self._db

    async def save_run(self, run: Run) -> None:
        db = self._conn()
        data = run.to_dict()
        async with self._lock:
            try:
                await db.execute("""
                    INSERT INTO workflow_runs
                    (id, workflow_name, status, start_time, end_time,
                     steps_json, variables_json, error)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    data["id"],
                    data["workflow_name"],
                    data["status"],
                    data["start_time"],
                    data["end_time"],
                    dump_json(data["steps"]),
                    dump_json(data["variables"]),
                    data["error"],
                ))
            except aiosqlite.IntegrityError as e:
                raise StorageError(f"Run already exists: {run.id} ({e})", run_id=run.id)
            await db.commit()

    async def get_run(self, run_id: str) -> Optional[Run]:
        cursor = await self._conn().execute(
            "SELECT * FROM workflow_runs WHERE id = ?",
            (run_id,)
        )
        row = await cursor.fetchone()
        if not row:
            return None
        return self._row_to_run(row)

    async def list_runs(self, workflow_name: Optional[str] = None) -> list[Run]:
        query = "SELECT * FROM workflow_runs"
        params: list[Any] = []

        if workflow_name:
            query += " WHERE workflow_name = ?"
            params.append(workflow_name)

        query += " ORDER BY start_time DESC LIMIT ?"
        params.append(self.list_limit)

        cursor = await self._conn().execute(query, params)
        rows = await cursor.fetchall()
        return [self._row_to_run(row) for row in rows]

    async def update_run(self, run_id: str, updates: dict[str, Any]) -> None:
        db = self._conn()
        encoded = encode_updates(run_id, updates)

        assignments = []
        params: list[Any] = []
        for key, value in encoded.items():
            assignments.append(f"{COLUMNS[key]} = ?")
            params.append(dump_json(value) if key in JSON_FIELDS else value)
        assignments.append("updated_at = CURRENT_TIMESTAMP")
        params.append(run_id)

        async with self._lock:
            cursor = await db.execute(
                f"UPDATE workflow_runs SET {', '.join(assignments)} WHERE id = ?",
                params
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise StorageError(f"Run not found: {run_id}", run_id=run_id)

    async def clear_all_runs(self) -> None:
        async with self._lock:
            await self._conn().execute("DELETE FROM workflow_runs")
            await self._conn().commit()

    def _row_to_run(self, row) -> Run:
        return Run.from_dict({
            "id": row["id"],
            "workflow_name": row["workflow_name"],
            "status": row["status"],
            "start_time": row["start_time"],
            "end_time": row["end_time"],
            "steps": json.loads(row["steps_json"] or "{}"),
            "variables": json.loads(row["variables_json"] or "{}"),
            "error": row["error"],
        })
