"""Run ledger backends."""

from typing import Optional

from ..core.config import StorageConfig
from .base import RunLedger
from .memory import InMemoryRunLedger
from .sqlite import SqliteRunLedger


def create_ledger(config: Optional[StorageConfig] = None) -> RunLedger:
    """Build the ledger backend named in the storage config."""
    config = config or StorageConfig()
    if config.backend == "memory":
        return InMemoryRunLedger(list_limit=config.list_limit)
    return SqliteRunLedger(config.database_path, list_limit=config.list_limit)


__all__ = ["RunLedger", "InMemoryRunLedger", "SqliteRunLedger", "create_ledger"]
