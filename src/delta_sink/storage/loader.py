"""
Table loading.

Resolves a table path to a Table: Delta Lake by default, or a process-wide
in-memory table when USE_INMEMORY_DELTA is set.

Dev Mode (In-Memory Delta):
    Set USE_INMEMORY_DELTA=true to keep every table in memory instead of
    writing Delta Lake files. Useful for local runs and end-to-end tests.
"""

import os
from typing import Dict, Optional

from core.logging import get_logger
from delta_sink.storage.delta import DeltaLakeTable
from delta_sink.storage.inmemory_delta import InMemoryDeltaRegistry
from delta_sink.storage.table import Table

logger = get_logger(__name__)

# Global registry for in-memory tables (shared across buffers in same process)
_inmemory_registry: Optional[InMemoryDeltaRegistry] = None


def is_inmemory_mode() -> bool:
    """Check if in-memory Delta mode is enabled."""
    return os.getenv("USE_INMEMORY_DELTA", "").lower() in ("true", "1", "yes")


def get_inmemory_registry() -> InMemoryDeltaRegistry:
    """
    Get the global in-memory Delta registry for inspection.

        from delta_sink.storage.loader import get_inmemory_registry
        events = get_inmemory_registry().get_table("inmemory://events").read()
    """
    global _inmemory_registry
    if _inmemory_registry is None:
        _inmemory_registry = InMemoryDeltaRegistry()
    return _inmemory_registry


def load_table(table_path: str, storage_options: Optional[Dict[str, str]] = None) -> Table:
    """Load the table at ``table_path``."""
    if is_inmemory_mode():
        logger.debug(f"Using in-memory table for {table_path}")
        return get_inmemory_registry().get_table(table_path)
    return DeltaLakeTable(table_path, storage_options=storage_options)
