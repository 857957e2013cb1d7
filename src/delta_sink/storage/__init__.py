"""Table storage: data files, write sessions, atomic appends."""

from delta_sink.storage.delta import DeltaLakeTable, write_deltalake
from delta_sink.storage.inmemory_delta import InMemoryDeltaRegistry, InMemoryDeltaTable, Snapshot
from delta_sink.storage.loader import get_inmemory_registry, is_inmemory_mode, load_table
from delta_sink.storage.table import (
    DEFAULT_TARGET_FILE_ROWS,
    AppendFiles,
    DataFile,
    Table,
    TableWriteSession,
    WriteResult,
    combine_data_files,
)

__all__ = [
    "Table",
    "TableWriteSession",
    "AppendFiles",
    "DataFile",
    "WriteResult",
    "combine_data_files",
    "DEFAULT_TARGET_FILE_ROWS",
    "DeltaLakeTable",
    "write_deltalake",
    "InMemoryDeltaTable",
    "InMemoryDeltaRegistry",
    "Snapshot",
    "load_table",
    "is_inmemory_mode",
    "get_inmemory_registry",
]
