"""
In-memory Delta table implementation for testing without external dependencies.

Provides a drop-in replacement for DeltaLakeTable that stores data in Polars
DataFrames, enabling end-to-end testing of the commit buffer without a
storage backend.

Features:
- Same Table interface (schema, current_version, new_write_session, new_append)
- Schema evolution support (adding new columns)
- One snapshot per committed append, like Delta log versions
- Read-back capability for test assertions

Usage:
    table = InMemoryDeltaTable("inmemory://events")
    session = table.new_write_session()
    session.append({"id": 1})
    append = table.new_append()
    for data_file in session.complete().data_files:
        append.append_file(data_file)
    version = append.commit()
    table.read()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

import polars as pl

from delta_sink.storage.table import DataFile, Table, TableSchema, combine_data_files

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Record of one committed append, for audit/verification."""

    version: int
    data_file_ids: List[str]
    rows_added: int
    timestamp: datetime
    columns: List[str]
    schema_changes: List[str] = field(default_factory=list)


class InMemoryDeltaTable(Table):
    """
    In-memory versioned table for tests and local runs.

    Versions start at 0 with the first commit, like a Delta table created by
    its first write.

    Thread Safety:
        This class is NOT thread-safe. Use one instance per test.
    """

    def __init__(self, table_path: str, fail_commits: int = 0):
        """
        Args:
            table_path: Logical path for identification (e.g., "inmemory://events")
            fail_commits: Number of upcoming commits that raise instead of
                writing; used to exercise commit failure handling
        """
        self.table_path = table_path
        self.fail_commits = fail_commits

        self._data: Optional[pl.DataFrame] = None
        self._schema: TableSchema = {}
        self._snapshots: List[Snapshot] = []

    def _evolve_schema(self, df: pl.DataFrame) -> Tuple[pl.DataFrame, List[str]]:
        """
        Evolve schema to accommodate new columns from the incoming frame.

        Returns:
            Tuple of (aligned DataFrame, list of schema changes)
        """
        if self._data is None:
            self._schema = {c: df[c].dtype for c in df.columns}
            return df, [f"Initial schema: {list(df.columns)}"]

        schema_changes: List[str] = []
        for col in df.columns:
            if col not in self._schema:
                self._schema[col] = df[col].dtype
                schema_changes.append(f"Added column: {col} ({df[col].dtype})")
                self._data = self._data.with_columns(
                    pl.lit(None).cast(df[col].dtype).alias(col)
                )

        for col, dtype in self._schema.items():
            if col not in df.columns:
                df = df.with_columns(pl.lit(None).cast(dtype).alias(col))

        return df.select(self._data.columns), schema_changes

    def _cast_to_target_types(self, df: pl.DataFrame) -> pl.DataFrame:
        """Cast incoming columns to the table's column types."""
        cast_exprs = []
        for col in df.columns:
            source_dtype = df[col].dtype
            target_dtype = self._schema.get(col, source_dtype)
            if source_dtype == target_dtype:
                cast_exprs.append(pl.col(col))
            elif isinstance(source_dtype, pl.Datetime) and isinstance(target_dtype, pl.Datetime):
                if target_dtype.time_zone is None:
                    cast_exprs.append(pl.col(col).dt.replace_time_zone(None).alias(col))
                elif source_dtype.time_zone is None:
                    cast_exprs.append(
                        pl.col(col).dt.replace_time_zone(target_dtype.time_zone).alias(col)
                    )
                else:
                    cast_exprs.append(
                        pl.col(col).dt.convert_time_zone(target_dtype.time_zone).alias(col)
                    )
            else:
                cast_exprs.append(pl.col(col).cast(target_dtype, strict=False))
        return df.select(cast_exprs)

    def schema(self) -> TableSchema:
        return dict(self._schema)

    def current_version(self) -> Optional[int]:
        if not self._snapshots:
            return None
        return self._snapshots[-1].version

    def _commit_data_files(self, data_files: List[DataFile]) -> int:
        if self.fail_commits > 0:
            self.fail_commits -= 1
            raise OSError(f"Simulated commit failure for {self.table_path}")

        df = combine_data_files(data_files)
        had_data = self._data is not None
        df, schema_changes = self._evolve_schema(df)
        if had_data:
            df = self._cast_to_target_types(df)
            self._data = pl.concat([self._data, df], how="diagonal_relaxed")
        else:
            self._data = df.clone()

        version = 0 if not self._snapshots else self._snapshots[-1].version + 1
        self._snapshots.append(
            Snapshot(
                version=version,
                data_file_ids=[f.file_id for f in data_files],
                rows_added=df.height,
                timestamp=datetime.now(timezone.utc),
                columns=list(df.columns),
                schema_changes=schema_changes,
            )
        )

        logger.debug(
            f"Committed {len(data_files)} data files ({df.height} rows) to "
            f"{self.table_path}, version={version}"
        )
        return version

    def read(self, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Read all committed rows (empty frame if nothing was committed)."""
        if self._data is None:
            return pl.DataFrame()
        if columns:
            available = [c for c in columns if c in self._data.columns]
            return self._data.select(available)
        return self._data.clone()

    def snapshots(self) -> List[Snapshot]:
        return list(self._snapshots)

    def get_row_count(self) -> int:
        return 0 if self._data is None else self._data.height

    def clear(self) -> None:
        """Clear all data and history."""
        self._data = None
        self._schema = {}
        self._snapshots = []

    def __len__(self) -> int:
        return self.get_row_count()

    def __repr__(self) -> str:
        return (
            f"InMemoryDeltaTable(path={self.table_path!r}, rows={self.get_row_count()}, "
            f"version={self.current_version()})"
        )


# =============================================================================
# Registry for sharing in-memory tables within a process
# =============================================================================


class InMemoryDeltaRegistry:
    """
    Registry of in-memory tables keyed by table path.

    ``load_table`` resolves paths through the process-wide registry when
    USE_INMEMORY_DELTA is set, so every buffer writing the same path shares
    one table.
    """

    def __init__(self):
        self._tables: Dict[str, InMemoryDeltaTable] = {}

    def get_table(self, table_path: str) -> InMemoryDeltaTable:
        """Get or create the table for ``table_path``."""
        if table_path not in self._tables:
            self._tables[table_path] = InMemoryDeltaTable(table_path)
        return self._tables[table_path]

    def clear_all(self) -> None:
        """Forget every table."""
        self._tables.clear()
