"""
Table abstraction shared by the Delta Lake and in-memory tables.

Writing happens in two steps:

1. A ``TableWriteSession`` collects rows and rolls them into immutable
   ``DataFile`` chunks of at most ``target_file_rows`` rows. ``complete()``
   rolls the remainder and hands back every data file.
2. An ``AppendFiles`` operation takes those data files and commits them to
   the table as one atomic append, producing exactly one new table version.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import polars as pl

from core.errors import RowConversionError

logger = logging.getLogger(__name__)

DEFAULT_TARGET_FILE_ROWS = 100_000

TableSchema = Dict[str, pl.DataType]


@dataclass(frozen=True, eq=False)
class DataFile:
    """One immutable chunk of written rows."""

    frame: pl.DataFrame
    file_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def record_count(self) -> int:
        return self.frame.height

    @property
    def columns(self) -> List[str]:
        return list(self.frame.columns)


@dataclass(frozen=True)
class WriteResult:
    """Data files produced by one completed write session."""

    data_files: Tuple[DataFile, ...] = ()

    @property
    def record_count(self) -> int:
        return sum(f.record_count for f in self.data_files)

    def __len__(self) -> int:
        return len(self.data_files)


def combine_data_files(data_files: Sequence[DataFile]) -> pl.DataFrame:
    """
    Concatenate data files into one frame for a single table write.

    Columns missing from some files are filled with nulls. Null-typed
    columns are cast to string, which Delta Lake can store.
    """
    df = pl.concat([f.frame for f in data_files], how="diagonal_relaxed")
    for col in df.columns:
        if df[col].dtype == pl.Null:
            df = df.with_columns(pl.col(col).cast(pl.Utf8))
    return df


class TableWriteSession:
    """
    Open write against a table: rows in, data files out.

    The table schema is captured when the session opens. Each batch is
    converted to column types as it is appended: table columns use the table
    type, and a column the table does not have yet takes the type inferred
    from the first batch that carries it. Later batches must convert to that
    type; the column is added by schema evolution on commit.

    A batch is converted as a whole before any of it is buffered, so a
    failed append leaves the session exactly as it was.

    A session is single-use: after ``complete()`` or ``close()`` further
    appends raise RuntimeError.
    """

    def __init__(
        self,
        table_path: str,
        schema: Optional[TableSchema] = None,
        target_file_rows: int = DEFAULT_TARGET_FILE_ROWS,
    ):
        if target_file_rows < 1:
            raise ValueError(f"target_file_rows must be >= 1, got {target_file_rows}")
        self.table_path = table_path
        self.schema: TableSchema = dict(schema or {})
        self.target_file_rows = target_file_rows

        self._pending: List[pl.DataFrame] = []
        self._pending_rows = 0
        self._data_files: List[DataFile] = []
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def record_count(self) -> int:
        """Rows appended so far (rolled and pending)."""
        return self._pending_rows + sum(f.record_count for f in self._data_files)

    @property
    def data_file_count(self) -> int:
        return len(self._data_files)

    def append(self, row: Mapping[str, Any]) -> None:
        """Add one row. See ``append_rows``."""
        self.append_rows([row])

    def append_rows(self, rows: Sequence[Mapping[str, Any]]) -> None:
        """
        Add a batch of rows, all or none.

        Raises:
            RowConversionError: If a row is not a mapping of column name to
                value, or the batch cannot be converted to the session's
                column types. Nothing from the batch is buffered.
        """
        if self._closed:
            raise RuntimeError("Write session is closed.")
        if not rows:
            return

        frame = self._convert(rows)
        for col, dtype in frame.schema.items():
            if col not in self.schema and dtype != pl.Null:
                self.schema[col] = dtype

        self._pending.append(frame)
        self._pending_rows += frame.height
        if self._pending_rows >= self.target_file_rows:
            self._roll(final=False)

    def _convert(self, rows: Sequence[Mapping[str, Any]]) -> pl.DataFrame:
        for row in rows:
            if not isinstance(row, Mapping):
                raise RowConversionError(
                    f"Row must be a mapping of column name to value, got {type(row).__name__}",
                    context={"table_path": self.table_path},
                )
            bad_keys = [k for k in row if not isinstance(k, str)]
            if bad_keys:
                raise RowConversionError(
                    f"Column names must be strings, got {bad_keys!r}",
                    context={"table_path": self.table_path},
                )

        columns = {c for row in rows for c in row}
        overrides = {c: dtype for c, dtype in self.schema.items() if c in columns}
        try:
            return pl.DataFrame(
                [dict(row) for row in rows],
                schema_overrides=overrides,
                infer_schema_length=None,
            )
        except (pl.exceptions.PolarsError, TypeError, ValueError, OverflowError) as e:
            raise RowConversionError(
                f"Failed to convert {len(rows)} rows to table types",
                cause=e,
                context={"table_path": self.table_path},
            ) from e

    def _roll(self, final: bool) -> None:
        """Cut pending rows into data files; the remainder stays pending unless ``final``."""
        if not self._pending:
            return

        frame = pl.concat(self._pending, how="diagonal_relaxed")
        size = self.target_file_rows
        full = frame.height - frame.height % size
        for offset in range(0, full, size):
            self._data_files.append(DataFile(frame=frame.slice(offset, size)))
        remainder = frame.slice(full)
        if final and remainder.height:
            self._data_files.append(DataFile(frame=remainder))
            remainder = remainder.head(0)

        self._pending = [remainder] if remainder.height else []
        self._pending_rows = remainder.height
        logger.debug(
            "Rolled data files",
            extra={"table_path": self.table_path, "data_files": len(self._data_files)},
        )

    def complete(self) -> WriteResult:
        """Roll remaining rows and return every data file. Closes the session."""
        if self._closed:
            raise RuntimeError("Write session is closed.")
        self._roll(final=True)
        self._closed = True
        result = WriteResult(tuple(self._data_files))
        self._data_files = []
        return result

    def close(self) -> None:
        """Discard the session without producing data files."""
        self._pending = []
        self._pending_rows = 0
        self._data_files = []
        self._closed = True


class AppendFiles:
    """
    Atomic append of data files to a table.

    All attached files become visible together in one new table version, or
    none of them do.
    """

    def __init__(self, table: Table):
        self._table = table
        self._data_files: List[DataFile] = []
        self._committed = False

    @property
    def data_files(self) -> List[DataFile]:
        return list(self._data_files)

    def append_file(self, data_file: DataFile) -> AppendFiles:
        if self._committed:
            raise RuntimeError("Append already committed.")
        self._data_files.append(data_file)
        return self

    def commit(self) -> int:
        """
        Commit every attached data file as one table version.

        Returns:
            The new table version
        """
        if self._committed:
            raise RuntimeError("Append already committed.")
        if not self._data_files:
            raise ValueError("Nothing to commit: no data files attached.")
        version = self._table._commit_data_files(list(self._data_files))
        self._committed = True
        return version


class Table(ABC):
    """A versioned table that accepts atomic appends of data files."""

    table_path: str

    @abstractmethod
    def schema(self) -> TableSchema:
        """Current column types; empty if the table holds no data yet."""

    @abstractmethod
    def current_version(self) -> Optional[int]:
        """Latest committed version, or None if nothing was committed yet."""

    @abstractmethod
    def _commit_data_files(self, data_files: List[DataFile]) -> int:
        """Write ``data_files`` as one new version and return that version."""

    def new_write_session(self, target_file_rows: int = DEFAULT_TARGET_FILE_ROWS) -> TableWriteSession:
        return TableWriteSession(self.table_path, self.schema(), target_file_rows)

    def new_append(self) -> AppendFiles:
        return AppendFiles(self)
