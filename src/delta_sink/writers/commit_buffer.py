"""
Time-based commit buffer for one table.

Rows go into an open write session; once the commit interval has elapsed
since the session opened, the session is finalized into data files and
those files are committed to the table as one atomic append.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Mapping, Optional

from core.errors import TableCommitError
from delta_sink.common.logging import LoggedClass
from delta_sink.common.metrics import record_rows_buffered, record_table_commit
from delta_sink.storage.loader import load_table
from delta_sink.storage.table import DEFAULT_TARGET_FILE_ROWS, Table, TableWriteSession

TableLoader = Callable[[str], Table]


@dataclass(frozen=True)
class CommitResult:
    """Outcome of one append commit."""

    table_path: str
    version: int
    data_file_count: int
    record_count: int


class TableCommitBuffer(LoggedClass):
    """
    Buffers rows for one table and commits them on a fixed time interval.

    The interval is measured from the moment a write session opens, i.e. the
    first non-empty ``write()`` after the previous commit. The boundary is
    only checked inside ``write()``; with no incoming rows nothing is
    committed, however long the session has been open.

    A failed commit loses the buffered rows: the session is discarded before
    finalizing and is never retried.

    Args:
        table_path: Table to write
        commit_interval_ms: Minimum age of a session before it is committed
        table_loader: Resolves ``table_path`` to a Table (default: load_table)
        clock: Monotonic clock in seconds
        target_file_rows: Rows per data file within a session
        storage_options: Passed to the default loader

    Example:
        >>> buffer = TableCommitBuffer("s3://bucket/events", commit_interval_ms=60_000)
        >>> result = buffer.write(rows)
        >>> if result:
        ...     print(f"committed version {result.version}")
    """

    def __init__(
        self,
        table_path: str,
        commit_interval_ms: int,
        table_loader: Optional[TableLoader] = None,
        clock: Callable[[], float] = time.monotonic,
        target_file_rows: int = DEFAULT_TARGET_FILE_ROWS,
        storage_options: Optional[Dict[str, str]] = None,
    ):
        if commit_interval_ms < 0:
            raise ValueError(f"commit_interval_ms must be >= 0, got {commit_interval_ms}")
        self.table_path = table_path
        self.commit_interval_ms = commit_interval_ms
        self.target_file_rows = target_file_rows
        self._table_loader = table_loader or (
            lambda path: load_table(path, storage_options=storage_options)
        )
        self._clock = clock

        self._table: Optional[Table] = None
        self._session: Optional[TableWriteSession] = None
        self._window_start: Optional[float] = None
        super().__init__()

    @classmethod
    def from_config(cls, config: Any, **kwargs: Any) -> "TableCommitBuffer":
        """Build a buffer from a SinkConfig."""
        return cls(
            table_path=config.table_path,
            commit_interval_ms=config.commit_interval_ms,
            target_file_rows=config.target_file_rows,
            storage_options=config.storage_options,
            **kwargs,
        )

    @property
    def has_open_session(self) -> bool:
        return self._session is not None

    @property
    def buffered_record_count(self) -> int:
        return self._session.record_count if self._session is not None else 0

    def _elapsed_ms(self) -> float:
        return (self._clock() - self._window_start) * 1000

    def _open_session(self) -> TableWriteSession:
        self._table = self._table_loader(self.table_path)
        self._session = self._table.new_write_session(self.target_file_rows)
        self._window_start = self._clock()
        self._log(logging.DEBUG, "Opened write session", commit_interval_ms=self.commit_interval_ms)
        return self._session

    def write(self, rows: Iterable[Mapping[str, Any]]) -> Optional[CommitResult]:
        """
        Append a batch of rows, committing if the interval has elapsed.

        An empty batch does nothing: no session is opened and no commit is
        attempted.

        Returns:
            CommitResult if this call committed, otherwise None

        Raises:
            RowConversionError: The batch could not be converted to the
                table's column types; none of it is buffered and the
                session stays open
            TableCommitError: The commit failed; buffered rows are lost
        """
        rows = list(rows)
        if not rows:
            return None

        session = self._session or self._open_session()
        session.append_rows(rows)
        record_rows_buffered(self.table_path, len(rows))

        return self.commit_if_needed()

    def commit_if_needed(self) -> Optional[CommitResult]:
        """Commit the open session if it is at least ``commit_interval_ms`` old."""
        if self._session is None:
            return None

        elapsed_ms = self._elapsed_ms()
        if elapsed_ms < self.commit_interval_ms:
            return None
        return self._commit(elapsed_ms)

    def _commit(self, elapsed_ms: float) -> CommitResult:
        # Detach first: whatever happens below, the next write starts fresh
        session, table = self._session, self._table
        self._session = None
        self._table = None
        self._window_start = None

        start = time.perf_counter()
        self._log(
            logging.INFO,
            "Committing write session",
            elapsed_ms=elapsed_ms,
            record_count=session.record_count,
        )

        try:
            result = session.complete()
        except Exception as e:
            session.close()
            record_table_commit(self.table_path, success=False)
            self._log_exception(e, "Failed to finalize write session")
            raise TableCommitError(
                f"Failed to finalize write session for {self.table_path}",
                cause=e,
                context={"table_path": self.table_path},
            ) from e

        try:
            append = table.new_append()
            for data_file in result.data_files:
                append.append_file(data_file)
            version = append.commit()
        except Exception as e:
            record_table_commit(
                self.table_path, success=False, duration_seconds=time.perf_counter() - start
            )
            self._log_exception(e, "Failed to commit data files", data_files=len(result))
            raise TableCommitError(
                f"Failed to commit {len(result)} data files to {self.table_path}",
                cause=e,
                context={"table_path": self.table_path, "data_files": len(result)},
            ) from e

        duration = time.perf_counter() - start
        record_table_commit(
            self.table_path, success=True, data_files=len(result), duration_seconds=duration
        )
        self._log(
            logging.INFO,
            "Committed data files",
            table_version=version,
            data_files=len(result),
            record_count=result.record_count,
            duration_ms=duration * 1000,
        )
        return CommitResult(
            table_path=self.table_path,
            version=version,
            data_file_count=len(result),
            record_count=result.record_count,
        )

    def close(self) -> None:
        """Discard any open session without committing. Safe to call repeatedly."""
        if self._session is None:
            return
        discarded = self._session.record_count
        self._session.close()
        self._session = None
        self._table = None
        self._window_start = None
        self._log(logging.INFO, "Closed write session without committing", record_count=discarded)
