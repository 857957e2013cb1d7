"""
Delta Lake table backed by the deltalake (delta-rs) writer.

An append commit is one ``write_deltalake(mode="append")`` call with every
data file of the commit concatenated, so the Delta log gains exactly one new
version per commit. Each commit is tagged with an id in its commitInfo so
the version it produced can be found even after other writers commit.
"""

from __future__ import annotations

import logging
import uuid
from typing import Dict, List, Optional

import polars as pl
from deltalake import CommitProperties, DeltaTable, write_deltalake
from deltalake.exceptions import TableNotFoundError

from core.logging import get_logger
from delta_sink.common.logging import LoggedClass, logged_operation
from delta_sink.storage.table import DataFile, Table, TableSchema, combine_data_files

logger = get_logger(__name__)

# commitInfo key tagging each append with its own id
COMMIT_ID_KEY = "delta_sink.commit_id"
# How many recent versions are searched for our commit
COMMIT_HISTORY_LOOKBACK = 100


class DeltaLakeTable(Table, LoggedClass):
    """
    Delta Lake table on any storage deltalake supports (local, S3, ADLS, GCS).

    Args:
        table_path: Table URI
        storage_options: deltalake storage_options (credentials, endpoints)
        partition_by: Partition columns used only when the first commit
            creates the table; an existing table keeps its own partitioning
    """

    def __init__(
        self,
        table_path: str,
        storage_options: Optional[Dict[str, str]] = None,
        partition_by: Optional[List[str]] = None,
    ):
        self.table_path = table_path
        self.storage_options = dict(storage_options or {})
        self.partition_by = list(partition_by) if partition_by else None
        super().__init__()

    def _open(self) -> Optional[DeltaTable]:
        try:
            return DeltaTable(self.table_path, storage_options=self.storage_options or None)
        except TableNotFoundError:
            return None

    def _table_exists(self) -> bool:
        return self._open() is not None

    def schema(self) -> TableSchema:
        if not self._table_exists():
            return {}
        lf = pl.scan_delta(self.table_path, storage_options=self.storage_options or None)
        return dict(lf.collect_schema())

    def current_version(self) -> Optional[int]:
        dt = self._open()
        return dt.version() if dt is not None else None

    def _partition_columns(self, dt: Optional[DeltaTable]) -> Optional[List[str]]:
        # An existing table's partitioning wins over the configured one
        if dt is not None:
            existing = dt.metadata().partition_columns
            return list(existing) if existing else None
        return self.partition_by

    @logged_operation(level=logging.INFO, operation_name="commit")
    def _commit_data_files(self, data_files: List[DataFile]) -> int:
        df = combine_data_files(data_files)
        dt = self._open()
        commit_id = uuid.uuid4().hex

        write_deltalake(
            self.table_path,
            df.to_arrow(),
            mode="append",
            schema_mode="merge",
            storage_options=self.storage_options or None,
            partition_by=self._partition_columns(dt),
            commit_properties=CommitProperties(custom_metadata={COMMIT_ID_KEY: commit_id}),
        )  # type: ignore[call-overload]

        version = self._version_of(commit_id)
        self._log(
            logging.DEBUG,
            "Appended data files",
            table_version=version,
            data_files=len(data_files),
            rows=df.height,
        )
        return version

    def _version_of(self, commit_id: str) -> int:
        """
        Version written by the commit tagged ``commit_id``.

        Other writers may have committed since, so the latest version is not
        necessarily ours; the tag is looked up in recent history instead.
        """
        history = DeltaTable(
            self.table_path, storage_options=self.storage_options or None
        ).history(limit=COMMIT_HISTORY_LOOKBACK)
        for entry in history:
            if entry.get(COMMIT_ID_KEY) == commit_id:
                return int(entry["version"])
        raise RuntimeError(
            f"Commit {commit_id} not found in the last {COMMIT_HISTORY_LOOKBACK} "
            f"versions of {self.table_path}"
        )

    def read(self, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Read the current table version (empty frame if the table does not exist)."""
        if not self._table_exists():
            return pl.DataFrame()
        lf = pl.scan_delta(self.table_path, storage_options=self.storage_options or None)
        if columns:
            lf = lf.select(columns)
        return lf.collect()
