"""
Tests for the time-based table commit buffer.

A fake clock drives the commit interval and an in-memory table stands in
for Delta Lake.
"""

import logging

import pytest

from core.errors import RowConversionError, TableCommitError
from delta_sink.common.metrics import REGISTRY
from delta_sink.storage.inmemory_delta import InMemoryDeltaTable
from delta_sink.writers.commit_buffer import CommitResult, TableCommitBuffer


class FakeClock:
    """Monotonic clock under test control, in seconds."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def loads():
    """Every table path the buffer resolved, in order."""
    return []


@pytest.fixture
def make_buffer(inmemory_table, clock, loads):
    def _make(commit_interval_ms=1000, table=None, **kwargs):
        target = table if table is not None else inmemory_table

        def loader(path):
            loads.append(path)
            return target

        return TableCommitBuffer(
            target.table_path,
            commit_interval_ms=commit_interval_ms,
            table_loader=loader,
            clock=clock,
            **kwargs,
        )

    return _make


def _rows(*ids):
    return [{"id": i, "name": f"row-{i}"} for i in ids]


class TestTableCommitBufferInit:

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError, match="commit_interval_ms"):
            TableCommitBuffer("inmemory://events", commit_interval_ms=-1)

    def test_from_config(self, sink_config):
        buffer = TableCommitBuffer.from_config(sink_config)

        assert buffer.table_path == "inmemory://events"
        assert buffer.commit_interval_ms == 1000
        assert buffer.target_file_rows == 100
        assert not buffer.has_open_session


class TestWrite:

    def test_empty_batch_does_nothing(self, make_buffer, loads, inmemory_table):
        buffer = make_buffer()

        assert buffer.write([]) is None
        assert not buffer.has_open_session
        assert loads == []
        assert inmemory_table.current_version() is None

    def test_first_write_opens_session(self, make_buffer, loads):
        buffer = make_buffer()

        assert buffer.write(_rows(1, 2)) is None
        assert buffer.has_open_session
        assert buffer.buffered_record_count == 2
        assert loads == ["inmemory://events"]

    def test_no_commit_before_interval(self, make_buffer, clock, inmemory_table):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(999)

        assert buffer.write(_rows(2)) is None
        assert inmemory_table.current_version() is None
        assert buffer.buffered_record_count == 2

    def test_commits_once_interval_elapsed(self, make_buffer, clock, inmemory_table):
        """Rows at t=0 and t=1200ms with a 1000ms interval: one commit with both."""
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(1200)

        result = buffer.write(_rows(2))

        assert result == CommitResult(
            table_path="inmemory://events",
            version=0,
            data_file_count=1,
            record_count=2,
        )
        assert inmemory_table.read()["id"].to_list() == [1, 2]
        assert len(inmemory_table.snapshots()) == 1
        assert not buffer.has_open_session

    def test_commits_exactly_at_interval(self, make_buffer, clock):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(1000)

        assert buffer.write(_rows(2)) is not None

    def test_next_write_opens_new_window(self, make_buffer, clock, inmemory_table, loads):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(1500)
        buffer.write(_rows(2))

        clock.advance_ms(500)
        assert buffer.write(_rows(3)) is None
        assert buffer.buffered_record_count == 1

        clock.advance_ms(1000)
        result = buffer.write(_rows(4))
        assert result.version == 1
        assert result.record_count == 2
        assert loads == ["inmemory://events", "inmemory://events"]

    def test_window_starts_at_first_write_not_construction(self, make_buffer, clock):
        buffer = make_buffer(commit_interval_ms=1000)
        clock.advance_ms(5000)

        assert buffer.write(_rows(1)) is None

    def test_no_commit_without_writes(self, make_buffer, clock, inmemory_table):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(10_000)

        assert inmemory_table.current_version() is None
        assert buffer.has_open_session

    def test_commit_if_needed(self, make_buffer, clock):
        buffer = make_buffer(commit_interval_ms=1000)
        assert buffer.commit_if_needed() is None

        buffer.write(_rows(1))
        assert buffer.commit_if_needed() is None
        clock.advance_ms(1000)
        assert buffer.commit_if_needed().record_count == 1

    def test_zero_interval_commits_every_batch(self, make_buffer, inmemory_table):
        buffer = make_buffer(commit_interval_ms=0)

        assert buffer.write(_rows(1, 2)).version == 0
        assert buffer.write(_rows(3)).version == 1
        assert buffer.write([]) is None
        assert inmemory_table.get_row_count() == 3

    def test_large_session_commits_several_files_atomically(self, make_buffer, clock, inmemory_table):
        buffer = make_buffer(commit_interval_ms=1000, target_file_rows=2)
        buffer.write(_rows(1, 2, 3, 4))
        clock.advance_ms(1000)

        result = buffer.write(_rows(5))

        assert result.data_file_count == 3
        assert result.record_count == 5
        assert len(inmemory_table.snapshots()) == 1
        assert len(inmemory_table.snapshots()[0].data_file_ids) == 3

    def test_bad_row(self, make_buffer):
        buffer = make_buffer()
        buffer.write(_rows(1))

        with pytest.raises(RowConversionError):
            buffer.write([{"id": 2}, "not a row", {"id": 3}])

        # None of the batch is buffered; the session stays open
        assert buffer.has_open_session
        assert buffer.buffered_record_count == 1

    def test_commit_is_logged(self, make_buffer, clock, caplog):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        clock.advance_ms(1000)

        with caplog.at_level(logging.INFO, logger="delta_sink.writers.commit_buffer"):
            buffer.write(_rows(2))

        record = next(r for r in caplog.records if r.getMessage() == "Committed data files")
        assert record.table_version == 0
        assert record.table_path == "inmemory://events"


class TestCommitFailure:

    def test_failure_raises_and_loses_rows(self, make_buffer, clock):
        table = InMemoryDeltaTable("inmemory://failing", fail_commits=1)
        buffer = make_buffer(commit_interval_ms=1000, table=table)
        buffer.write(_rows(1))
        clock.advance_ms(1000)

        with pytest.raises(TableCommitError) as exc_info:
            buffer.write(_rows(2))

        assert isinstance(exc_info.value.cause, OSError)
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert not buffer.has_open_session
        assert table.current_version() is None

        # The next write starts a fresh session; the lost rows are not retried
        clock.advance_ms(1000)
        assert buffer.write(_rows(3)) is None
        clock.advance_ms(1000)
        result = buffer.write(_rows(4))
        assert result.version == 0
        assert table.read()["id"].to_list() == [3, 4]

    def test_failure_is_counted(self, make_buffer, clock):
        table = InMemoryDeltaTable("inmemory://counted", fail_commits=1)
        buffer = make_buffer(commit_interval_ms=0, table=table)
        labels = {"table": "inmemory://counted", "success": "false"}
        before = REGISTRY.get_sample_value("delta_sink_table_commits_total", labels) or 0

        with pytest.raises(TableCommitError):
            buffer.write(_rows(1))

        assert REGISTRY.get_sample_value("delta_sink_table_commits_total", labels) == before + 1


class TestUnconvertibleRows:

    def test_rejected_at_write_and_good_rows_commit(self, make_buffer, clock, inmemory_table):
        buffer = make_buffer(commit_interval_ms=0)
        buffer.write([{"id": 1}])

        # The table now types "id" as Int64
        buffer.commit_interval_ms = 1000
        assert buffer.write([{"id": 2}]) is None
        with pytest.raises(RowConversionError):
            buffer.write([{"id": "two"}])
        assert buffer.buffered_record_count == 1

        clock.advance_ms(1000)
        result = buffer.commit_if_needed()

        assert result.record_count == 1
        assert inmemory_table.read()["id"].to_list() == [1, 2]

    def test_bad_batch_does_not_block_later_writes(self, make_buffer, clock, inmemory_table):
        buffer = make_buffer(commit_interval_ms=0, target_file_rows=1)
        buffer.write([{"id": 1}])

        buffer.commit_interval_ms = 1000
        with pytest.raises(RowConversionError):
            buffer.write([{"id": "two"}])

        for i in (3, 4, 5):
            assert buffer.write([{"id": i}]) is None
        assert buffer.buffered_record_count == 3

        clock.advance_ms(1000)
        result = buffer.commit_if_needed()

        assert result.version == 1
        assert inmemory_table.read()["id"].to_list() == [1, 3, 4, 5]

    def test_new_column_type_fixed_by_first_batch(self, make_buffer):
        buffer = make_buffer()
        buffer.write([{"id": 1, "score": 10}])

        with pytest.raises(RowConversionError):
            buffer.write([{"id": 2, "score": "high"}])
        assert buffer.buffered_record_count == 1


class TestClose:

    def test_close_discards_without_commit(self, make_buffer, inmemory_table):
        buffer = make_buffer()
        buffer.write(_rows(1, 2))

        buffer.close()

        assert not buffer.has_open_session
        assert buffer.buffered_record_count == 0
        assert inmemory_table.current_version() is None
        assert inmemory_table.snapshots() == []

    def test_close_is_idempotent(self, make_buffer):
        buffer = make_buffer()
        buffer.close()
        buffer.write(_rows(1))
        buffer.close()
        buffer.close()

    def test_write_after_close_opens_new_session(self, make_buffer, clock):
        buffer = make_buffer(commit_interval_ms=1000)
        buffer.write(_rows(1))
        buffer.close()

        clock.advance_ms(2000)
        assert buffer.write(_rows(2)) is None
        assert buffer.buffered_record_count == 1
