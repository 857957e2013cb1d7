"""Tests for LoggedClass and the logged_operation decorator."""

import logging

import pytest

from delta_sink.common.logging import LoggedClass, logged_operation


class Writer(LoggedClass):
    def __init__(self, table_path):
        self.table_path = table_path
        super().__init__()

    @logged_operation(level=logging.INFO)
    def flush(self, rows):
        return len(rows)

    @logged_operation(level=logging.INFO, log_start=True, operation_name="publish")
    async def send(self, fail=False):
        if fail:
            raise OSError("broker gone")
        return "sent"

    @logged_operation()
    def explode(self):
        raise ValueError("bad batch")


class NamedWriter(Writer):
    log_component = "inner"


@pytest.fixture
def writer():
    return Writer("s3://bucket/events")


class TestLoggedClass:

    def test_logger_named_after_module(self, writer):
        assert writer._logger.name == __name__

    def test_log_component_suffix(self):
        assert NamedWriter("t")._logger.name == f"{__name__}.inner"

    def test_log_includes_instance_context(self, writer, caplog):
        with caplog.at_level(logging.INFO, logger=__name__):
            writer._log(logging.INFO, "hello", rows=3)

        record = caplog.records[-1]
        assert record.getMessage() == "hello"
        assert record.table_path == "s3://bucket/events"
        assert record.rows == 3

    def test_log_exception(self, writer, caplog):
        with caplog.at_level(logging.ERROR, logger=__name__):
            writer._log_exception(RuntimeError("boom"), "failed", data_files=2)

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.error_message == "boom"
        assert record.data_files == 2
        assert record.exc_info is not None


class TestLoggedOperation:

    def test_sync_completion(self, writer, caplog):
        with caplog.at_level(logging.INFO, logger=__name__):
            assert writer.flush([1, 2]) == 2

        record = caplog.records[-1]
        assert record.getMessage() == "Writer.flush completed"
        assert record.operation == "Writer.flush"
        assert record.duration_ms >= 0
        assert record.table_path == "s3://bucket/events"

    def test_sync_failure_reraises(self, writer, caplog):
        with caplog.at_level(logging.DEBUG, logger=__name__):
            with pytest.raises(ValueError, match="bad batch"):
                writer.explode()

        record = caplog.records[-1]
        assert record.getMessage() == "Writer.explode failed"
        assert not hasattr(record, "error_category")
        assert record.error_type == "ValueError"

    @pytest.mark.asyncio
    async def test_async_start_and_completion(self, writer, caplog):
        with caplog.at_level(logging.INFO, logger=__name__):
            assert await writer.send() == "sent"

        messages = [r.getMessage() for r in caplog.records]
        assert messages[-2:] == ["Writer.publish starting", "Writer.publish completed"]

    @pytest.mark.asyncio
    async def test_async_failure_reraises(self, writer, caplog):
        with caplog.at_level(logging.INFO, logger=__name__):
            with pytest.raises(OSError):
                await writer.send(fail=True)

        assert caplog.records[-1].getMessage() == "Writer.publish failed"

    def test_preserves_function_metadata(self):
        assert Writer.flush.__name__ == "flush"
