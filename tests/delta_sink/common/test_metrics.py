"""
Tests for delta sink Prometheus metrics.

Validates:
- Metrics live in the dedicated sink registry
- Helper function behavior
"""

from unittest.mock import patch

import pytest
from prometheus_client import REGISTRY as DEFAULT_REGISTRY

from delta_sink.common.metrics import (
    REGISTRY,
    get_prometheus_registry,
    record_message_received,
    record_message_sent,
    record_rows_buffered,
    record_send_error,
    record_table_commit,
    start_metrics_server,
    update_channel_offset,
    update_connection_status,
)


def _value(name, labels):
    return REGISTRY.get_sample_value(name, labels) or 0


class TestRegistry:

    def test_dedicated_registry(self):
        assert get_prometheus_registry() is REGISTRY
        assert REGISTRY is not DEFAULT_REGISTRY

    def test_sink_metrics_not_in_default_registry(self):
        record_message_sent("registry-topic", "COMMIT_REQUEST")
        assert (
            DEFAULT_REGISTRY.get_sample_value(
                "delta_sink_channel_messages_sent_total",
                {"topic": "registry-topic", "message_type": "COMMIT_REQUEST"},
            )
            is None
        )

    def test_start_metrics_server_uses_sink_registry(self):
        with patch("delta_sink.common.metrics.start_http_server") as mock_start:
            start_metrics_server(9108)
        mock_start.assert_called_once_with(9108, addr="0.0.0.0", registry=REGISTRY)


class TestChannelMetrics:

    def test_message_counters(self):
        labels = {"topic": "metrics-topic", "message_type": "DATA_WRITTEN"}
        sent = _value("delta_sink_channel_messages_sent_total", labels)
        received = _value("delta_sink_channel_messages_received_total", labels)

        record_message_sent("metrics-topic", "DATA_WRITTEN")
        record_message_received("metrics-topic", "DATA_WRITTEN")
        record_message_received("metrics-topic", "DATA_WRITTEN")

        assert _value("delta_sink_channel_messages_sent_total", labels) == sent + 1
        assert _value("delta_sink_channel_messages_received_total", labels) == received + 2

    def test_send_errors_by_category(self):
        labels = {"topic": "metrics-topic", "error_category": "auth"}
        before = _value("delta_sink_channel_send_errors_total", labels)

        record_send_error("metrics-topic", "auth")

        assert _value("delta_sink_channel_send_errors_total", labels) == before + 1

    def test_offset_gauge(self):
        update_channel_offset("metrics-topic", 3, 42)
        assert REGISTRY.get_sample_value(
            "delta_sink_channel_offset", {"topic": "metrics-topic", "partition": "3"}
        ) == 42

    @pytest.mark.parametrize("connected,expected", [(True, 1), (False, 0)])
    def test_connection_status(self, connected, expected):
        update_connection_status("metrics-topic", connected)
        assert REGISTRY.get_sample_value(
            "delta_sink_channel_connection_status", {"topic": "metrics-topic"}
        ) == expected


class TestTableMetrics:

    def test_rows_buffered(self):
        labels = {"table": "metrics-table"}
        before = _value("delta_sink_rows_buffered_total", labels)

        record_rows_buffered("metrics-table", 25)

        assert _value("delta_sink_rows_buffered_total", labels) == before + 25

    def test_successful_commit(self):
        labels = {"table": "metrics-table"}
        commits = _value("delta_sink_table_commits_total", dict(labels, success="true"))
        observed = _value("delta_sink_commit_data_files_count", labels)

        record_table_commit("metrics-table", success=True, data_files=4, duration_seconds=0.2)

        assert _value("delta_sink_table_commits_total", dict(labels, success="true")) == commits + 1
        assert _value("delta_sink_commit_data_files_count", labels) == observed + 1
        assert _value("delta_sink_commit_duration_seconds_count", labels) >= 1

    def test_failed_commit_skips_data_files(self):
        labels = {"table": "metrics-failed-table"}

        record_table_commit("metrics-failed-table", success=False)

        assert _value("delta_sink_table_commits_total", dict(labels, success="false")) == 1
        assert _value("delta_sink_commit_data_files_count", labels) == 0
        assert _value("delta_sink_commit_duration_seconds_count", labels) == 0
