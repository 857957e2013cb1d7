"""
Prometheus metrics for the delta sink.

Focused on essential metrics:
- Coordination messages sent and received, by message type
- Channel offsets per partition
- Send errors by category
- Rows buffered and table commits
- Connection health

All metrics live in a dedicated registry so several sinks (or tests) in one
process do not collide with the default prometheus_client registry.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()


def get_prometheus_registry() -> CollectorRegistry:
    """Registry holding every delta sink metric."""
    return REGISTRY


def start_metrics_server(port: int, addr: str = "0.0.0.0") -> None:
    """Expose the sink registry over HTTP for scraping."""
    start_http_server(port, addr=addr, registry=REGISTRY)
    logger.info("Metrics server listening", extra={"operation": "metrics", "client": f"{addr}:{port}"})


# =============================================================================
# Coordination channel
# =============================================================================

channel_messages_sent_counter = Counter(
    "delta_sink_channel_messages_sent_total",
    "Coordination messages published to the log topic",
    labelnames=["topic", "message_type"],
    registry=REGISTRY,
)

channel_messages_received_counter = Counter(
    "delta_sink_channel_messages_received_total",
    "Coordination messages dispatched to the channel handler",
    labelnames=["topic", "message_type"],
    registry=REGISTRY,
)

channel_send_errors_counter = Counter(
    "delta_sink_channel_send_errors_total",
    "Failed coordination message publishes by error category",
    labelnames=["topic", "error_category"],
    registry=REGISTRY,
)

channel_offset_gauge = Gauge(
    "delta_sink_channel_offset",
    "Next offset to read per partition, as tracked by the channel",
    labelnames=["topic", "partition"],
    registry=REGISTRY,
)

channel_connection_status_gauge = Gauge(
    "delta_sink_channel_connection_status",
    "Coordination channel connection status (1=started, 0=stopped)",
    labelnames=["topic"],
    registry=REGISTRY,
)

channel_drain_duration_seconds = Histogram(
    "delta_sink_channel_drain_duration_seconds",
    "Time spent draining the coordination topic in one process() call",
    labelnames=["topic"],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    registry=REGISTRY,
)

# =============================================================================
# Table commits
# =============================================================================

rows_buffered_counter = Counter(
    "delta_sink_rows_buffered_total",
    "Rows appended to an open table write session",
    labelnames=["table"],
    registry=REGISTRY,
)

table_commits_counter = Counter(
    "delta_sink_table_commits_total",
    "Table append commits by outcome",
    labelnames=["table", "success"],
    registry=REGISTRY,
)

commit_data_files_histogram = Histogram(
    "delta_sink_commit_data_files",
    "Data files attached to one append commit",
    labelnames=["table"],
    buckets=[1, 2, 5, 10, 25, 50, 100],
    registry=REGISTRY,
)

commit_duration_seconds = Histogram(
    "delta_sink_commit_duration_seconds",
    "Time spent finalizing and committing a write session",
    labelnames=["table"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=REGISTRY,
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_message_sent(topic: str, message_type: str) -> None:
    channel_messages_sent_counter.labels(topic=topic, message_type=message_type).inc()


def record_message_received(topic: str, message_type: str) -> None:
    channel_messages_received_counter.labels(topic=topic, message_type=message_type).inc()


def record_send_error(topic: str, error_category: str) -> None:
    channel_send_errors_counter.labels(topic=topic, error_category=error_category).inc()


def update_channel_offset(topic: str, partition: int, offset: int) -> None:
    channel_offset_gauge.labels(topic=topic, partition=str(partition)).set(offset)


def update_connection_status(topic: str, connected: bool) -> None:
    channel_connection_status_gauge.labels(topic=topic).set(1 if connected else 0)


def record_rows_buffered(table: str, count: int) -> None:
    rows_buffered_counter.labels(table=table).inc(count)


def record_table_commit(
    table: str,
    success: bool,
    data_files: int = 0,
    duration_seconds: Optional[float] = None,
) -> None:
    """Record one commit attempt of the commit buffer."""
    table_commits_counter.labels(table=table, success="true" if success else "false").inc()
    if success:
        commit_data_files_histogram.labels(table=table).observe(data_files)
    if duration_seconds is not None:
        commit_duration_seconds.labels(table=table).observe(duration_seconds)


__all__ = [
    "REGISTRY",
    "get_prometheus_registry",
    "start_metrics_server",
    "channel_messages_sent_counter",
    "channel_messages_received_counter",
    "channel_send_errors_counter",
    "channel_offset_gauge",
    "channel_connection_status_gauge",
    "channel_drain_duration_seconds",
    "rows_buffered_counter",
    "table_commits_counter",
    "commit_data_files_histogram",
    "commit_duration_seconds",
    "record_message_sent",
    "record_message_received",
    "record_send_error",
    "update_channel_offset",
    "update_connection_status",
    "record_rows_buffered",
    "record_table_commit",
]
