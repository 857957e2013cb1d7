"""Log formatters for JSON and console output."""

import json
import logging
import re
import sys
from datetime import UTC, datetime
from typing import Any, Callable, Optional

from core.logging.context import get_log_context
from core.logging.kafka_context import get_kafka_context
from core.utils.json_serializers import json_serializer

# Structured fields copied from LogRecord extras, with an optional coercion.
# Anything not listed here is dropped from JSON output.
FieldCoercion = Optional[Callable[[Any], Any]]

CHANNEL_FIELDS: dict[str, FieldCoercion] = {
    "topic": None,
    "partition": int,
    "offset": int,
    "partitions": None,
    "reader_group_id": None,
    "commit_group_id": None,
    "message_type": None,
    "message_id": None,
    "records_dispatched": int,
}

TABLE_FIELDS: dict[str, FieldCoercion] = {
    "table_path": None,
    "table_version": int,
    "data_files": int,
    "record_count": int,
    "rows": int,
    "columns": None,
    "elapsed_ms": float,
    "commit_interval_ms": int,
}

GENERAL_FIELDS: dict[str, FieldCoercion] = {
    "operation": None,
    "trace_id": None,
    "duration_ms": float,
    "error_category": None,
    "error_type": None,
    "error_message": None,
    "error": None,
    "error_count": int,
    "client": None,
    "dropped_keys": None,
}

# Query parameters and URI userinfo that carry storage credentials
_SECRET_QUERY_PARAM = re.compile(
    r"([?&])(sig|token|key|secret|password|auth)=[^&]*",
    re.IGNORECASE,
)
_URI_USERINFO = re.compile(r"^([a-z][a-z0-9+.-]*://)[^/@]+@", re.IGNORECASE)


def redact_uri(uri: str) -> str:
    """Strip credentials from a storage URI, keeping the location readable."""
    uri = _URI_USERINFO.sub(r"\1[REDACTED]@", uri)
    return _SECRET_QUERY_PARAM.sub(r"\1\2=[REDACTED]", uri)


def _coerce(value: Any, coercion: FieldCoercion) -> Any:
    if coercion is None or value is None:
        return value
    try:
        return coercion(value)
    except (ValueError, TypeError):
        # A null aggregates better than a stray string
        return None


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line, for jq and log shippers.

    Output keys, in order: timestamp/level/logger/message, worker context,
    Kafka record context, then whichever channel, table and general fields
    the record carries. ``table_path`` is redacted before it is written.
    """

    FIELDS: dict[str, FieldCoercion] = {**CHANNEL_FIELDS, **TABLE_FIELDS, **GENERAL_FIELDS}
    URI_FIELDS = frozenset({"table_path"})

    # Source location is noise at INFO/WARNING
    SOURCE_LOCATION_LEVELS = frozenset({logging.DEBUG, logging.ERROR, logging.CRITICAL})

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, UTC)
        entry: dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: v for k, v in get_log_context().items() if v})
        entry.update(get_kafka_context())

        if record.levelno in self.SOURCE_LOCATION_LEVELS:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for name, coercion in self.FIELDS.items():
            value = getattr(record, name, None)
            if value is None:
                continue
            value = _coerce(value, coercion)
            if name in self.URI_FIELDS and isinstance(value, str):
                value = redact_uri(value)
            entry[name] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "stacktrace": self.formatException(record.exc_info),
            }

        return json.dumps(entry, default=json_serializer, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """
    Single-line console output for people watching a sink run.

    Layout: ``<time> - <LEVEL> - [stage] [worker] - [p<partition>@<offset>] [v<version>] message``.
    Level colors are used only when stdout is a TTY.
    """

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stdout.isatty()

    def _level(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno) if self._use_colors else None
        return f"{color}{record.levelname}{self.RESET}" if color else record.levelname

    @staticmethod
    def _origin(context: dict[str, str]) -> list[str]:
        """Which process emitted the line: stage and worker id, when set."""
        return [f"[{context[key]}]" for key in ("stage", "worker_id") if context.get(key)]

    @staticmethod
    def _position(record: logging.LogRecord) -> list[str]:
        """Where in the log or the table the line refers to."""
        kafka = get_kafka_context()
        tags = []
        if "kafka_partition" in kafka and "kafka_offset" in kafka:
            tags.append(f"[p{kafka['kafka_partition']}@{kafka['kafka_offset']}]")
        version = getattr(record, "table_version", None)
        if version is not None:
            tags.append(f"[v{version}]")
        return tags

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        head = " - ".join([stamp, self._level(record), *self._origin(get_log_context())])
        body = " ".join([*self._position(record), record.getMessage()])

        line = f"{head} - {body}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line
