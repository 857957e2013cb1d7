"""
Per-record Kafka context for log lines.

While the coordination channel dispatches a record, every log line emitted
by the handler (at any depth) carries the record's topic, partition, offset
and the reader group, as ``kafka_*`` fields.
"""

from contextvars import ContextVar
from typing import Any, Dict, Optional

# Unset sentinels: empty string for names, -1 for positions (0 is a valid offset)
_VARIABLES: Dict[str, ContextVar] = {
    "topic": ContextVar("kafka_topic", default=""),
    "partition": ContextVar("kafka_partition", default=-1),
    "offset": ContextVar("kafka_offset", default=-1),
    "consumer_group": ContextVar("kafka_consumer_group", default=""),
}
_UNSET = {"topic": "", "partition": -1, "offset": -1, "consumer_group": ""}


def set_kafka_context(
    topic: Optional[str] = None,
    partition: Optional[int] = None,
    offset: Optional[int] = None,
    consumer_group: Optional[str] = None,
) -> None:
    """Set the given fields for the current context; None leaves a field as is."""
    values = {"topic": topic, "partition": partition, "offset": offset, "consumer_group": consumer_group}
    for key, value in values.items():
        if value is not None:
            _VARIABLES[key].set(value)


def get_kafka_context() -> Dict[str, Any]:
    """Fields that are set, keyed ``kafka_<field>``."""
    return {
        f"kafka_{key}": var.get()
        for key, var in _VARIABLES.items()
        if var.get() != _UNSET[key]
    }


def clear_kafka_context() -> None:
    for key, var in _VARIABLES.items():
        var.set(_UNSET[key])


class KafkaLogContext:
    """
    Tag every log line inside the block with the record being handled.

    Nested blocks override only the fields they pass; leaving a block (also
    by exception) restores the outer values.

    Usage:
        with KafkaLogContext(topic="control", partition=0, offset=12345):
            await handler(message)
    """

    def __init__(
        self,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        offset: Optional[int] = None,
        consumer_group: Optional[str] = None,
    ):
        self.new_context = {
            "topic": topic,
            "partition": partition,
            "offset": offset,
            "consumer_group": consumer_group,
        }
        self._tokens: list = []

    def __enter__(self) -> "KafkaLogContext":
        for key, value in self.new_context.items():
            if value is not None:
                var = _VARIABLES[key]
                self._tokens.append((var, var.set(value)))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)
        return False
