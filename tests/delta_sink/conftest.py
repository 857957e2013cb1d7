"""
Shared fixtures for delta sink tests.

FakeLogConnection stands in for LogConnection: an in-memory log per
partition with a read position, committed offsets per group, and the same
not-started checks, so channel behavior can be tested without a broker.
"""

from dataclasses import dataclass
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from aiokafka.structs import OffsetAndMetadata, TopicPartition

from config.config import SinkConfig
from delta_sink.storage.inmemory_delta import InMemoryDeltaTable

TOPIC = "control-delta"
COMMIT_GROUP = "cg-control-delta"


@dataclass
class FakeRecord:
    topic: str
    partition: int
    offset: int
    value: Optional[bytes]


class FakeLogConnection:
    """In-memory log connection bound to one topic."""

    def __init__(self, topic: str = TOPIC, partitions: int = 1, max_batch: int = 100):
        self.topic = topic
        self.max_batch = max_batch
        self.log: Dict[int, List[FakeRecord]] = {p: [] for p in range(partitions)}
        self.positions: Dict[int, int] = {}
        self.committed: Dict[str, Dict[TopicPartition, OffsetAndMetadata]] = {}
        self.seeks: List[tuple] = []
        self.poll_calls = 0
        self.started = False
        self.stopped = False
        self.send_error: Optional[Exception] = None
        self.committed_error: Optional[Exception] = None

    @property
    def partitions(self) -> List[TopicPartition]:
        return [TopicPartition(self.topic, p) for p in sorted(self.log)]

    def append(self, value: Optional[bytes], partition: int = 0) -> FakeRecord:
        """Put a record on the log as another producer would."""
        records = self.log[partition]
        record = FakeRecord(self.topic, partition, len(records), value)
        records.append(record)
        return record

    def commit(self, group_id: str, partition: int, offset: int) -> None:
        tp = TopicPartition(self.topic, partition)
        self.committed.setdefault(group_id, {})[tp] = OffsetAndMetadata(offset, "")

    def _require_started(self) -> None:
        if not self.started:
            raise RuntimeError("Log connection not started. Call start() first.")

    async def start(self) -> None:
        self.started = True
        # auto_offset_reset="latest": a fresh reader starts at the end of the log
        self.positions = {p: len(records) for p, records in self.log.items()}

    async def stop(self) -> None:
        self.started = False
        self.stopped = True

    async def send(self, value: bytes):
        self._require_started()
        if self.send_error is not None:
            raise self.send_error
        record = self.append(value)
        return SimpleNamespace(topic=record.topic, partition=record.partition, offset=record.offset)

    async def poll(self) -> Dict[TopicPartition, List[FakeRecord]]:
        self._require_started()
        self.poll_calls += 1
        batch: Dict[TopicPartition, List[FakeRecord]] = {}
        for partition, records in sorted(self.log.items()):
            position = self.positions[partition]
            chunk = records[position:position + self.max_batch]
            if chunk:
                batch[TopicPartition(self.topic, partition)] = chunk
                self.positions[partition] = position + len(chunk)
        return batch

    async def committed_offsets(self, group_id: str) -> Dict[TopicPartition, OffsetAndMetadata]:
        self._require_started()
        if self.committed_error is not None:
            raise self.committed_error
        return dict(self.committed.get(group_id, {}))

    def seek(self, tp: TopicPartition, offset: int) -> None:
        self._require_started()
        self.seeks.append((tp, offset))
        self.positions[tp.partition] = offset


@pytest.fixture
def sink_config():
    return SinkConfig(
        coordinator_topic=TOPIC,
        commit_group_id=COMMIT_GROUP,
        table_path="inmemory://events",
        commit_interval_ms=1000,
        target_file_rows=100,
        kafka={"bootstrap_servers": "localhost:9092"},
    )


@pytest.fixture
def fake_connection():
    return FakeLogConnection()


@pytest.fixture
def make_connection():
    """Factory for fake connections with several partitions or small poll batches."""
    return FakeLogConnection


@pytest.fixture
def inmemory_table():
    return InMemoryDeltaTable("inmemory://events")
