"""
Coordination channel over a Kafka log topic.

A Channel publishes coordination messages, drains whatever is currently on
the topic into a subclass-supplied ``receive`` hook, and can reposition its
reader at the checkpoint last committed under the durable commit group.

Two groups are involved and kept apart on purpose:

- the reader group (``cg-delta-sink-<uuid>``) is fresh per channel instance,
  never commits, and only exists so the consumer has an identity;
- the commit group (``sink.commit.group.id``) is durable. This module only
  reads its offsets; writing them is left to the orchestrating role that
  decides when a drained position is safe (see ``channel_offsets()``).
"""

import logging
import time
import uuid
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Mapping, Optional

from aiokafka.structs import ConsumerRecord, OffsetAndMetadata, RecordMetadata, TopicPartition

from config.config import SinkConfig
from core.errors import KafkaErrorClassifier
from core.logging import (
    KafkaLogContext,
    get_logger,
    log_exception,
    log_startup_banner,
    log_with_context,
    set_log_context,
)
from core.utils import generate_worker_id
from delta_sink.channel.connection import LogConnection
from delta_sink.channel.messages import Message, MessageType
from delta_sink.common.metrics import (
    channel_drain_duration_seconds,
    record_message_received,
    record_message_sent,
    record_send_error,
    update_channel_offset,
    update_connection_status,
)

logger = get_logger(__name__)

READER_GROUP_PREFIX = "cg-delta-sink-"

MessageHandler = Callable[[Message], Awaitable[None]]


def new_reader_group_id() -> str:
    """Fresh reader group id; unique per call."""
    return f"{READER_GROUP_PREFIX}{uuid.uuid4()}"


class Channel(ABC):
    """
    Base class for coordinating roles that talk over the coordination topic.

    Lifecycle: created -> start() -> (send / process / resume_from_last_checkpoint)*
    -> stop(). A stopped channel cannot be restarted; build a new one.

    All calls are expected from one asyncio task. ``process()`` and ``send()``
    must not run concurrently on the same channel.

    Usage:
        >>> class Worker(Channel):
        ...     async def receive(self, message):
        ...         ...
        >>> channel = Worker(config)
        >>> await channel.start()
        >>> await channel.resume_from_last_checkpoint()
        >>> while running:
        ...     await channel.process()
    """

    def __init__(
        self,
        config: SinkConfig,
        reader_group_id: Optional[str] = None,
        connection: Optional[LogConnection] = None,
    ):
        self.config = config
        self.topic = config.coordinator_topic
        self.commit_group_id = config.commit_group_id
        self.reader_group_id = reader_group_id or new_reader_group_id()
        # Log tag only; the reader group id stays uuid-based
        self.worker_id = generate_worker_id(self.__class__.__name__.lower())
        self._connection = connection or LogConnection(
            config.kafka, self.topic, self.reader_group_id
        )
        self._offsets: Dict[TopicPartition, OffsetAndMetadata] = {}
        self._started = False
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> None:
        """Connect and assign the reader to every partition of the topic."""
        if self._closed:
            raise RuntimeError("Channel is closed and cannot be restarted.")
        if self._started:
            logger.warning("Channel already started, ignoring duplicate start call")
            return

        await self._connection.start()
        self._started = True
        set_log_context(worker_id=self.worker_id)
        update_connection_status(self.topic, connected=True)

        log_with_context(
            logger,
            logging.INFO,
            "Coordination channel started",
            topic=self.topic,
            reader_group_id=self.reader_group_id,
            commit_group_id=self.commit_group_id,
        )
        log_startup_banner(
            logger,
            f"{self.__class__.__name__} channel",
            topic=self.topic,
            partitions=len(self._connection.partitions),
            reader_group_id=self.reader_group_id,
            commit_group_id=self.commit_group_id,
        )

    def _require_running(self) -> None:
        if self._closed:
            raise RuntimeError("Channel is closed.")
        if not self._started:
            raise RuntimeError("Channel not started. Call start() first.")

    async def send(self, message: Message) -> RecordMetadata:
        """
        Publish one message and wait until the broker acknowledges it.

        No retry: any serialization or transport failure is logged with its
        error category and raised to the caller unchanged.
        """
        self._require_running()
        message_type = message.type.value

        log_with_context(
            logger,
            logging.INFO,
            f"Sending message of type: {message_type}",
            topic=self.topic,
            message_type=message_type,
            message_id=message.message_id,
        )

        try:
            data = message.to_bytes()
            metadata = await self._connection.send(data)
        except Exception as e:
            classified = KafkaErrorClassifier.classify_producer_error(
                e, {"topic": self.topic, "message_type": message_type}
            )
            record_send_error(self.topic, classified.category.value)
            log_exception(
                logger,
                e,
                "Failed to send coordination message",
                error_category=classified.category,
                topic=self.topic,
                message_type=message_type,
                message_id=message.message_id,
            )
            raise

        record_message_sent(self.topic, message_type)
        log_with_context(
            logger,
            logging.DEBUG,
            "Message acknowledged",
            topic=metadata.topic,
            partition=metadata.partition,
            offset=metadata.offset,
            message_id=message.message_id,
        )
        return metadata

    async def process(self) -> int:
        """
        Drain every record currently on the topic into ``receive``.

        Returns:
            Number of records dispatched
        """
        return await self.consume_available(self.receive)

    async def consume_available(self, handler: MessageHandler) -> int:
        """
        Poll without waiting until a poll comes back empty, dispatching in log order.

        The checkpoint entry for a record's partition moves to ``offset + 1``
        only after ``handler`` returned for that record. A decode or handler
        failure propagates immediately; records dispatched before it keep
        their advanced offsets.

        Returns:
            Number of records dispatched
        """
        self._require_running()
        dispatched = 0
        start = time.perf_counter()

        try:
            records = await self._connection.poll()
            while records:
                for partition_records in records.values():
                    for record in partition_records:
                        await self._dispatch(record, handler)
                        dispatched += 1
                records = await self._connection.poll()
        finally:
            # Failed drains are timed too
            channel_drain_duration_seconds.labels(topic=self.topic).observe(
                time.perf_counter() - start
            )

        if dispatched:
            log_with_context(
                logger,
                logging.DEBUG,
                "Drained coordination topic",
                topic=self.topic,
                records_dispatched=dispatched,
            )
        return dispatched

    async def _dispatch(self, record: ConsumerRecord, handler: MessageHandler) -> None:
        """Decode one record, hand it over, then advance its partition."""
        with KafkaLogContext(
            topic=record.topic,
            partition=record.partition,
            offset=record.offset,
            consumer_group=self.reader_group_id,
        ):
            message = Message.from_bytes(record.value)
            log_with_context(
                logger,
                logging.INFO,
                f"Received message of type: {message.type.value}",
                message_type=message.type.value,
                message_id=message.message_id,
            )
            await handler(message)

        # Consumers store the next offset to read, hence +1
        next_offset = record.offset + 1
        self._offsets[TopicPartition(record.topic, record.partition)] = OffsetAndMetadata(
            next_offset, ""
        )
        update_channel_offset(record.topic, record.partition, next_offset)
        record_message_received(record.topic, message.type.value)

    def channel_offsets(self) -> Dict[TopicPartition, OffsetAndMetadata]:
        """
        Next offset to read per partition, for every partition drained so far.

        Returns a copy. This is the value an orchestrating role persists under
        the commit group once the work it covers is durable.
        """
        return dict(self._offsets)

    async def resume_from_last_checkpoint(self) -> Dict[TopicPartition, OffsetAndMetadata]:
        """
        Seek the reader to the offsets committed under the commit group.

        Partitions without a committed offset keep their current position.
        Assignment is unchanged.

        Returns:
            The offsets that were applied
        """
        self._require_running()
        try:
            committed = await self._connection.committed_offsets(self.commit_group_id)
        except Exception as e:
            classified = KafkaErrorClassifier.classify_admin_error(
                e, {"commit_group_id": self.commit_group_id}
            )
            log_exception(
                logger,
                e,
                "Failed to read committed offsets",
                error_category=classified.category,
                topic=self.topic,
                commit_group_id=self.commit_group_id,
            )
            raise

        for tp, offset_meta in sorted(committed.items(), key=lambda item: item[0].partition):
            self._connection.seek(tp, offset_meta.offset)
            log_with_context(
                logger,
                logging.INFO,
                "Resuming from committed offset",
                topic=tp.topic,
                partition=tp.partition,
                offset=offset_meta.offset,
                commit_group_id=self.commit_group_id,
            )

        if not committed:
            log_with_context(
                logger,
                logging.INFO,
                "No committed offsets for commit group, keeping current position",
                topic=self.topic,
                commit_group_id=self.commit_group_id,
            )
        return committed

    async def stop(self) -> None:
        """Release the connection. Terminal; safe to call more than once."""
        if self._closed:
            logger.debug("Channel already stopped")
            return

        logger.info("Channel stopping")
        self._closed = True
        try:
            await self._connection.stop()
        finally:
            update_connection_status(self.topic, connected=False)

    @abstractmethod
    async def receive(self, message: Message) -> None:
        """Handle one drained message."""


class RoutingChannel(Channel):
    """
    Channel that dispatches each message through a per-type handler table.

    Subclasses return the table from ``handlers()``. Message types without a
    handler are skipped (their offset still advances).

    Example:
        >>> class Coordinator(RoutingChannel):
        ...     def handlers(self):
        ...         return {MessageType.DATA_COMPLETE: self.on_data_complete}
        ...     async def on_data_complete(self, message):
        ...         ...
    """

    def __init__(
        self,
        config: SinkConfig,
        reader_group_id: Optional[str] = None,
        connection: Optional[LogConnection] = None,
    ):
        super().__init__(config, reader_group_id=reader_group_id, connection=connection)
        self._handlers: Mapping[MessageType, MessageHandler] = dict(self.handlers())

    @abstractmethod
    def handlers(self) -> Mapping[MessageType, MessageHandler]:
        """Handler per message type."""

    async def receive(self, message: Message) -> None:
        handler = self._handlers.get(message.type)
        if handler is None:
            log_with_context(
                logger,
                logging.DEBUG,
                "No handler for message type, skipping",
                message_type=message.type.value,
                message_id=message.message_id,
            )
            return
        await handler(message)
