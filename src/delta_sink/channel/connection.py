"""
Log connection: producer, consumer and admin client for one coordination topic.

The three aiokafka clients share one set of broker settings. The consumer is
bound to an ephemeral reader group that never commits, so its position only
moves through reads and explicit seeks.
"""

import inspect
import logging
import re
from typing import Any, Dict, List, Optional

from aiokafka import AIOKafkaConsumer, AIOKafkaProducer
from aiokafka.admin import AIOKafkaAdminClient
from aiokafka.structs import ConsumerRecord, OffsetAndMetadata, RecordMetadata, TopicPartition

from core.errors import ChannelCloseError, PermanentError
from core.logging import get_logger, log_exception, log_with_context

logger = get_logger(__name__)

# Settings the consumer always gets, whatever the broker properties say
CONSUMER_OVERRIDES = {
    "enable_auto_commit": False,
    "auto_offset_reset": "latest",
}

# aiokafka validates these against ints, but their defaults carry no type
INTEGER_STRING_SETTINGS = frozenset({"acks"})


def _coerce_setting(key: str, value: Any, parameter: inspect.Parameter) -> Any:
    """
    Convert a string setting to the type of the constructor's default.

    Property sets carry strings. Only parameters whose default is a bool,
    int or float are converted; any other value passes through unchanged,
    so a numeric-looking client id or password stays a string.
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    default = parameter.default

    if key in INTEGER_STRING_SETTINGS:
        return int(text) if re.fullmatch(r"-?\d+", text) else value
    if isinstance(default, bool):
        if text.lower() not in ("true", "false"):
            raise ValueError(f"{key} must be true or false, got {value!r}")
        return text.lower() == "true"
    try:
        if isinstance(default, int):
            return int(text)
        if isinstance(default, float):
            return float(text)
    except ValueError as e:
        raise ValueError(f"{key} must be a {type(default).__name__}, got {value!r}") from e
    return value


def _accepted_kwargs(client_cls: type, props: Dict[str, Any]) -> Dict[str, Any]:
    """
    Keep only the settings ``client_cls`` accepts as keyword arguments,
    typed after the constructor defaults (see ``_coerce_setting``).

    The same broker property set feeds clients with different constructor
    signatures; the admin client in particular rejects producer/consumer-only
    settings. Dropped keys are logged at DEBUG.

    Raises:
        ValueError: If a numeric or boolean setting cannot be converted
    """
    parameters = inspect.signature(client_cls.__init__).parameters
    if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in parameters.values()):
        return dict(props)

    accepted = {
        k: _coerce_setting(k, v, parameters[k])
        for k, v in props.items()
        if k in parameters and k not in ("self", "loop")
    }
    dropped = sorted(set(props) - set(accepted))
    if dropped:
        log_with_context(
            logger,
            logging.DEBUG,
            "Dropping settings not accepted by client",
            client=client_cls.__name__,
            dropped_keys=dropped,
        )
    return accepted


class LogConnection:
    """
    Producer, consumer and admin handles bound to one coordination topic.

    aiokafka clients must be created inside a running event loop, so the
    constructor only stores settings and ``start()`` creates the clients.

    Usage:
        >>> conn = LogConnection({"bootstrap_servers": "localhost:9092"}, "control", "cg-x")
        >>> await conn.start()
        >>> try:
        ...     await conn.send(b"...")
        ...     records = await conn.poll()
        ... finally:
        ...     await conn.stop()
    """

    def __init__(
        self,
        kafka_props: Dict[str, Any],
        topic: str,
        reader_group_id: str,
    ):
        if not topic:
            raise ValueError("Coordination topic name is required")
        if not reader_group_id:
            raise ValueError("Reader group id is required")

        self.kafka_props = dict(kafka_props)
        self.topic = topic
        self.reader_group_id = reader_group_id

        self._producer: Optional[AIOKafkaProducer] = None
        self._consumer: Optional[AIOKafkaConsumer] = None
        self._admin: Optional[AIOKafkaAdminClient] = None
        self._partitions: List[TopicPartition] = []
        self._started = False

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def partitions(self) -> List[TopicPartition]:
        """Partitions the consumer is assigned to (all partitions of the topic)."""
        return list(self._partitions)

    def _producer_config(self) -> Dict[str, Any]:
        return _accepted_kwargs(AIOKafkaProducer, self.kafka_props)

    def _consumer_config(self) -> Dict[str, Any]:
        config = dict(self.kafka_props)
        config.update(CONSUMER_OVERRIDES)
        config["group_id"] = self.reader_group_id
        return _accepted_kwargs(AIOKafkaConsumer, config)

    def _admin_config(self) -> Dict[str, Any]:
        return _accepted_kwargs(AIOKafkaAdminClient, self.kafka_props)

    async def start(self) -> None:
        """
        Create and start all three clients, then assign every topic partition.

        If any step fails, whatever was already started is released and the
        original error is raised.

        Raises:
            PermanentError: If the topic does not exist or has no partitions
        """
        if self._started:
            logger.warning("Log connection already started, ignoring duplicate start call")
            return

        log_with_context(
            logger,
            logging.INFO,
            "Starting log connection",
            topic=self.topic,
            reader_group_id=self.reader_group_id,
        )

        try:
            self._producer = AIOKafkaProducer(**self._producer_config())
            await self._producer.start()

            self._consumer = AIOKafkaConsumer(**self._consumer_config())
            await self._consumer.start()

            self._admin = AIOKafkaAdminClient(**self._admin_config())
            await self._admin.start()

            self._partitions = await self._discover_partitions()
            self._consumer.assign(self._partitions)
        except BaseException as e:
            log_exception(logger, e, "Failed to start log connection", topic=self.topic)
            await self._release_all()
            raise

        self._started = True
        log_with_context(
            logger,
            logging.INFO,
            "Log connection started",
            topic=self.topic,
            reader_group_id=self.reader_group_id,
            partitions=[tp.partition for tp in self._partitions],
        )

    async def _discover_partitions(self) -> List[TopicPartition]:
        descriptions = await self._admin.describe_topics([self.topic])
        for description in descriptions:
            if description.get("topic") != self.topic:
                continue
            if description.get("error_code", 0):
                raise PermanentError(
                    f"Coordination topic '{self.topic}' is not available "
                    f"(error code {description['error_code']})",
                    context={"topic": self.topic},
                )
            partitions = sorted(p["partition"] for p in description.get("partitions", []))
            if partitions:
                return [TopicPartition(self.topic, p) for p in partitions]

        raise PermanentError(
            f"Coordination topic '{self.topic}' has no partitions",
            context={"topic": self.topic},
        )

    def _require_started(self) -> None:
        if not self._started:
            raise RuntimeError("Log connection not started. Call start() first.")

    async def send(self, value: bytes) -> RecordMetadata:
        """Append one record to the topic and wait for the broker acknowledgement."""
        self._require_started()
        return await self._producer.send_and_wait(self.topic, value=value)

    async def poll(self) -> Dict[TopicPartition, List[ConsumerRecord]]:
        """Return the records currently available, without waiting for new ones."""
        self._require_started()
        return await self._consumer.getmany(timeout_ms=0)

    async def committed_offsets(self, group_id: str) -> Dict[TopicPartition, OffsetAndMetadata]:
        """
        Committed offsets of ``group_id`` on the coordination topic.

        Partitions the group has never committed (offset < 0) are left out.
        """
        self._require_started()
        offsets = await self._admin.list_consumer_group_offsets(group_id)
        return {
            tp: offset_meta
            for tp, offset_meta in offsets.items()
            if tp.topic == self.topic and offset_meta.offset >= 0
        }

    def seek(self, tp: TopicPartition, offset: int) -> None:
        """Move the consumer's next read position for ``tp``."""
        self._require_started()
        self._consumer.seek(tp, offset)

    async def stop(self) -> None:
        """
        Release producer, consumer and admin client.

        Every release is attempted even if an earlier one fails. Safe to call
        when never started or already stopped.

        Raises:
            ChannelCloseError: If any release failed; carries every failure
        """
        if (
            not self._started
            and self._producer is None
            and self._consumer is None
            and self._admin is None
        ):
            logger.debug("Log connection not started or already stopped")
            return

        logger.info("Stopping log connection")
        errors = await self._release_all()
        self._started = False

        if errors:
            raise ChannelCloseError(
                f"Failed to release {len(errors)} log connection resource(s)",
                errors=errors,
                context={"topic": self.topic},
            )
        log_with_context(logger, logging.INFO, "Log connection stopped", topic=self.topic)

    async def _release_all(self) -> List[Exception]:
        errors: List[Exception] = []
        for name, close in (
            ("producer", self._close_producer),
            ("consumer", self._close_consumer),
            ("admin", self._close_admin),
        ):
            try:
                await close()
            except Exception as e:
                log_exception(
                    logger,
                    e,
                    f"Error releasing Kafka {name}",
                    client=name,
                    topic=self.topic,
                )
                errors.append(e)
        self._partitions = []
        return errors

    async def _close_producer(self) -> None:
        producer, self._producer = self._producer, None
        if producer is not None:
            await producer.stop()

    async def _close_consumer(self) -> None:
        consumer, self._consumer = self._consumer, None
        if consumer is not None:
            await consumer.stop()

    async def _close_admin(self) -> None:
        admin, self._admin = self._admin, None
        if admin is not None:
            await admin.close()
