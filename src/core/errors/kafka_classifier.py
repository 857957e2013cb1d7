"""
Kafka error classification for producer, consumer and admin operations.

Maps aiokafka exceptions onto the PipelineError hierarchy so failures on the
coordination topic are logged with a consistent category.
"""

from typing import Optional

from core.errors.exceptions import (
    AuthError,
    ConnectionError,
    KafkaError,
    PermanentError,
    PipelineError,
    TimeoutError,
    TransientError,
)


# Kafka error classifications based on aiokafka exception types
KAFKA_ERROR_MAPPINGS = {
    "transient": [
        "BrokerNotAvailableError",
        "KafkaConnectionError",
        "NodeNotReadyError",
        "LeaderNotAvailableError",
        "NotLeaderForPartitionError",
        "RequestTimedOutError",
        "KafkaTimeoutError",
        "CoordinatorNotAvailableError",
        "NotCoordinatorForGroupError",
        "CorrelationIdError",
    ],
    "auth": [
        "TopicAuthorizationFailedError",
        "GroupAuthorizationFailedError",
        "ClusterAuthorizationFailedError",
        "SaslAuthenticationError",
    ],
    "permanent": [
        "UnknownTopicOrPartitionError",
        "MessageSizeTooLargeError",
        "RecordTooLargeError",
        "InvalidTopicError",
        "UnsupportedVersionError",
        "IllegalStateError",
        "OffsetOutOfRangeError",
        "RecordBatchTooLargeError",
    ],
}

_SERVICE_NAMES = {
    "producer": "kafka_producer",
    "consumer": "kafka_consumer",
    "admin": "kafka_admin",
}


def classify_kafka_error_type(error_type_name: str) -> Optional[str]:
    """
    Classify Kafka error by exception type name.

    Returns:
        Error category: "transient", "auth", "permanent", or None
    """
    for category, error_types in KAFKA_ERROR_MAPPINGS.items():
        if error_type_name in error_types:
            return category
    return None


class KafkaErrorClassifier:
    """
    Centralized error classification for Kafka operations.

    The same rules apply to every client role; only the label in the message
    and the ``service`` context entry differ.
    """

    @staticmethod
    def classify_kafka_error(
        error: Exception,
        operation_type: str,
        context: Optional[dict] = None,
    ) -> PipelineError:
        """
        Classify a Kafka error raised by one client role.

        Args:
            error: Original exception from aiokafka
            operation_type: "producer", "consumer" or "admin"
            context: Additional context merged into the error context

        Returns:
            Classified PipelineError subclass
        """
        # If already a PipelineError, preserve it
        if isinstance(error, PipelineError):
            return error

        role = operation_type.lower()
        label = f"Kafka {role}"
        error_str = str(error).lower()
        error_type = type(error).__name__
        ctx = {"service": _SERVICE_NAMES.get(role, f"kafka_{role}")}
        if context:
            ctx.update(context)

        category = classify_kafka_error_type(error_type)

        if category == "auth":
            return AuthError(f"{label} authentication failed: {error}", cause=error, context=ctx)

        if category == "permanent":
            if "topic" in error_str and "not" in error_str:
                return PermanentError(
                    f"Kafka topic does not exist: {error}", cause=error, context=ctx
                )
            return PermanentError(f"{label} permanent error: {error}", cause=error, context=ctx)

        if category == "transient":
            if "timeout" in error_str or "Timeout" in error_type or "TimedOut" in error_type:
                return TimeoutError(f"{label} timeout: {error}", cause=error, context=ctx)
            if "connection" in error_str or "Connection" in error_type:
                return ConnectionError(f"{label} connection error: {error}", cause=error, context=ctx)
            return TransientError(f"{label} transient error: {error}", cause=error, context=ctx)

        # String-based fallback classification
        if any(m in error_str for m in ("unauthorized", "authentication", "authorization")):
            return AuthError(f"{label} auth error: {error}", cause=error, context=ctx)

        if "timeout" in error_str:
            return TimeoutError(f"{label} timeout: {error}", cause=error, context=ctx)

        if any(m in error_str for m in ("connection", "broker", "network", "node not ready")):
            return ConnectionError(f"{label} connection error: {error}", cause=error, context=ctx)

        return KafkaError(f"{label} error: {error}", cause=error, context=ctx)

    @staticmethod
    def classify_producer_error(
        error: Exception, context: Optional[dict] = None
    ) -> PipelineError:
        return KafkaErrorClassifier.classify_kafka_error(error, "producer", context)

    @staticmethod
    def classify_consumer_error(
        error: Exception, context: Optional[dict] = None
    ) -> PipelineError:
        return KafkaErrorClassifier.classify_kafka_error(error, "consumer", context)

    @staticmethod
    def classify_admin_error(
        error: Exception, context: Optional[dict] = None
    ) -> PipelineError:
        return KafkaErrorClassifier.classify_kafka_error(error, "admin", context)
