"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- PipelineError hierarchy for typed exceptions
- Kafka error classifier for aiokafka exceptions
"""

from core.errors.exceptions import (
    AuthError,
    ChannelCloseError,
    ConnectionError,
    DeltaTableError,
    # Enums
    ErrorCategory,
    KafkaError,
    MessageSerializationError,
    PermanentError,
    # Base classes
    PipelineError,
    RowConversionError,
    TableCommitError,
    TimeoutError,
    TransientError,
)
from core.errors.kafka_classifier import KafkaErrorClassifier

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "PipelineError",
    "AuthError",
    "TransientError",
    "PermanentError",
    "ConnectionError",
    "TimeoutError",
    # Domain errors
    "KafkaError",
    "ChannelCloseError",
    "MessageSerializationError",
    "DeltaTableError",
    "TableCommitError",
    "RowConversionError",
    # Classification
    "KafkaErrorClassifier",
]
