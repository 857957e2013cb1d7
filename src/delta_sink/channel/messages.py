"""
Coordination message envelope.

Every record on the coordination topic carries one Message serialized as
UTF-8 JSON. The ``type`` tag tells handlers what the opaque ``payload`` means;
the channel itself never looks inside the payload.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field, ValidationError, field_serializer

from core.errors import MessageSerializationError


class MessageType(str, Enum):
    """Kinds of coordination messages.

    Control signals drive the commit cycle; data-completion signals report
    what a worker has written.
    """

    COMMIT_REQUEST = "COMMIT_REQUEST"
    COMMIT_COMPLETE = "COMMIT_COMPLETE"
    DATA_WRITTEN = "DATA_WRITTEN"
    DATA_COMPLETE = "DATA_COMPLETE"


class Message(BaseModel):
    """Immutable coordination message.

    Attributes:
        type: Discriminating tag
        payload: Opaque JSON object interpreted by the handler for ``type``
        message_id: Unique id, for log correlation only
        created_at: UTC creation timestamp

    Example:
        >>> msg = Message(type=MessageType.COMMIT_REQUEST, payload={"commit_id": "c-1"})
        >>> Message.from_bytes(msg.to_bytes()).payload
        {'commit_id': 'c-1'}
    """

    type: MessageType = Field(..., description="Discriminating message kind")
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Opaque payload, interpreted by the handler for this type",
    )
    message_id: str = Field(
        default_factory=lambda: uuid.uuid4().hex,
        description="Unique message identifier (for log correlation)",
        min_length=1,
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Timestamp when the message was created",
    )

    model_config = {"frozen": True}

    @field_serializer("created_at")
    def serialize_timestamp(self, timestamp: datetime) -> str:
        """Serialize datetime to ISO 8601 format."""
        return timestamp.isoformat()

    def to_bytes(self) -> bytes:
        """Serialize to UTF-8 JSON bytes for the log."""
        try:
            return self.model_dump_json().encode("utf-8")
        except (ValueError, TypeError) as e:
            raise MessageSerializationError(
                f"Failed to serialize {self.type.value} message",
                cause=e,
                context={"message_id": self.message_id},
            ) from e

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """Deserialize a message read from the log.

        Raises:
            MessageSerializationError: If the bytes are not a valid envelope
        """
        if data is None:
            raise MessageSerializationError("Record has no value (tombstone)")
        try:
            return cls.model_validate_json(data)
        except ValidationError as e:
            raise MessageSerializationError(
                f"Malformed coordination message ({e.error_count()} errors)",
                cause=e,
            ) from e
