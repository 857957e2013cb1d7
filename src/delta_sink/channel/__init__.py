"""Coordination channel: log connection, channel base classes and message envelope."""

from delta_sink.channel.channel import (
    READER_GROUP_PREFIX,
    Channel,
    MessageHandler,
    RoutingChannel,
    new_reader_group_id,
)
from delta_sink.channel.connection import LogConnection
from delta_sink.channel.messages import Message, MessageType

__all__ = [
    "Channel",
    "RoutingChannel",
    "MessageHandler",
    "LogConnection",
    "Message",
    "MessageType",
    "new_reader_group_id",
    "READER_GROUP_PREFIX",
]
