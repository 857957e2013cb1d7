"""
Core types used across modules.

The error category shared by the error hierarchy and the log formatters.
"""

from enum import Enum


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    The sink itself never retries; the category is attached to log records
    so an operator (or the host runtime) can decide what to do.

    Categories:
        TRANSIENT: Temporary failures that may succeed when attempted again
                   (e.g., broker unavailable, request timeout, commit conflict)
        AUTH: Authentication/authorization failures
              (e.g., SASL failure, topic authorization denied)
        PERMANENT: Failures that will not succeed on retry
                   (e.g., unknown topic, malformed message, invalid row)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


__all__ = [
    "ErrorCategory",
]
