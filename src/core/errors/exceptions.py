"""
Exception hierarchy for the delta sink.

Every sink error carries an ``ErrorCategory``. The sink never retries on its
own; the category travels into log records (``error_category``) and tells
whoever runs the sink whether trying again makes sense.

Hierarchy::

    PipelineError
    ├── AuthError
    ├── TransientError
    │   ├── ConnectionError
    │   ├── TimeoutError
    │   └── DeltaTableError
    │       └── TableCommitError
    ├── PermanentError
    │   ├── MessageSerializationError
    │   └── RowConversionError
    └── KafkaError
        └── ChannelCloseError
"""

from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for all sink errors.

    Attributes:
        message: Human-readable error description
        category: Error classification (class attribute)
        cause: Underlying library exception, if any
        context: Identifiers for debugging (topic, table_path, ...)
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = dict(context) if context else {}

    @property
    def is_retryable(self) -> bool:
        """Whether calling again could succeed. Unknown errors get the benefit of the doubt."""
        return self.category is not ErrorCategory.PERMANENT

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} | Caused by: {self.cause}"


class AuthError(PipelineError):
    """Broker or storage rejected the credentials."""

    category = ErrorCategory.AUTH


class TransientError(PipelineError):
    """Failure expected to clear up on its own (broker restart, commit race)."""

    category = ErrorCategory.TRANSIENT


class PermanentError(PipelineError):
    """Failure that repeats on every attempt until something is fixed."""

    category = ErrorCategory.PERMANENT


class ConnectionError(TransientError):
    pass


class TimeoutError(TransientError):
    pass


# Coordination channel


class KafkaError(PipelineError):
    """Error from the log connection (producer, consumer or admin client)."""


class ChannelCloseError(KafkaError):
    """
    One or more log connection resources failed to release.

    Every release is attempted; ``errors`` holds each failure in the order
    the resources were released. ``cause`` is the first of them.
    """

    def __init__(
        self,
        message: str,
        errors: list[Exception],
        context: dict | None = None,
    ):
        super().__init__(message, errors[0] if errors else None, context)
        self.errors = list(errors)


class MessageSerializationError(PermanentError):
    """A coordination message could not be encoded or decoded."""


# Table commits


class DeltaTableError(TransientError):
    """Error from a table read or write."""


class TableCommitError(DeltaTableError):
    """Finalizing or committing a buffered write session failed.

    The buffered data files are not retained; the rows must be re-supplied.
    """


class RowConversionError(PermanentError):
    """A row could not be appended to the open write session."""

