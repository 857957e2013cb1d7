"""Logging utility functions."""

import logging
from typing import Any

# Reserved LogRecord attribute names that cannot be used in extra dict
_RESERVED_LOG_KEYS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "asctime",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "exc_info",
        "exc_text",
        "stack_info",
        "taskName",
    }
)


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log with structured context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Additional context fields (table_path, partition, etc.)
                  Note: exc_info=True is supported and handled specially.

    Example:
        log_with_context(
            logger, logging.INFO, "Committed data files",
            table_path=path,
            table_version=12,
            data_files=3,
        )
    """
    # exc_info is a direct parameter to log(), not extra
    exc_info = kwargs.pop("exc_info", None)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}

    logger.log(level, msg, exc_info=exc_info, extra=extra)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log exception with context and optional traceback.

    Picks up error_category from PipelineError subclasses unless the caller
    passes one explicitly. Long error messages are truncated.

    Example:
        try:
            await channel.send(message)
        except Exception as e:
            log_exception(logger, e, "Send failed", topic=topic)
            raise
    """
    error_category = kwargs.get("error_category")
    if error_category is None and hasattr(exc, "category"):
        cat = exc.category
        kwargs["error_category"] = cat.value if hasattr(cat, "value") else str(cat)
    elif error_category is not None and hasattr(error_category, "value"):
        kwargs["error_category"] = error_category.value

    error_msg = str(exc)
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."
    kwargs["error_message"] = error_msg
    kwargs.setdefault("error_type", type(exc).__name__)

    extra = {k: v for k, v in kwargs.items() if k not in _RESERVED_LOG_KEYS}

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=extra)
    else:
        logger.log(level, msg, extra=extra)


def log_startup_banner(
    logger: logging.Logger,
    component: str,
    **fields: Any,
) -> None:
    """
    Log a startup banner listing the component's effective settings.

    Example:
        log_startup_banner(
            logger,
            "Coordination channel",
            topic="control-delta",
            reader_group_id="cg-delta-sink-...",
        )
    """
    separator = "=" * 50
    lines = ["", separator, component, separator]
    for key, value in fields.items():
        if value is not None:
            label = f"{key.replace('_', ' ').title()}:"
            lines.append(f"{label:<20}{value}")
    lines.append(separator)
    logger.info("\n".join(lines))
