"""
Class-level logging helpers for sink components.

- LoggedClass: mixin giving ``self._logger`` plus ``_log`` / ``_log_exception``
  that stamp every record with the instance's identifiers (table path,
  topic, reader group)
- logged_operation: decorator timing a method and logging its outcome

For module-level logging use core.logging directly:
    from core.logging import get_logger, log_with_context, log_exception
"""

import asyncio
import functools
import logging
import time
from typing import Any, Callable, Dict, Optional, TypeVar

from core.logging import get_logger, log_exception, log_with_context

F = TypeVar("F", bound=Callable[..., Any])

__all__ = [
    "LoggedClass",
    "logged_operation",
]

# Instance attributes copied onto every log record emitted through LoggedClass
_CONTEXT_ATTRIBUTES = ("table_path", "topic", "reader_group_id")


def _instance_context(obj: Any) -> Dict[str, Any]:
    return {
        attr: getattr(obj, attr)
        for attr in _CONTEXT_ATTRIBUTES
        if getattr(obj, attr, None) is not None
    }


class _OperationLog:
    """Start/outcome logging for one call of a decorated method."""

    def __init__(self, instance: Any, name: str, level: int, log_start: bool):
        self.logger = getattr(instance, "_logger", None) or get_logger(type(instance).__module__)
        self.operation = f"{type(instance).__name__}.{name}"
        self.level = level
        self.context = _instance_context(instance)
        self.context["operation"] = self.operation
        if log_start:
            log_with_context(self.logger, level, f"{self.operation} starting", **self.context)
        self._started = time.perf_counter()

    def completed(self) -> None:
        duration_ms = (time.perf_counter() - self._started) * 1000
        log_with_context(
            self.logger,
            self.level,
            f"{self.operation} completed",
            duration_ms=duration_ms,
            **self.context,
        )

    def failed(self, exc: Exception) -> None:
        log_exception(self.logger, exc, f"{self.operation} failed", **self.context)


def logged_operation(
    level: int = logging.DEBUG,
    log_start: bool = False,
    operation_name: Optional[str] = None,
) -> Callable[[F], F]:
    """
    Log completion (with ``duration_ms``) or failure of a method.

    Works on plain and ``async`` methods. Failures are logged with the
    exception and re-raised unchanged.

    Example:
        class DeltaLakeTable(Table, LoggedClass):
            @logged_operation(level=logging.INFO, operation_name="commit")
            def _commit_data_files(self, data_files):
                ...
    """

    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(self, *args, **kwargs):
                op = _OperationLog(self, name, level, log_start)
                try:
                    result = await func(self, *args, **kwargs)
                except Exception as e:
                    op.failed(e)
                    raise
                op.completed()
                return result

            return async_wrapper  # type: ignore

        @functools.wraps(func)
        def sync_wrapper(self, *args, **kwargs):
            op = _OperationLog(self, name, level, log_start)
            try:
                result = func(self, *args, **kwargs)
            except Exception as e:
                op.failed(e)
                raise
            op.completed()
            return result

        return sync_wrapper  # type: ignore

    return decorator


class LoggedClass:
    """
    Mixin giving a class its own logger and context-stamped log helpers.

    The logger is named after the defining module, plus ``log_component``
    when a subclass sets it. Set identifying attributes (``table_path``,
    ``topic``, ``reader_group_id``) before calling ``super().__init__()``.

    Example:
        class TableCommitBuffer(LoggedClass):
            def __init__(self, table_path: str):
                self.table_path = table_path
                super().__init__()

            def close(self):
                self._log(logging.INFO, "Closed write session")
    """

    log_component: Optional[str] = None

    def __init__(self, *args, **kwargs):
        module = self.__class__.__module__
        self._logger = get_logger(f"{module}.{self.log_component}" if self.log_component else module)
        super().__init__(*args, **kwargs)

    def _log(self, level: int, msg: str, **extra: Any) -> None:
        log_with_context(self._logger, level, msg, **{**_instance_context(self), **extra})

    def _log_exception(
        self,
        exc: Exception,
        msg: str,
        level: int = logging.ERROR,
        **extra: Any,
    ) -> None:
        log_exception(self._logger, exc, msg, level=level, **{**_instance_context(self), **extra})
