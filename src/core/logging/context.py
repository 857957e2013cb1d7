"""
Process-level log context: which worker and stage is logging, about which table.

Set once at startup (``setup_logging``, ``Channel.start``) and picked up by
both formatters on every record.
"""

from contextvars import ContextVar
from typing import Dict, Optional

_FIELDS = ("worker_id", "stage", "table", "trace_id")
_context: Dict[str, ContextVar[str]] = {
    field: ContextVar(f"log_{field}", default="") for field in _FIELDS
}


def set_log_context(
    worker_id: Optional[str] = None,
    stage: Optional[str] = None,
    table: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    values = {"worker_id": worker_id, "stage": stage, "table": table, "trace_id": trace_id}
    for field, value in values.items():
        if value is not None:
            _context[field].set(value)


def get_log_context() -> Dict[str, str]:
    """Every field, empty string when unset."""
    return {field: var.get() for field, var in _context.items()}


def clear_log_context() -> None:
    for var in _context.values():
        var.set("")
