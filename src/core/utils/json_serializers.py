"""``default=`` hook for json.dumps, used by the JSON log formatter."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any
from uuid import UUID

from pydantic import BaseModel


def json_serializer(obj: Any) -> Any:
    """
    Convert values json.dumps cannot handle, keeping numbers numeric.

    - datetime/date -> ISO 8601 string
    - Decimal -> float
    - Path/UUID -> string
    - Enum -> value (MessageType, ErrorCategory)
    - pydantic models -> JSON-mode dict (a Message logged as a field)
    - bytes -> UTF-8 text, invalid bytes replaced (raw record values)
    - set/frozenset/tuple -> list
    - other objects -> ``__dict__``, else ``str()``
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    if isinstance(obj, (Path, UUID)):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).decode("utf-8", errors="replace")
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if hasattr(obj, "__dict__"):
        return obj.__dict__
    return str(obj)


__all__ = ["json_serializer"]
