"""
Core library: infrastructure-agnostic building blocks.

Modules:
    logging     - Structured JSON logging with Kafka record context
    errors      - Error classification and exception hierarchy
    utils       - JSON serialization and worker id helpers

Design Principles:
    - No dependencies on Kafka clients or Delta Lake
    - All modules are independently testable
"""

from .types import ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
]
