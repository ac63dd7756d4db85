"""
Observability for the news tracker: structured, redacted logging.
"""

from .logging import (
    LogEntry,
    StructuredFormatter,
    configure_logging,
    redact,
    request_id_var,
    resolve_level,
)

__all__ = [
    "LogEntry",
    "StructuredFormatter",
    "configure_logging",
    "redact",
    "request_id_var",
    "resolve_level",
]
