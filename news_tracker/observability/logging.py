"""
Log rendering for the news tracker.

Modules log through plain `logging.getLogger(__name__)` loggers. This
module decides how those records leave the process: one JSON object per
line for the API server, or a compact text line for the CLI. Both carry
the id of the HTTP request being served, when there is one.

Gemini and NewsAPI take their keys as query parameters, and httpx logs
request URLs at INFO, so every rendered line passes through `redact`.
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO, Union


request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

ROOT_LOGGER = "news_tracker"

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "anthropic")

_SECRET_PARAM = re.compile(r"(?i)\b(key|apikey|api_key)=([^&\s\"']+)")


def redact(text: str) -> str:
    """Mask API keys passed as URL query parameters."""
    return _SECRET_PARAM.sub(lambda m: f"{m.group(1)}=***", text)


def resolve_level(level: Union[str, int]) -> int:
    """Accept a level name ("info", "WARNING") or a logging constant."""
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.strip().upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


@dataclass
class LogEntry:
    """One rendered log line."""

    time: datetime
    level: str
    logger: str
    message: str
    request_id: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    exc_text: Optional[str] = None

    @classmethod
    def from_record(cls, record: logging.LogRecord, exc_text: Optional[str] = None) -> "LogEntry":
        return cls(
            time=datetime.fromtimestamp(record.created, tz=timezone.utc),
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
            request_id=request_id_var.get(),
            fields=dict(getattr(record, "attributes", None) or {}),
            exc_text=exc_text,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ts": self.time.isoformat(),
            "level": self.level,
            "logger": self.logger,
            "msg": self.message,
        }
        if self.request_id:
            data["request_id"] = self.request_id
        data.update({k: v for k, v in self.fields.items() if k not in data})
        if self.exc_text:
            data["exc"] = self.exc_text
        return data

    def to_text(self) -> str:
        line = f"{self.time:%H:%M:%S} {self.level:<7} {self.logger}: {self.message}"
        if self.fields:
            line += " | " + " ".join(f"{k}={v}" for k, v in self.fields.items())
        if self.request_id:
            line += f" [{self.request_id}]"
        if self.exc_text:
            line += "\n" + self.exc_text
        return line


class StructuredFormatter(logging.Formatter):
    """Renders records as JSON lines or as text, with secrets masked."""

    def __init__(self, json_output: bool = True):
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        exc_text = self.formatException(record.exc_info) if record.exc_info else None
        entry = LogEntry.from_record(record, exc_text)
        if self.json_output:
            rendered = json.dumps(entry.to_dict(), default=str)
        else:
            rendered = entry.to_text()
        return redact(rendered)


def configure_logging(
    level: Union[str, int] = logging.INFO,
    json_output: bool = False,
    output: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Install the formatter on the package logger.

    Calling it again replaces the handler from the previous call. Client
    library loggers are held at WARNING unless `level` is DEBUG, and share
    the same handler so their lines are redacted too.
    """
    numeric = resolve_level(level)
    handler = logging.StreamHandler(output or sys.stderr)
    handler.setFormatter(StructuredFormatter(json_output))
    handler._news_tracker = True

    package_logger = logging.getLogger(ROOT_LOGGER)
    targets = [package_logger] + [logging.getLogger(name) for name in NOISY_LOGGERS]
    for target in targets:
        for existing in list(target.handlers):
            if getattr(existing, "_news_tracker", False):
                target.removeHandler(existing)
        target.addHandler(handler)
        target.propagate = False

    package_logger.setLevel(numeric)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(numeric if numeric <= logging.DEBUG else logging.WARNING)
    return package_logger
