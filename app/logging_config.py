"""Structured logging for the relay.

Every record is one JSON object on stdout. Per-event fields (session, chat,
message id, user) travel in ``context`` so a single conversation can be
followed across the router, the sender and the supervisor.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

LOGGER_PREFIX = "relay"

# Libraries that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "sqlalchemy.engine")


class JSONFormatter(logging.Formatter):
    def __init__(self, service: Optional[str] = None):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.service:
            entry["service"] = self.service

        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        # Outbound texts carry invisible code points; keep the line printable.
        return json.dumps(entry, ensure_ascii=True, default=str)


def setup_logging(level: str = "INFO", service: Optional[str] = None) -> logging.Handler:
    """Install the JSON stdout handler on the root logger.

    Safe to call twice: only the handler installed by a previous call is
    replaced, so handlers added by the server or the test runner stay.
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for existing in root.handlers[:]:
        if getattr(existing, "_relay_handler", False):
            root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter(service))
    handler._relay_handler = True
    root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


class LoggerAdapter(logging.LoggerAdapter):
    """Binds conversation fields to every record; ``context=`` adds per-call ones."""

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        context = {**(self.extra or {}), **(kwargs.pop("context", None) or {})}
        if context:
            kwargs["extra"] = {**kwargs.get("extra", {}), "context": context}
        return msg, kwargs

    def bind(self, **fields: Any) -> "LoggerAdapter":
        """New adapter with extra bound fields, e.g. once the user row is known."""
        return LoggerAdapter(self.logger, {**(self.extra or {}), **fields})


def append_json_line(path: str | Path, payload: dict[str, Any]) -> None:
    """Append one JSON record to an audit file. Never raises."""
    try:
        with Path(path).open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
    except OSError as e:
        get_logger("audit").error(f"Failed to write audit log {path}: {e}")
