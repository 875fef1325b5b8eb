"""credgate.core.logs

Stdlib logging wiring for the process entry points.

Modules log snake_case event names with `extra=` context; this module decides
how those records are rendered (plain text or one JSON object per line).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable

from credgate.core.config import LoggingConfig

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


def record_extras(record: logging.LogRecord) -> dict[str, object]:
    return {k: v for k, v in vars(record).items() if k not in _RESERVED}


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        body: dict[str, object] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        body.update(record_extras(record))
        if record.exc_info:
            body["exc"] = self.formatException(record.exc_info)
        return json.dumps(body, default=str, sort_keys=True)


class PlainFormatter(logging.Formatter):
    def __init__(self) -> None:
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = record_extras(record)
        if extras:
            line += " " + " ".join(f"{k}={v}" for k, v in sorted(extras.items()))
        return line


def configure_logging(cfg: LoggingConfig, *, filters: Iterable[logging.Filter] = ()) -> logging.Handler:
    """Install one stream handler on the `credgate` logger. Idempotent."""

    root = logging.getLogger("credgate")
    for h in list(root.handlers):
        if getattr(h, "_credgate", False):
            root.removeHandler(h)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter() if cfg.json_output else PlainFormatter())
    for f in filters:
        handler.addFilter(f)
    handler._credgate = True  # type: ignore[attr-defined]

    root.addHandler(handler)
    root.setLevel(cfg.level.upper())
    return handler
