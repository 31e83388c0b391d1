from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import IO, Any, Optional


def split_event(message: str) -> tuple[str, dict[str, str]]:
    """Split "scan_symbol symbol=FPT action=skip" into the event name and its fields."""
    parts = message.split()
    if not parts or "=" in parts[0]:
        return "", {}
    fields: dict[str, str] = {}
    for token in parts[1:]:
        key, sep, value = token.partition("=")
        if not sep or not key:
            # Free text after the event; keep the record as a plain message.
            return "", {}
        fields[key] = value
    return parts[0], fields


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "level": record.levelname,
            "logger": record.name,
            "msg": message,
        }
        event, fields = split_event(message)
        if event:
            payload["event"] = event
            payload["fields"] = fields
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_logs: bool = False, stream: Optional[IO[str]] = None) -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    handler = logging.StreamHandler(stream or sys.stdout)
    if json_logs:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root.handlers.clear()
    root.addHandler(handler)
