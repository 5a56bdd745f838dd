"""Record formatters: JSON lines for files, one-line text for the console."""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from bundle_core.logging.context import get_log_context

CONTEXT_KEYS = ("domain", "stage", "worker_id", "batch_start")

# Record attributes copied into JSON output when set
STRUCTURED_FIELDS: Tuple[str, ...] = (
    # per URL
    "url",
    "status",
    "reason",
    "elapsed_ms",
    "content_type",
    "http_status",
    "image_type",
    "width",
    "height",
    "bytes",
    # errors
    "error_category",
    "error_message",
    # shards and merging
    "shard_path",
    "output_path",
    "sequence_start",
    "position",
    "url_count",
    "image_count",
    "data_length",
    "shard_count",
    "batch_count",
    "records",
    # retries
    "attempt",
    "max_attempts",
    "backoff_seconds",
)

# Query strings can carry signed-URL tokens
URL_FIELDS = frozenset({"url"})


def strip_query(url: str) -> str:
    """``url`` without its query string or fragment."""
    return url.split("#", 1)[0].split("?", 1)[0]


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Keys are ts, level, logger and msg, then whichever context values are
    set, then any STRUCTURED_FIELDS present on the record. DEBUG and
    ERROR+ records also get their source location.
    """

    def _fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for name in STRUCTURED_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            if name in URL_FIELDS and isinstance(value, str):
                value = strip_query(value)
            fields[name] = value
        return fields

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        entry: Dict[str, Any] = {
            "ts": created.strftime("%Y-%m-%dT%H:%M:%S.") + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        entry.update(
            (key, value) for key, value in get_log_context().items() if value is not None
        )
        if record.levelno == logging.DEBUG or record.levelno >= logging.ERROR:
            entry["file"] = f"{record.filename}:{record.lineno}"
        entry.update(self._fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """``time - LEVEL - [stage] - [batch N] - message``, context parts optional."""

    def __init__(self) -> None:
        super().__init__(datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        ctx = get_log_context()
        parts = [self.formatTime(record, self.datefmt), record.levelname]
        if ctx["stage"]:
            parts.append(f"[{ctx['stage']}]")
        if ctx["batch_start"] is not None:
            parts.append(f"[batch {ctx['batch_start']}]")
        parts.append(record.getMessage())

        line = " - ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line
