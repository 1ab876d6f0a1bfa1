"""Logging setup for partcopy.

Copy-protocol log calls pass ``extra={"session_id": ..., "part_index": ...}``.
The JSON format emits those extras as top-level keys; the text format
appends a short ``[session/part]`` tag so one copy can be followed by grep.
"""

import json
import logging
import sys
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "session_tag"}

# Client libraries that log every request at INFO/DEBUG.
_NOISY_LOGGERS = ("aiobotocore", "botocore", "httpx", "httpcore", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON object per line: timestamp, level, logger, message, extras."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, val in vars(record).items():
            if key not in _RECORD_ATTRS and not key.startswith("_") and val is not None:
                entry[key] = val
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SessionTagFilter(logging.Filter):
    """Set ``record.session_tag`` from the session_id/part_index extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        session_id = getattr(record, "session_id", None)
        if session_id is None:
            record.session_tag = ""
        else:
            part_index = getattr(record, "part_index", None)
            suffix = f"/{part_index}" if part_index is not None else ""
            record.session_tag = f" [{session_id[:12]}{suffix}]"
        return True


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Install a single stderr handler on the root logger.

    Args:
        level: Log level name for partcopy's own loggers.
        fmt: ``text`` or ``json``.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(SessionTagFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s%(session_tag)s: %(message)s")
        )
    root.addHandler(handler)

    # Keep library chatter out unless partcopy itself is at DEBUG.
    library_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
