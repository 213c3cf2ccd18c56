"""Logging setup shared by the engine and its command-line front end.

Structured mode emits each log record as a single-line JSON object that log
aggregators can index without regex parsing::

    {
        "timestamp": "2026-05-15T12:34:56.789012+00:00",
        "level": "INFO",
        "logger": "merge_engine.merge.apply",
        "message": "Merged products: inserted=2 ...",
        "merge": { ... },            // present on per-collection summaries
        "exc_info": "Traceback ..."  // present only on exceptions
    }
"""

from __future__ import annotations

import json
import logging
import sys
import traceback
from datetime import UTC, datetime
from typing import Any

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_HANDLER_NAME = "merge_engine"


class JSONFormatter(logging.Formatter):
    """Format log records as single-line JSON."""

    def format(self, record: logging.LogRecord) -> str:
        """Render *record* as a single JSON line."""
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Per-collection summary attached by the apply orchestrator via
        # ``extra={"merge": ...}``.
        merge_data = getattr(record, "merge", None)
        if merge_data is not None:
            payload["merge"] = merge_data

        if record.exc_info and record.exc_info[0] is not None:
            payload["exc_info"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "WARNING", structured: bool = False) -> logging.Handler:
    """Route root logging to *stderr* at *level*.

    Replaces the handler installed by a previous call; handlers added by
    other code are left alone.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if structured else logging.Formatter(_TEXT_FORMAT))
    handler.set_name(_HANDLER_NAME)

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())
    return handler
