"""JSON-lines logging for the ``pageguard`` logger tree.

Operational messages only; the durable security trail is the access log
table.  Callers attach request context through ``extra=``, for example
``logger.info("...", extra={"doc_id": doc_id, "page": 2})``, and the
formatter lifts the known keys into the JSON object.
"""

import logging
import json
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("doc_id", "session_id", "page", "endpoint")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value
        if record.exc_info and record.exc_info[1]:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Send ``pageguard.*`` records to stdout as JSON. Safe to call twice."""
    root = logging.getLogger("pageguard")
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.propagate = False
    if any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"pageguard.{name}")
