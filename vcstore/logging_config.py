import json
import logging
import sys
from datetime import datetime, timezone

from vcstore.config import LOG_FILE, LOG_LEVEL

# structured fields passed through ``extra=`` by the service and the repository
CONTEXT_FIELDS = ("profile_id", "credential_id", "route", "method", "status", "duration_ms")


class JsonFormatter(logging.Formatter):
    """One JSON object per line, carrying whichever context fields are set."""

    def format(self, record):
        payload = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({k: getattr(record, k) for k in CONTEXT_FIELDS if hasattr(record, k)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _json_handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(JsonFormatter())
    return handler


def configure_logging(level: str = LOG_LEVEL, log_file: str = LOG_FILE):
    handlers = [_json_handler(logging.StreamHandler(sys.stdout))]
    if log_file:
        handlers.append(_json_handler(logging.FileHandler(log_file, mode="a")))

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # replace only our own handlers so repeated app startups do not stack them
    root.handlers = [
        h for h in root.handlers if not isinstance(h.formatter, JsonFormatter)
    ] + handlers
