"""Root logger setup for engine processes."""

import json
import logging
from datetime import datetime, timezone

from vibetrading_live.config import LoggingSettings

TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER_NAME = "vibetrading_live"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(settings: LoggingSettings) -> logging.Handler:
    """
    Install the engine's root handler.

    Calling again replaces the previously installed handler instead of
    stacking a second one.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if handler.get_name() == _HANDLER_NAME:
            root.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.set_name(_HANDLER_NAME)
    if settings.log_format.lower() == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))

    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())
    return handler
