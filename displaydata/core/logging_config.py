"""
Centralized logging configuration for the services.
Provides structured logging with JSON output and contextual service information.
"""
import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LogFormat(Enum):
    """Log format enumeration"""
    SIMPLE = "simple"
    DETAILED = "detailed"
    JSON = "json"


# Attributes every LogRecord carries. Anything else was passed through ``extra=``.
_RESERVED_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """
    Renders each record as one JSON object per line:
    {"ts": ..., "level": ..., "service": ..., "env": ..., "logger": ..., "msg": ..., <extra fields>}
    """

    def __init__(self, service: str, environment: str):
        super().__init__()
        self.service = service
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "service": self.service,
            "env": self.environment,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_entry[key] = value

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            log_entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    log_format: str = LogFormat.JSON.value,
    service: str = "displaydata",
    environment: str = "local",
    stream: Optional[Any] = None,
) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: One of ``json``, ``detailed`` or ``simple``
        service: Service name stamped on every JSON record
        environment: Deployment environment stamped on every JSON record
        stream: Output stream, stdout by default
    """
    handler = logging.StreamHandler(stream or sys.stdout)

    fmt = LogFormat(log_format.lower())
    if fmt == LogFormat.JSON:
        handler.setFormatter(JsonFormatter(service, environment))
    elif fmt == LogFormat.DETAILED:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
    else:
        handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    # force=True replaces handlers installed by uvicorn or an earlier call
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[handler],
        force=True,
    )

    # Set specific log levels for noisy libraries
    logging.getLogger('aiokafka').setLevel(logging.WARNING)
    logging.getLogger('kafka').setLevel(logging.WARNING)
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)

