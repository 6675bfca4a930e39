"""Logging Setup.

One-call configuration for controller logging. JSON lines for the API
service and log shippers, colored single lines for operators at the CLI.
Run context (run_id, application, slot) and rollout fields attached via
``extra=`` are carried on every line.
"""

import json
import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from bluegreen.logging_config.config import (
    DEFAULT_LOGGING_CONFIG,
    LogFormat,
    LoggingConfig,
    LogLevel,
    LogStream,
)
from bluegreen.logging_config.context import get_context_dict

# Rollout and HTTP attributes callers attach through ``extra=``.
ROLLOUT_FIELDS = ("from_state", "to_state", "version", "attempt")
HTTP_FIELDS = ("method", "path", "status_code")
EXTRA_FIELDS = ROLLOUT_FIELDS + HTTP_FIELDS + ("duration_ms",)

_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "alembic.runtime.migration")


def _extra_fields(record: logging.LogRecord) -> dict:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}


class StructuredFormatter(logging.Formatter):
    """One JSON object per line.

    Fixed keys are timestamp, level, logger, message and service. Bound
    run/request context and any rollout extras are merged at the top level
    so a log shipper can filter on ``run_id`` or ``to_state`` directly.
    """

    def __init__(self, service_name: str = "bluegreen", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            entry.update(module=record.module, function=record.funcName, line=record.lineno)

        entry.update(get_context_dict())
        entry.update(_extra_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for the CLI.

    Context is appended as ``[run_id=... slot=...]``; a transition logged
    with ``from_state``/``to_state`` extras is shown as ``state=a->b``.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S.%f")[:-3]

        tags = [f"{k}={v}" for k, v in get_context_dict().items()]
        extras = _extra_fields(record)
        if "from_state" in extras and "to_state" in extras:
            tags.append(f"state={extras['from_state']}->{extras['to_state']}")
        if "duration_ms" in extras:
            tags.append(f"took={extras['duration_ms']}ms")
        suffix = f" [{' '.join(tags)}]" if tags else ""

        line = (
            f"{color}{timestamp} {record.levelname:8s}{self.RESET} "
            f"{record.name}: {record.getMessage()}{suffix}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _apply_env_overrides(config: LoggingConfig) -> LoggingConfig:
    level = os.environ.get("BLUEGREEN_LOG_LEVEL", "").upper()
    if level in LogLevel.__members__:
        config = replace(config, level=LogLevel(level))
    fmt = os.environ.get("BLUEGREEN_LOG_FORMAT", "").lower()
    if fmt in {f.value for f in LogFormat}:
        config = replace(config, format=LogFormat(fmt))
    return config


def configure_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """Install a single root handler for the controller.

    BLUEGREEN_LOG_LEVEL and BLUEGREEN_LOG_FORMAT in the environment win
    over ``config``. Returns the configuration actually applied.
    """
    config = _apply_env_overrides(config or DEFAULT_LOGGING_CONFIG)

    if config.format == LogFormat.JSON:
        formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter()

    stream = sys.stdout if config.stream == LogStream.STDOUT else sys.stderr
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return config
