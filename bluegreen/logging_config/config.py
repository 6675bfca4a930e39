"""Logging Configuration.

Log level, output format and destination for the controller, with a
constructor reading the BLUEGREEN_LOG_* settings.
"""

from dataclasses import dataclass, field
from enum import Enum


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


class LogStream(str, Enum):
    """Where log lines are written. The CLI keeps stdout for command output."""
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    stream: LogStream = LogStream.STDERR
    include_caller: bool = True
    slow_threshold_ms: float = 1000.0
    exclude_paths: list[str] = field(default_factory=lambda: ["/health"])
    service_name: str = "bluegreen"

    @classmethod
    def from_settings(cls, settings, **overrides) -> "LoggingConfig":
        """Build from ``Settings.log_level`` / ``log_format``; unknown values fall back to defaults."""
        values = {}
        level = (settings.log_level or "").upper()
        if level in LogLevel.__members__:
            values["level"] = LogLevel(level)
        fmt = (settings.log_format or "").lower()
        if fmt in {f.value for f in LogFormat}:
            values["format"] = LogFormat(fmt)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


DEFAULT_LOGGING_CONFIG = LoggingConfig()
