"""Structured Logging & Run Tracing.

Provides structured JSON logging, request and orchestration-run ID
propagation, and performance timing for the controller.
"""

from bluegreen.logging_config.config import LogFormat, LoggingConfig, LogLevel, LogStream
from bluegreen.logging_config.context import (
    DeploymentContext,
    RequestContext,
    generate_request_id,
)
from bluegreen.logging_config.performance import PerformanceTimer, log_performance
from bluegreen.logging_config.setup import configure_logging

__all__ = [
    "DeploymentContext",
    "LogFormat",
    "LogLevel",
    "LogStream",
    "LoggingConfig",
    "PerformanceTimer",
    "RequestContext",
    "configure_logging",
    "generate_request_id",
    "log_performance",
]
