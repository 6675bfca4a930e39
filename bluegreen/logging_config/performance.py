"""Performance Logging.

Timing for controller steps. ``PerformanceTimer`` measures a block and can
write the result into a run's ``timings_ms``; ``log_performance`` wraps a
whole call. Both log at DEBUG, at WARNING past the slow threshold and at
ERROR when the timed code raises.
"""

import functools
import logging
import time
from typing import Any, Callable, Dict, Optional

from bluegreen.logging_config.config import DEFAULT_LOGGING_CONFIG

logger = logging.getLogger(__name__)


def _report(
    log: logging.Logger,
    name: str,
    duration_ms: float,
    threshold_ms: float,
    error: Optional[type] = None,
) -> None:
    extra = {"duration_ms": round(duration_ms, 2)}
    if error is not None:
        log.error("%s failed after %.1fms: %s", name, duration_ms, error.__name__, extra=extra)
    elif duration_ms >= threshold_ms:
        log.warning("Slow step: %s took %.1fms", name, duration_ms, extra=extra)
    else:
        log.debug("%s completed in %.1fms", name, duration_ms, extra=extra)


def log_performance(
    threshold_ms: Optional[float] = None,
    logger_name: Optional[str] = None,
) -> Callable:
    """Decorator timing every call of the wrapped function.

    Example:
        @log_performance(threshold_ms=60_000)
        def deploy(self, slot_id, version, params):
            ...
    """
    if threshold_ms is None:
        threshold_ms = DEFAULT_LOGGING_CONFIG.slow_threshold_ms

    def decorator(func: Callable) -> Callable:
        log = logging.getLogger(logger_name or func.__module__)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _report(log, func.__qualname__, (time.perf_counter() - start) * 1000, threshold_ms, type(exc))
                raise
            _report(log, func.__qualname__, (time.perf_counter() - start) * 1000, threshold_ms)
            return result

        return wrapper

    return decorator


class PerformanceTimer:
    """Times a block; with ``timings`` the rounded duration is stored under ``step``.

    The duration is recorded whether or not the block raises.

    Example:
        with PerformanceTimer("post_switch_probe", timings=run.timings_ms):
            verdict = prober.probe(slot, config)
    """

    def __init__(
        self,
        step: str,
        threshold_ms: Optional[float] = None,
        timings: Optional[Dict[str, float]] = None,
    ):
        self.step = step
        self.threshold_ms = threshold_ms or DEFAULT_LOGGING_CONFIG.slow_threshold_ms
        self.timings = timings
        self.duration_ms: float = 0.0
        self._start: float = 0.0

    def __enter__(self) -> "PerformanceTimer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.duration_ms = (time.perf_counter() - self._start) * 1000
        if self.timings is not None:
            self.timings[self.step] = round(self.duration_ms, 2)
        _report(logger, self.step, self.duration_ms, self.threshold_ms, exc_type)
