"""Blue/Green Deployment Controller — Health Prober."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from .backends import CheckResult, EndpointChecker
from .cancellation import CancellationToken, pause
from .config import HealthStatus, ProbeConfig, ProbeFailure, SlotId
from .registry import EnvironmentRegistry, EnvironmentSlot

logger = logging.getLogger(__name__)


@dataclass
class ProbeAttempt:
    """One probe attempt across every target of a slot."""

    attempt: int
    passed: bool
    results: List[CheckResult] = field(default_factory=list)
    failure: Optional[ProbeFailure] = None
    reason: str = ""
    executed_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class HealthVerdict:
    """Aggregate result of a probe run."""

    slot_id: SlotId
    status: HealthStatus
    attempts: int = 0
    consecutive_successes: int = 0
    failure: Optional[ProbeFailure] = None
    reason: str = ""
    history: List[ProbeAttempt] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.status == HealthStatus.HEALTHY

    def to_dict(self) -> dict:
        return {
            "slot": self.slot_id.value,
            "status": self.status.value,
            "attempts": self.attempts,
            "consecutive_successes": self.consecutive_successes,
            "failure": self.failure.value if self.failure else None,
            "reason": self.reason,
        }


class HealthProber:
    """Polls a slot's health endpoint(s) until a verdict is reached.

    Read-only against the probed slot. The verdict is written back to the
    registry when one is attached.
    """

    def __init__(
        self,
        checker: EndpointChecker,
        registry: Optional[EnvironmentRegistry] = None,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._checker = checker
        self._registry = registry
        self._sleep = sleep
        self._clock = clock

    def probe(
        self,
        slot: EnvironmentSlot,
        config: ProbeConfig,
        cancel_token: Optional[CancellationToken] = None,
    ) -> HealthVerdict:
        """Probe ``slot`` until the success threshold or a limit is hit."""
        started = self._clock()
        deadline = (
            started + config.observation_window_seconds
            if config.observation_window_seconds is not None
            else None
        )
        history: List[ProbeAttempt] = []
        streak = 0
        failure: Optional[ProbeFailure] = None
        reason = ""

        logger.info(
            "Probing slot %s (max_attempts=%d threshold=%d window=%s)",
            slot.slot_id.value,
            config.max_attempts,
            config.success_threshold,
            config.observation_window_seconds,
        )

        cancelled = self._wait(config.initial_delay_seconds, deadline, cancel_token)

        for attempt_no in range(1, config.max_attempts + 1):
            if cancelled or (cancel_token is not None and cancel_token.cancelled):
                failure, reason = ProbeFailure.CANCELLED, "probe cancelled"
                break
            remaining = self._remaining(deadline)
            if remaining is not None and remaining <= 0:
                failure = ProbeFailure.WINDOW_EXPIRED
                reason = (
                    f"observation window of {config.observation_window_seconds}s "
                    f"expired after {len(history)} attempts"
                )
                break

            timeout = config.timeout_seconds
            if remaining is not None:
                timeout = min(timeout, remaining)
            attempt = self._attempt(slot, config, attempt_no, timeout)
            history.append(attempt)

            if attempt.passed:
                streak += 1
                if streak >= config.success_threshold:
                    return self._finish(
                        HealthVerdict(
                            slot_id=slot.slot_id,
                            status=HealthStatus.HEALTHY,
                            attempts=len(history),
                            consecutive_successes=streak,
                            history=history,
                        )
                    )
            else:
                streak = 0
                failure, reason = attempt.failure, attempt.reason
                logger.warning(
                    "Probe attempt %d/%d for slot %s failed: %s",
                    attempt_no,
                    config.max_attempts,
                    slot.slot_id.value,
                    attempt.reason,
                    extra={"attempt": attempt_no},
                )

            if attempt_no < config.max_attempts:
                cancelled = self._wait(config.interval_seconds, deadline, cancel_token)

        if failure is None:
            # Attempts ran out while passing but short of the threshold.
            failure = ProbeFailure.UNEXPECTED_RESPONSE
            reason = (
                f"only {streak} consecutive passes, "
                f"{config.success_threshold} required"
            )
        return self._finish(
            HealthVerdict(
                slot_id=slot.slot_id,
                status=HealthStatus.UNHEALTHY,
                attempts=len(history),
                consecutive_successes=streak,
                failure=failure,
                reason=reason,
                history=history,
            )
        )

    def evaluate(self, result: CheckResult, config: ProbeConfig) -> Tuple[bool, Optional[ProbeFailure], str]:
        """Classify a single check result against the probe expectations."""
        if result.error_kind == "timeout":
            return False, ProbeFailure.TIMEOUT, f"{result.url}: timed out"
        if result.error_kind == "connection":
            return False, ProbeFailure.CONNECTION_REFUSED, f"{result.url}: {result.error}"
        if result.error is not None or result.status_code is None:
            return False, ProbeFailure.UNEXPECTED_RESPONSE, f"{result.url}: {result.error}"
        if result.status_code not in config.expected_statuses:
            failure = (
                ProbeFailure.ERROR_STATUS
                if result.status_code >= 500
                else ProbeFailure.UNEXPECTED_RESPONSE
            )
            return False, failure, f"{result.url}: status {result.status_code}"
        if config.response_predicate is not None:
            try:
                accepted = bool(config.response_predicate(result))
            except Exception as exc:
                return False, ProbeFailure.UNEXPECTED_RESPONSE, f"{result.url}: predicate raised {exc!r}"
            if not accepted:
                return False, ProbeFailure.UNEXPECTED_RESPONSE, f"{result.url}: response rejected by predicate"
        return True, None, ""

    # ── Internal helpers ─────────────────────────────────────────────

    def _attempt(
        self,
        slot: EnvironmentSlot,
        config: ProbeConfig,
        attempt_no: int,
        timeout: float,
    ) -> ProbeAttempt:
        urls = [_join(base, config.path) for base in slot.probe_targets]
        if len(urls) == 1:
            results = [self._checker.check(urls[0], timeout)]
        else:
            workers = max(1, min(len(urls), config.max_parallel_checks))
            with ThreadPoolExecutor(max_workers=workers) as pool:
                results = list(pool.map(lambda u: self._checker.check(u, timeout), urls))

        for result in results:
            passed, failure, reason = self.evaluate(result, config)
            if not passed:
                return ProbeAttempt(attempt_no, False, results, failure, reason)
        return ProbeAttempt(attempt_no, True, results)

    def _wait(
        self,
        seconds: float,
        deadline: Optional[float],
        cancel_token: Optional[CancellationToken],
    ) -> bool:
        remaining = self._remaining(deadline)
        if remaining is not None:
            seconds = min(seconds, max(0.0, remaining))
        if seconds <= 0:
            return False
        return pause(seconds, cancel_token, self._sleep)

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return deadline - self._clock()

    def _finish(self, verdict: HealthVerdict) -> HealthVerdict:
        if self._registry is not None:
            self._registry.record_health(verdict.slot_id, verdict.status)
        if verdict.healthy:
            logger.info(
                "Slot %s healthy after %d attempts",
                verdict.slot_id.value,
                verdict.attempts,
            )
        else:
            logger.warning(
                "Slot %s unhealthy after %d attempts: %s",
                verdict.slot_id.value,
                verdict.attempts,
                verdict.reason,
            )
        return verdict


def _join(base: str, path: str) -> str:
    if not path:
        return base
    return base.rstrip("/") + "/" + path.lstrip("/")
