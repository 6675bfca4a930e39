"""HTTP endpoint checker backed by httpx."""

import logging
import time
from typing import Dict, Optional

import httpx

from .backends import CheckResult, EndpointChecker

logger = logging.getLogger(__name__)

_BODY_LIMIT = 4096


class HttpEndpointChecker(EndpointChecker):
    """Issues GET requests against slot health endpoints.

    A single ``httpx.Client`` is shared across checks and is safe to use
    from the prober's worker threads. Pass ``transport`` (e.g.
    ``httpx.MockTransport``) or a prebuilt ``client`` to avoid the network.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        headers: Optional[Dict[str, str]] = None,
        verify: bool = True,
    ):
        self._owns_client = client is None
        self._client = client or httpx.Client(
            transport=transport,
            headers={"User-Agent": "bluegreen-prober", **(headers or {})},
            verify=verify,
            follow_redirects=False,
        )

    def check(self, url: str, timeout: float) -> CheckResult:
        started = time.perf_counter()
        try:
            response = self._client.get(url, timeout=timeout)
        except httpx.TimeoutException as exc:
            return self._error(url, started, exc, "timeout")
        except httpx.ConnectError as exc:
            return self._error(url, started, exc, "connection")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return self._error(url, started, exc, "error")
        except Exception as exc:
            logger.warning("GET %s raised %s", url, type(exc).__name__, exc_info=True)
            return self._error(url, started, exc, "error")

        latency = (time.perf_counter() - started) * 1000
        logger.debug("GET %s -> %d (%.1fms)", url, response.status_code, latency)
        return CheckResult(
            url=url,
            status_code=response.status_code,
            latency_ms=round(latency, 2),
            body=response.text[:_BODY_LIMIT],
        )

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "HttpEndpointChecker":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @staticmethod
    def _error(url: str, started: float, exc: Exception, kind: str) -> CheckResult:
        latency = (time.perf_counter() - started) * 1000
        logger.debug("GET %s failed (%s): %s", url, kind, exc)
        return CheckResult(
            url=url,
            latency_ms=round(latency, 2),
            error=str(exc) or type(exc).__name__,
            error_kind=kind,
        )
