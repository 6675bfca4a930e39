"""Logging Context.

Context variables binding request and orchestration-run identifiers to
every log entry emitted while they are set.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


_request_id_var: ContextVar[str] = ContextVar("request_id", default="")
_correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")
_run_id_var: ContextVar[str] = ContextVar("run_id", default="")
_application_var: ContextVar[str] = ContextVar("application", default="")
_slot_var: ContextVar[str] = ContextVar("slot", default="")


def generate_request_id() -> str:
    """Generate a unique request ID using UUID4."""
    return str(uuid.uuid4())


def get_request_id() -> str:
    return _request_id_var.get()


def get_correlation_id() -> str:
    return _correlation_id_var.get()


def get_run_id() -> str:
    return _run_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary for log binding."""
    ctx = {}
    for key, var in (
        ("request_id", _request_id_var),
        ("correlation_id", _correlation_id_var),
        ("run_id", _run_id_var),
        ("application", _application_var),
        ("slot", _slot_var),
    ):
        value = var.get()
        if value:
            ctx[key] = value
    return ctx


@dataclass
class RequestContext:
    """Context manager for HTTP request-scoped logging context.

    Example:
        with RequestContext(request_id="abc-123"):
            logger.info("processing request")  # includes request_id
    """

    request_id: str = ""
    correlation_id: str = ""
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.request_id:
            self.request_id = generate_request_id()
        if not self.correlation_id:
            self.correlation_id = self.request_id

    def __enter__(self) -> "RequestContext":
        self._tokens = [
            (_request_id_var, _request_id_var.set(self.request_id)),
            (_correlation_id_var, _correlation_id_var.set(self.correlation_id)),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000


@dataclass
class DeploymentContext:
    """Binds an orchestration run to all log entries inside the block.

    Example:
        with DeploymentContext(run_id=run.run_id, application="shop", slot="green"):
            deployer.deploy(...)
    """

    run_id: str
    application: str = ""
    slot: Optional[str] = None

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "DeploymentContext":
        self._tokens = [
            (_run_id_var, _run_id_var.set(self.run_id)),
            (_application_var, _application_var.set(self.application)),
            (_slot_var, _slot_var.set(self.slot or "")),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
