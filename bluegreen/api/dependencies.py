"""FastAPI dependencies for the controller API.

One orchestrator is shared per API process. Tests replace it with
``set_orchestrator`` or ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from bluegreen.db.store import store_from_settings
from bluegreen.deployment.factory import build_orchestrator
from bluegreen.deployment.orchestrator import DeploymentOrchestrator
from bluegreen.settings import get_settings

logger = logging.getLogger(__name__)

# ── Singleton instance (shared per process) ──────────────────────────

_orchestrator: Optional[DeploymentOrchestrator] = None


def get_orchestrator() -> DeploymentOrchestrator:
    """Return (or create) the process-wide orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        settings = get_settings()
        _orchestrator = build_orchestrator(settings, store=store_from_settings(settings))
    return _orchestrator


def set_orchestrator(orchestrator: Optional[DeploymentOrchestrator]) -> None:
    global _orchestrator
    _orchestrator = orchestrator
