"""Deployment API: trigger, inspect and cancel blue/green runs."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from bluegreen.api.dependencies import get_orchestrator
from bluegreen.api.models import (
    CancelRequestIn,
    DeploymentRequestIn,
    RecordResponse,
    RouteResponse,
    RunResponse,
    SlotResponse,
)
from bluegreen.deployment.orchestrator import DeploymentOrchestrator
from bluegreen.deployment.records import RecordEvent

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Deployments"])


# ── Slots & routing ──────────────────────────────────────────────────


@router.get("/slots", response_model=List[SlotResponse])
def list_slots(orchestrator: DeploymentOrchestrator = Depends(get_orchestrator)):
    return orchestrator.registry.snapshot()


@router.get("/route", response_model=RouteResponse)
def current_route(orchestrator: DeploymentOrchestrator = Depends(get_orchestrator)):
    return orchestrator.switch.route.to_dict()


@router.get("/records", response_model=List[RecordResponse])
def list_records(
    event: Optional[RecordEvent] = None,
    run_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=1000),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    records = orchestrator.records.list(event=event, run_id=run_id, limit=limit)
    return [r.to_dict() for r in reversed(records)]


# ── Deployments ──────────────────────────────────────────────────────


@router.post("/deployments", response_model=RunResponse, status_code=202)
def start_deployment(
    body: DeploymentRequestIn,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    """Accept a deployment and run it in the background."""
    request = orchestrator.build_request(
        version=body.version,
        target_slot=body.target_slot,
        params=body.params.to_params() if body.params else None,
        requested_by=body.requested_by,
    )
    run = orchestrator.submit(request)
    logger.info("Deployment %s accepted via API", run.run_id)
    return run.to_dict()


@router.get("/deployments", response_model=List[RunResponse])
def list_deployments(
    limit: int = Query(default=20, ge=1, le=200),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    return [run.to_dict() for run in orchestrator.list_runs(limit)]


@router.get("/deployments/summary")
def deployment_summary(orchestrator: DeploymentOrchestrator = Depends(get_orchestrator)):
    return orchestrator.get_summary()


@router.get("/deployments/{run_id}", response_model=RunResponse)
def get_deployment(
    run_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    return orchestrator.get_run(run_id).to_dict()


@router.post("/deployments/{run_id}/cancel", response_model=RunResponse)
def cancel_deployment(
    run_id: str,
    body: Optional[CancelRequestIn] = None,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
):
    reason = body.reason if body else "cancelled via API"
    return orchestrator.cancel(run_id, reason).to_dict()
