"""Pydantic request/response models for the controller API."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from bluegreen.deployment.config import RolloutParams, SlotId


class RolloutParamsIn(BaseModel):
    replicas: int = Field(default=2, ge=1)
    cpu_limit: Optional[str] = None
    memory_limit: Optional[str] = None
    deploy_timeout_seconds: float = Field(default=300.0, gt=0)
    readiness_poll_seconds: float = Field(default=5.0, ge=0)
    health_check_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    max_probe_attempts: Optional[int] = Field(default=None, ge=1)
    values: Dict[str, str] = Field(default_factory=dict)

    def to_params(self) -> RolloutParams:
        return RolloutParams(**self.model_dump())


class DeploymentRequestIn(BaseModel):
    version: str = Field(min_length=1, max_length=100)
    target_slot: Optional[SlotId] = None
    params: Optional[RolloutParamsIn] = None
    requested_by: str = "api"


class CancelRequestIn(BaseModel):
    reason: str = "cancelled via API"


class ErrorOut(BaseModel):
    code: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)


class TransitionOut(BaseModel):
    from_state: str = Field(alias="from")
    to_state: str = Field(alias="to")
    reason: str = ""
    at: str

    model_config = {"populate_by_name": True}


class RunResponse(BaseModel):
    run_id: str
    application: str
    version: str
    target_slot: str
    requested_by: str
    state: str
    cancel_requested: bool = False
    error: Optional[ErrorOut] = None
    transitions: List[TransitionOut] = Field(default_factory=list)
    verdicts: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    timings_ms: Dict[str, float] = Field(default_factory=dict)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None


class SlotResponse(BaseModel):
    slot_id: str
    endpoint: str
    replica_endpoints: List[str] = Field(default_factory=list)
    current_version: Optional[str] = None
    desired_version: Optional[str] = None
    health: str
    activity: str
    updated_at: str


class RouteResponse(BaseModel):
    route_name: str
    slot: str
    endpoint: str
    generation: int
    updated_at: str


class RecordResponse(BaseModel):
    record_id: str
    event: str
    application: str
    run_id: Optional[str] = None
    version: Optional[str] = None
    from_slot: Optional[str] = None
    to_slot: Optional[str] = None
    outcome: Optional[str] = None
    failure_reason: Optional[str] = None
    error_code: Optional[str] = None
    created_at: str
