"""Wires settings and backends into a ready-to-run orchestrator."""

import logging
import time
from typing import Callable, Optional

from bluegreen.settings import Settings, get_settings

from .backends import (
    EndpointChecker,
    InMemoryRoutingBackend,
    InMemoryWorkloadApplier,
    RoutingBackend,
    WorkloadApplier,
)
from .config import DeploymentConfig, ProbeConfig, RolloutParams, SlotId
from .deployer import Deployer
from .health import HealthProber
from .orchestrator import DeploymentOrchestrator
from .records import RolloutLog
from .registry import EnvironmentRegistry
from .rollback import RollbackController
from .traffic import TrafficSwitch

logger = logging.getLogger(__name__)


def deployment_config_from_settings(settings: Settings) -> DeploymentConfig:
    return DeploymentConfig(
        application=settings.application,
        route_name=settings.route_name,
        pre_switch_probe=ProbeConfig(
            path=settings.health_path,
            timeout_seconds=settings.health_timeout_seconds,
            interval_seconds=settings.probe_interval_seconds,
            initial_delay_seconds=settings.probe_initial_delay_seconds,
            max_attempts=settings.probe_max_attempts,
            success_threshold=settings.probe_success_threshold,
        ),
        post_switch_probe=ProbeConfig(
            path=settings.health_path,
            timeout_seconds=settings.health_timeout_seconds,
            interval_seconds=settings.verify_interval_seconds,
            initial_delay_seconds=0.0,
            max_attempts=settings.verify_max_attempts,
            success_threshold=settings.verify_success_threshold,
            observation_window_seconds=settings.verify_window_seconds,
        ),
        default_rollout=RolloutParams(
            replicas=settings.replicas,
            cpu_limit=settings.cpu_limit,
            memory_limit=settings.memory_limit,
            deploy_timeout_seconds=settings.deploy_timeout_seconds,
            readiness_poll_seconds=settings.readiness_poll_seconds,
        ),
        record_history_limit=settings.record_history_limit,
        run_history_limit=settings.run_history_limit,
    )


def _default_backends(settings: Settings):
    if settings.backend == "kubernetes":
        from .kube import HelmWorkloadApplier, KubectlRoutingBackend

        return (
            HelmWorkloadApplier(
                chart=settings.helm_chart,
                release=settings.helm_release,
                namespace=settings.namespace,
                image_repository=settings.image_repository,
            ),
            KubectlRoutingBackend(
                namespace=settings.namespace,
                selector_key=settings.service_selector_key,
            ),
        )
    if settings.backend != "memory":
        raise ValueError(f"Unknown backend {settings.backend!r}")
    return InMemoryWorkloadApplier(), InMemoryRoutingBackend()


def build_orchestrator(
    settings: Optional[Settings] = None,
    applier: Optional[WorkloadApplier] = None,
    routing: Optional[RoutingBackend] = None,
    checker: Optional[EndpointChecker] = None,
    store=None,
    config: Optional[DeploymentConfig] = None,
    sleep: Optional[Callable[[float], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> DeploymentOrchestrator:
    """Assemble registry, deployer, prober, switch and rollback controller.

    Backends not passed in are chosen by ``settings.backend``. When a store
    is given, previously persisted slot state takes precedence over the
    bootstrap values from settings.
    """
    settings = settings or get_settings()
    config = config or deployment_config_from_settings(settings)

    if applier is None or routing is None:
        default_applier, default_routing = _default_backends(settings)
        applier = applier or default_applier
        routing = routing or default_routing
    if checker is None:
        from .checkers import HttpEndpointChecker

        checker = HttpEndpointChecker()

    registry = EnvironmentRegistry.bootstrap(
        active=SlotId(settings.initial_active_slot),
        endpoints={
            SlotId.BLUE: settings.blue_endpoint,
            SlotId.GREEN: settings.green_endpoint,
        },
        versions={
            slot_id: version
            for slot_id, version in (
                (SlotId.BLUE, settings.blue_version),
                (SlotId.GREEN, settings.green_version),
            )
            if version
        },
    )
    if store is not None:
        rows = store.load_slots()
        if rows:
            registry.restore(rows)

    records = RolloutLog(store=store, limit=config.record_history_limit)
    switch = TrafficSwitch(
        routing, registry, records, config.route_name, application=config.application
    )
    switch.sync()

    orchestrator = DeploymentOrchestrator(
        registry=registry,
        deployer=Deployer(applier, registry, sleep=sleep, clock=clock),
        prober=HealthProber(checker, registry, sleep=sleep, clock=clock),
        switch=switch,
        rollback=RollbackController(switch, registry, records, config.application),
        records=records,
        config=config,
        store=store,
    )
    logger.info(
        "Orchestrator ready for %s (backend=%s, active=%s)",
        config.application,
        settings.backend,
        registry.get_active().slot_id.value,
    )
    return orchestrator
