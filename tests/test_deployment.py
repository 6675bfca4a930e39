"""Tests for the blue/green building blocks: config, registry, deployer, switch, rollback."""

import pytest

from bluegreen.deployment.backends import (
    InMemoryRoutingBackend,
    InMemoryWorkloadApplier,
    WorkloadReadiness,
)
from bluegreen.deployment.cancellation import CancellationToken, pause
from bluegreen.deployment.config import (
    DeploymentConfig,
    HealthStatus,
    OrchestrationState,
    ProbeConfig,
    RolloutParams,
    SlotActivity,
    SlotId,
)
from bluegreen.deployment.deployer import Deployer
from bluegreen.deployment.errors import (
    ActiveSlotProtected,
    DeployError,
    DeploymentCancelled,
    DeployTimeout,
    ErrorCode,
    HealthCheckFailed,
    InvalidTransition,
    RollbackError,
    SwitchError,
)
from bluegreen.deployment.records import RecordEvent, RolloutLog, RolloutOutcome, RolloutRecord
from bluegreen.deployment.registry import EnvironmentRegistry, EnvironmentSlot
from bluegreen.deployment.rollback import RollbackController
from bluegreen.deployment.traffic import TrafficSwitch

from tests.harness import BLUE_URL, GREEN_URL, FakeClock


def _registry(active=SlotId.BLUE):
    return EnvironmentRegistry.bootstrap(
        active=active,
        endpoints={SlotId.BLUE: BLUE_URL, SlotId.GREEN: GREEN_URL},
        versions={SlotId.BLUE: "1.0.0"},
    )


# ── Config Tests ─────────────────────────────────────────────────────


class TestDeploymentConfig:
    def test_slot_other(self):
        assert SlotId.BLUE.other == SlotId.GREEN
        assert SlotId.GREEN.other == SlotId.BLUE

    def test_terminal_states(self):
        assert OrchestrationState.COMMITTED.is_terminal
        assert OrchestrationState.CANCELLED.is_terminal
        assert not OrchestrationState.SWITCHING.is_terminal
        assert not OrchestrationState.ROLLING_BACK.is_terminal

    def test_default_probe_config(self):
        cfg = ProbeConfig()
        assert cfg.path == "/healthz"
        assert cfg.expected_statuses == (200,)
        assert cfg.max_attempts == 10
        assert cfg.success_threshold == 1
        assert cfg.observation_window_seconds is None

    def test_default_post_switch_probe(self):
        cfg = DeploymentConfig()
        assert cfg.post_switch_probe.success_threshold == 3
        assert cfg.post_switch_probe.observation_window_seconds == 60.0
        assert cfg.post_switch_probe.initial_delay_seconds == 0.0

    def test_probe_config_validation(self):
        with pytest.raises(ValueError):
            ProbeConfig(max_attempts=0)
        with pytest.raises(ValueError):
            ProbeConfig(success_threshold=0)
        with pytest.raises(ValueError):
            ProbeConfig(max_attempts=2, success_threshold=3)

    def test_rollout_params_validation(self):
        with pytest.raises(ValueError):
            RolloutParams(replicas=0)
        with pytest.raises(ValueError):
            RolloutParams(deploy_timeout_seconds=0)

    def test_resource_limits(self):
        assert RolloutParams().resource_limits() == {}
        params = RolloutParams(cpu_limit="500m", memory_limit="256Mi")
        assert params.resource_limits() == {"cpu": "500m", "memory": "256Mi"}


# ── Error Tests ──────────────────────────────────────────────────────


class TestErrors:
    def test_codes_and_retryable(self):
        assert DeployError("x").retryable is True
        assert DeployTimeout("x").error_code == ErrorCode.DEPLOY_TIMEOUT
        assert isinstance(DeployTimeout("x"), DeployError)
        assert InvalidTransition("x").retryable is False
        assert RollbackError("x").retryable is False

    def test_to_dict(self):
        err = ActiveSlotProtected("blue is live", {"slot": "blue"})
        body = err.to_dict()
        assert body["code"] == "ACTIVE_SLOT_PROTECTED"
        assert body["message"] == "blue is live"
        assert body["details"] == {"slot": "blue"}

    def test_switch_error_route_consistency(self):
        err = SwitchError("boom", route_consistent=False)
        assert err.route_consistent is False
        assert err.details["route_consistent"] is False

    def test_health_check_failed_without_verdict(self):
        err = HealthCheckFailed("unhealthy")
        assert err.details == {}
        assert err.verdict is None


# ── Cancellation Tests ───────────────────────────────────────────────


class TestCancellation:
    def test_token(self):
        token = CancellationToken()
        assert not token.cancelled
        token.cancel("operator")
        assert token.cancelled
        assert token.reason == "operator"
        assert token.wait(5) is True

    def test_pause_uses_injected_sleep(self):
        clock = FakeClock()
        token = CancellationToken()
        assert pause(3.0, token, clock.sleep) is False
        assert clock.sleeps == [3.0]

    def test_pause_reports_cancellation(self):
        clock = FakeClock()
        token = CancellationToken()
        token.cancel()
        assert pause(1.0, token, clock.sleep) is True


# ── Registry Tests ───────────────────────────────────────────────────


class TestEnvironmentRegistry:
    def setup_method(self):
        self.registry = _registry()

    def test_bootstrap(self):
        active = self.registry.get_active()
        standby = self.registry.get_standby()
        assert active.slot_id == SlotId.BLUE
        assert active.health == HealthStatus.HEALTHY
        assert active.current_version == "1.0.0"
        assert standby.slot_id == SlotId.GREEN
        assert standby.health == HealthStatus.UNKNOWN
        assert standby.activity == SlotActivity.STANDBY
        assert self.registry.active_count() == 1

    def test_requires_exactly_one_active(self):
        slots = {
            SlotId.BLUE: EnvironmentSlot(SlotId.BLUE, activity=SlotActivity.ACTIVE),
            SlotId.GREEN: EnvironmentSlot(SlotId.GREEN, activity=SlotActivity.ACTIVE),
        }
        with pytest.raises(ValueError):
            EnvironmentRegistry(slots)

    def test_get_returns_copy(self):
        slot = self.registry.get(SlotId.GREEN)
        slot.health = HealthStatus.HEALTHY
        assert self.registry.get(SlotId.GREEN).health == HealthStatus.UNKNOWN

    def test_set_active_on_active_slot_raises_and_does_not_mutate(self):
        before = self.registry.snapshot()
        with pytest.raises(InvalidTransition):
            self.registry.set_active(SlotId.BLUE)
        assert self.registry.snapshot() == before

    def test_set_active_requires_healthy(self):
        with pytest.raises(InvalidTransition):
            self.registry.set_active(SlotId.GREEN)
        assert self.registry.get_active().slot_id == SlotId.BLUE

    def test_set_active_swaps(self):
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.registry.set_active(SlotId.GREEN)
        assert self.registry.get_active().slot_id == SlotId.GREEN
        assert self.registry.get(SlotId.BLUE).activity == SlotActivity.STANDBY
        assert self.registry.active_count() == 1

    def test_record_version_resets_health(self):
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.registry.record_version(SlotId.GREEN, "2.0.0")
        slot = self.registry.get(SlotId.GREEN)
        assert slot.current_version == "2.0.0"
        assert slot.health == HealthStatus.UNKNOWN

    def test_record_same_version_keeps_health(self):
        self.registry.record_version(SlotId.BLUE, "1.0.0")
        assert self.registry.get(SlotId.BLUE).health == HealthStatus.HEALTHY

    def test_snapshot_and_restore(self):
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.registry.record_version(SlotId.GREEN, "2.0.0")
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.registry.set_active(SlotId.GREEN)
        rows = self.registry.snapshot()
        assert [r["slot_id"] for r in rows] == ["blue", "green"]

        fresh = _registry()
        fresh.restore(rows)
        assert fresh.get_active().slot_id == SlotId.GREEN
        assert fresh.get(SlotId.GREEN).current_version == "2.0.0"

    def test_restore_rejects_two_active(self):
        rows = self.registry.snapshot()
        rows[1]["activity"] = "active"
        with pytest.raises(ValueError):
            self.registry.restore(rows)

    def test_probe_targets(self):
        slot = EnvironmentSlot(SlotId.BLUE, endpoint="http://svc")
        assert slot.probe_targets == ["http://svc"]
        slot.replica_endpoints = ["http://a", "http://b"]
        assert slot.probe_targets == ["http://a", "http://b"]


# ── Record Log Tests ─────────────────────────────────────────────────


class TestRolloutLog:
    def setup_method(self):
        self.log = RolloutLog()

    def test_append_and_filter(self):
        self.log.append(RolloutRecord(RecordEvent.SWITCH, run_id="r1", to_slot=SlotId.GREEN))
        self.log.append(
            RolloutRecord(RecordEvent.OUTCOME, run_id="r1", outcome=RolloutOutcome.COMMITTED)
        )
        self.log.append(RolloutRecord(RecordEvent.SWITCH, run_id="r2", to_slot=SlotId.BLUE))
        assert len(self.log) == 3
        assert len(self.log.list(event=RecordEvent.SWITCH)) == 2
        assert len(self.log.list(run_id="r1")) == 2
        assert self.log.outcome_for("r1").outcome == RolloutOutcome.COMMITTED
        assert self.log.outcome_for("r2") is None

    def test_latest_switch_to(self):
        self.log.append(
            RolloutRecord(RecordEvent.SWITCH, from_slot=SlotId.BLUE, to_slot=SlotId.GREEN, version="2")
        )
        self.log.append(
            RolloutRecord(RecordEvent.SWITCH, from_slot=SlotId.GREEN, to_slot=SlotId.BLUE, version="3")
        )
        assert self.log.latest_switch_to(SlotId.GREEN).version == "2"
        assert self.log.latest_switch_to(SlotId.BLUE).version == "3"

    def test_limit_trims_oldest(self):
        log = RolloutLog(limit=2)
        for i in range(3):
            log.append(RolloutRecord(RecordEvent.SWITCH, version=str(i)))
        assert [r.version for r in log.list()] == ["1", "2"]

    def test_forwards_to_store(self):
        class Store:
            def __init__(self):
                self.records = []

            def append_record(self, record):
                self.records.append(record)

        store = Store()
        log = RolloutLog(store=store)
        record = log.append(RolloutRecord(RecordEvent.ROLLBACK))
        assert store.records == [record]

    def test_record_to_dict(self):
        record = RolloutRecord(
            RecordEvent.OUTCOME,
            application="shop",
            from_slot=SlotId.BLUE,
            to_slot=SlotId.GREEN,
            outcome=RolloutOutcome.ROLLED_BACK,
        )
        data = record.to_dict()
        assert data["event"] == "outcome"
        assert data["from_slot"] == "blue"
        assert data["outcome"] == "rolled_back"


# ── Deployer Tests ───────────────────────────────────────────────────


class TestDeployer:
    def setup_method(self):
        self.clock = FakeClock()
        self.registry = _registry()
        self.applier = InMemoryWorkloadApplier()
        self.deployer = Deployer(
            self.applier, self.registry, sleep=self.clock.sleep, clock=self.clock
        )
        self.params = RolloutParams(deploy_timeout_seconds=10, readiness_poll_seconds=2)

    def test_deploy_to_standby(self):
        readiness = self.deployer.deploy(SlotId.GREEN, "2.0.0", self.params)
        assert readiness.is_ready
        slot = self.registry.get(SlotId.GREEN)
        assert slot.current_version == "2.0.0"
        assert slot.health == HealthStatus.UNKNOWN
        assert self.applier.applied[0].version == "2.0.0"

    def test_refuses_active_slot(self):
        with pytest.raises(ActiveSlotProtected):
            self.deployer.deploy(SlotId.BLUE, "2.0.0", self.params)
        assert self.applier.applied == []
        assert self.registry.get(SlotId.BLUE).current_version == "1.0.0"

    def test_waits_for_readiness(self):
        self.applier.ready_after_polls = 2
        self.deployer.deploy(SlotId.GREEN, "2.0.0", self.params)
        assert self.clock.sleeps == [2, 2]

    def test_timeout(self):
        self.applier.never_ready = True
        with pytest.raises(DeployTimeout) as exc_info:
            self.deployer.deploy(SlotId.GREEN, "2.0.0", self.params)
        assert exc_info.value.details["desired_replicas"] == 2
        assert sum(self.clock.sleeps) == pytest.approx(10)
        slot = self.registry.get(SlotId.GREEN)
        assert slot.desired_version == "2.0.0"
        assert slot.current_version is None

    def test_applier_failure(self):
        self.applier.fail_with = RuntimeError("chart not found")
        with pytest.raises(DeployError, match="chart not found"):
            self.deployer.deploy(SlotId.GREEN, "2.0.0", self.params)

    def test_cancelled_while_waiting(self):
        token = CancellationToken()

        class CancellingApplier(InMemoryWorkloadApplier):
            def readiness(self, slot_id):
                token.cancel("operator")
                return WorkloadReadiness(0, 2)

        deployer = Deployer(
            CancellingApplier(), self.registry, sleep=self.clock.sleep, clock=self.clock
        )
        with pytest.raises(DeploymentCancelled):
            deployer.deploy(SlotId.GREEN, "2.0.0", self.params, cancel_token=token)


# ── Traffic Switch Tests ─────────────────────────────────────────────


class _FlakyRegistry(EnvironmentRegistry):
    """Registry whose set_active fails after the route has been updated."""

    fail_set_active = False

    def set_active(self, slot_id):
        if self.fail_set_active:
            raise RuntimeError("registry write failed")
        return super().set_active(slot_id)


class TestTrafficSwitch:
    def setup_method(self):
        base = _registry()
        self.registry = _FlakyRegistry(
            {slot_id: base.get(slot_id) for slot_id in SlotId}
        )
        self.routing = InMemoryRoutingBackend()
        self.records = RolloutLog()
        self.switch = TrafficSwitch(self.routing, self.registry, self.records, "shop", "shop")
        self.switch.sync()

    def _make_green_healthy(self):
        self.registry.record_version(SlotId.GREEN, "2.0.0")
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)

    def test_sync_points_at_active(self):
        assert self.routing.target_of("shop") == SlotId.BLUE
        assert self.switch.route.slot_id == SlotId.BLUE
        assert self.switch.route.endpoint == BLUE_URL

    def test_switch(self):
        self._make_green_healthy()
        generation = self.switch.route.generation
        route = self.switch.switch_to(SlotId.GREEN, run_id="r1")
        assert route.slot_id == SlotId.GREEN
        assert route.generation == generation + 1
        assert self.routing.target_of("shop") == SlotId.GREEN
        assert self.registry.get_active().slot_id == SlotId.GREEN
        record = self.records.latest_switch_to(SlotId.GREEN)
        assert record.from_slot == SlotId.BLUE
        assert record.version == "2.0.0"
        assert record.run_id == "r1"

    def test_switch_to_active_rejected(self):
        with pytest.raises(InvalidTransition):
            self.switch.switch_to(SlotId.BLUE)
        assert len(self.records) == 0

    def test_switch_to_unhealthy_rejected(self):
        self.registry.record_health(SlotId.GREEN, HealthStatus.UNHEALTHY)
        with pytest.raises(InvalidTransition):
            self.switch.switch_to(SlotId.GREEN)
        assert self.routing.target_of("shop") == SlotId.BLUE

    def test_backend_failure(self):
        self._make_green_healthy()
        self.routing.fail_next = 1
        with pytest.raises(SwitchError):
            self.switch.switch_to(SlotId.GREEN)
        assert self.routing.target_of("shop") == SlotId.BLUE
        assert self.registry.get_active().slot_id == SlotId.BLUE
        assert self.switch.route.slot_id == SlotId.BLUE

    def test_registry_failure_between_steps_reverts_route(self):
        self._make_green_healthy()
        self.registry.fail_set_active = True
        with pytest.raises(SwitchError) as exc_info:
            self.switch.switch_to(SlotId.GREEN)
        assert exc_info.value.route_consistent is True
        assert self.routing.target_of("shop") == SlotId.BLUE
        assert self.registry.get_active().slot_id == SlotId.BLUE
        assert self.switch.route.slot_id == SlotId.BLUE
        assert self.records.list(event=RecordEvent.SWITCH) == []

    def test_revert_failure_flags_inconsistent_route(self):
        self._make_green_healthy()
        self.registry.fail_set_active = True
        original = self.routing.set_target
        calls = []

        def set_target(route_name, slot_id, endpoint):
            calls.append(slot_id)
            if len(calls) > 1:
                raise ConnectionError("backend gone")
            original(route_name, slot_id, endpoint)

        self.routing.set_target = set_target
        with pytest.raises(SwitchError) as exc_info:
            self.switch.switch_to(SlotId.GREEN)
        assert exc_info.value.route_consistent is False
        assert self.registry.get_active().slot_id == SlotId.BLUE


# ── Rollback Tests ───────────────────────────────────────────────────


class TestRollbackController:
    def setup_method(self):
        self.registry = _registry()
        self.routing = InMemoryRoutingBackend()
        self.records = RolloutLog()
        self.switch = TrafficSwitch(self.routing, self.registry, self.records, "shop", "shop")
        self.switch.sync()
        self.rollback = RollbackController(self.switch, self.registry, self.records, "shop")
        self.registry.record_version(SlotId.GREEN, "2.0.0")
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.switch.switch_to(SlotId.GREEN, run_id="r1")

    def test_rollback_after_switch(self):
        route = self.rollback.rollback(SlotId.GREEN, reason="5xx", run_id="r1", version="2.0.0")
        assert route.slot_id == SlotId.BLUE
        assert self.routing.target_of("shop") == SlotId.BLUE
        assert self.registry.get_active().slot_id == SlotId.BLUE
        assert self.registry.get(SlotId.GREEN).health == HealthStatus.UNHEALTHY
        record = self.records.list(event=RecordEvent.ROLLBACK)[-1]
        assert record.from_slot == SlotId.GREEN
        assert record.to_slot == SlotId.BLUE
        assert record.failure_reason == "5xx"
        assert self.rollback.get_rollback_stats()["total"] == 1

    def test_rollback_of_standby_reasserts_active_route(self):
        self.rollback.rollback(SlotId.GREEN)
        self.routing.targets["shop"] = (SlotId.GREEN, GREEN_URL)
        self.registry.record_health(SlotId.GREEN, HealthStatus.HEALTHY)
        self.rollback.rollback(SlotId.GREEN, reason="switch failed")
        assert self.routing.target_of("shop") == SlotId.BLUE
        assert self.registry.get_active().slot_id == SlotId.BLUE

    def test_route_failure_raises_rollback_error(self):
        self.routing.fail_next = 5
        with pytest.raises(RollbackError):
            self.rollback.rollback(SlotId.GREEN, reason="5xx")
        assert self.registry.get_active().slot_id == SlotId.GREEN
        assert self.registry.get(SlotId.GREEN).health == HealthStatus.UNHEALTHY

    def test_unhealthy_target_raises_and_restores_route(self):
        self.registry.record_health(SlotId.BLUE, HealthStatus.UNHEALTHY)
        with pytest.raises(RollbackError):
            self.rollback.rollback(SlotId.GREEN)
        assert self.registry.get_active().slot_id == SlotId.GREEN
        assert self.routing.target_of("shop") == SlotId.GREEN
