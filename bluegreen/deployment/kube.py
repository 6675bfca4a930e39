"""Kubernetes-backed workload applier and routing backend.

Both shell out to ``helm`` / ``kubectl`` through an injectable runner so
they can be exercised without a cluster.
"""

import json
import logging
import subprocess
from typing import Callable, List, Optional, Sequence

from .backends import RoutingBackend, WorkloadApplier, WorkloadReadiness
from .config import RolloutParams, SlotId

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


class CommandError(RuntimeError):
    """A helm or kubectl invocation exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str):
        super().__init__(
            f"{' '.join(command)} exited {returncode}: {stderr.strip() or '-'}"
        )
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr


class _CommandMixin:
    def __init__(self, runner: Optional[Runner], namespace: str, timeout: float):
        self._runner = runner or subprocess.run
        self._namespace = namespace
        self._timeout = timeout

    def _run(self, command: List[str]) -> str:
        logger.debug("Running %s", " ".join(command))
        result = self._runner(
            command,
            capture_output=True,
            text=True,
            timeout=self._timeout,
            check=False,
        )
        if result.returncode != 0:
            raise CommandError(command, result.returncode, result.stderr or "")
        return result.stdout or ""


class HelmWorkloadApplier(_CommandMixin, WorkloadApplier):
    """Installs one helm release per slot (``<release>-blue``/``-green``)."""

    def __init__(
        self,
        chart: str,
        release: str,
        namespace: str = "default",
        image_repository: Optional[str] = None,
        runner: Optional[Runner] = None,
        command_timeout: float = 120.0,
    ):
        super().__init__(runner, namespace, command_timeout)
        self._chart = chart
        self._release = release
        self._image_repository = image_repository

    def release_name(self, slot_id: SlotId) -> str:
        return f"{self._release}-{SlotId(slot_id).value}"

    def apply(self, slot_id: SlotId, version: str, params: RolloutParams) -> None:
        slot_id = SlotId(slot_id)
        command = [
            "helm", "upgrade", "--install", self.release_name(slot_id), self._chart,
            "--namespace", self._namespace,
            "--set", f"image.tag={version}",
            "--set", f"replicaCount={params.replicas}",
            "--set", f"slot={slot_id.value}",
        ]
        if self._image_repository:
            command += ["--set", f"image.repository={self._image_repository}"]
        for name, value in params.resource_limits().items():
            command += ["--set", f"resources.limits.{name}={value}"]
        for key, value in sorted(params.values.items()):
            command += ["--set", f"{key}={value}"]
        self._run(command)
        logger.info("Helm release %s upgraded to %s", self.release_name(slot_id), version)

    def readiness(self, slot_id: SlotId) -> WorkloadReadiness:
        output = self._run(
            [
                "kubectl", "get", "deployment", self.release_name(slot_id),
                "--namespace", self._namespace,
                "-o", "json",
            ]
        )
        try:
            doc = json.loads(output)
        except ValueError as exc:
            raise RuntimeError(f"Unparseable kubectl output: {exc}") from exc
        desired = int(doc.get("spec", {}).get("replicas", 0) or 0)
        status = doc.get("status", {})
        ready = int(status.get("readyReplicas", 0) or 0)
        updated = int(status.get("updatedReplicas", 0) or 0)
        # Old pods still count as ready mid-rollout.
        return WorkloadReadiness(
            ready_replicas=min(ready, updated),
            desired_replicas=desired,
            message=f"{ready} ready, {updated} updated of {desired}",
        )


class KubectlRoutingBackend(_CommandMixin, RoutingBackend):
    """Routes a Service by patching its ``slot`` selector."""

    def __init__(
        self,
        namespace: str = "default",
        selector_key: str = "slot",
        runner: Optional[Runner] = None,
        command_timeout: float = 30.0,
    ):
        super().__init__(runner, namespace, command_timeout)
        self._selector_key = selector_key

    def set_target(self, route_name: str, slot_id: SlotId, endpoint: str) -> None:
        patch = {"spec": {"selector": {self._selector_key: SlotId(slot_id).value}}}
        self._run(
            [
                "kubectl", "patch", "service", route_name,
                "--namespace", self._namespace,
                "--type", "merge",
                "-p", json.dumps(patch),
            ]
        )
        logger.info("Service %s now selects slot %s", route_name, SlotId(slot_id).value)
