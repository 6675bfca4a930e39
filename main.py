"""CLI entry point: python main.py deploy --version 1.4.2"""

import argparse
import json
import sys

from bluegreen.db.store import store_from_settings
from bluegreen.deployment.config import OrchestrationState, RolloutParams, SlotId
from bluegreen.deployment.errors import DeploymentControllerError
from bluegreen.deployment.factory import build_orchestrator
from bluegreen.logging_config import LogFormat, LoggingConfig, configure_logging
from bluegreen.settings import get_settings


def cmd_deploy(args, settings, store) -> int:
    orchestrator = build_orchestrator(settings, store=store)
    defaults = orchestrator.config.default_rollout
    params = RolloutParams(
        replicas=args.replicas or defaults.replicas,
        cpu_limit=defaults.cpu_limit,
        memory_limit=defaults.memory_limit,
        deploy_timeout_seconds=args.timeout or defaults.deploy_timeout_seconds,
        readiness_poll_seconds=defaults.readiness_poll_seconds,
    )
    request = orchestrator.build_request(
        version=args.version,
        target_slot=SlotId(args.slot) if args.slot else None,
        params=params,
        requested_by="cli",
    )

    print("=" * 60)
    print(f"BLUE/GREEN DEPLOY: {settings.application} {args.version}")
    print(f"Target slot: {request.target_slot.value}")
    print("=" * 60)

    try:
        run = orchestrator.run(request)
    except DeploymentControllerError as exc:
        print(f"\nRejected [{exc.error_code.value}]: {exc.message}")
        return 2

    for t in run.transitions:
        suffix = f" ({t.reason})" if t.reason else ""
        print(f"  {t.from_state.value:>20} -> {t.to_state.value}{suffix}")

    print(f"\nOutcome: {run.state.value.upper()}")
    if run.error is not None:
        print(f"Reason:  {run.error.message}")
    route = orchestrator.switch.route
    print(f"Traffic: {route.route_name} -> {route.slot_id.value} ({route.endpoint})")
    return 0 if run.state == OrchestrationState.COMMITTED else 1


def cmd_status(args, settings, store) -> int:
    orchestrator = build_orchestrator(settings, store=store)
    if args.json:
        print(json.dumps(
            {"slots": orchestrator.registry.snapshot(), "route": orchestrator.switch.route.to_dict()},
            indent=2,
        ))
        return 0

    print(f"{'SLOT':<8}{'ACTIVITY':<10}{'HEALTH':<11}{'VERSION':<20}ENDPOINT")
    for slot in orchestrator.registry.snapshot():
        print(
            f"{slot['slot_id']:<8}{slot['activity']:<10}{slot['health']:<11}"
            f"{slot['current_version'] or '-':<20}{slot['endpoint']}"
        )
    return 0


def cmd_records(args, settings, store) -> int:
    if store is None:
        print("No record store configured (set BLUEGREEN_USE_DATABASE=true)")
        return 1
    records = store.list_records(run_id=args.run_id, limit=args.limit)
    for record in records:
        data = record.to_dict()
        if args.json:
            print(json.dumps(data))
            continue
        print(
            f"{data['created_at']}  {data['event']:<9}{data['version'] or '-':<16}"
            f"{data['from_slot'] or '-'} -> {data['to_slot'] or '-'}  "
            f"{data['outcome'] or ''} {data['failure_reason'] or ''}".rstrip()
        )
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Blue/green deployment controller"
    )
    parser.add_argument(
        "--log-format", choices=[f.value for f in LogFormat], default=None,
        help="Override the log format (default from BLUEGREEN_LOG_FORMAT)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    deploy = sub.add_parser("deploy", help="Roll a version onto the standby slot")
    deploy.add_argument("--version", required=True, help="Workload version to deploy")
    deploy.add_argument(
        "--slot", choices=[s.value for s in SlotId], default=None,
        help="Target slot (default: current standby)"
    )
    deploy.add_argument("--replicas", type=int, default=None, help="Replica count")
    deploy.add_argument("--timeout", type=float, default=None, help="Deploy timeout in seconds")

    status = sub.add_parser("status", help="Show slot state and the live route")
    status.add_argument("--json", action="store_true", help="Print JSON")

    records = sub.add_parser("records", help="List persisted rollout records")
    records.add_argument("--run-id", default=None, help="Only records of this run")
    records.add_argument("--limit", type=int, default=50, help="Maximum records")
    records.add_argument("--json", action="store_true", help="Print JSON lines")

    args = parser.parse_args(argv)
    settings = get_settings()

    configure_logging(LoggingConfig.from_settings(
        settings,
        format=LogFormat(args.log_format) if args.log_format else None,
    ))
    store = store_from_settings(settings)

    handlers = {"deploy": cmd_deploy, "status": cmd_status, "records": cmd_records}
    return handlers[args.command](args, settings, store)


if __name__ == "__main__":
    sys.exit(main())
