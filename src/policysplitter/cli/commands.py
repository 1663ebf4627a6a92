"""
CLI commands.

Commands:
    policy-splitter run                    - Watch policies and reconcile them
    policy-splitter reconcile NS/NAME      - Reconcile one policy once
    policy-splitter status NS/NAME [-o F]  - Show a root's aggregated status
"""

from __future__ import annotations

import asyncio
import json
import signal

import structlog
import yaml

from policysplitter.cli.ux import error, info, print_key_value, print_table, success, warning
from policysplitter.config import Settings
from policysplitter.controller import Controller
from policysplitter.core.errors import (
    ExitCode,
    PolicySplitterError,
    format_error_message,
    main_with_error_handling,
)
from policysplitter.domain.models import CLUSTER_LABEL, ObjectKey, Policy, owned_by
from policysplitter.logging import configure_logging
from policysplitter.reconcile import Leaf, Outcome, PolicyReconciler, classify
from policysplitter.store import KubernetesObjectStore, ObjectStore

logger = structlog.get_logger()


def build_store(settings: Settings) -> ObjectStore:
    store = KubernetesObjectStore.from_settings(settings)
    store.connect()
    return store


async def _run_controller(controller: Controller) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.stop)
        except NotImplementedError:
            # Signal handlers are unavailable on this platform
            pass
    await controller.run()


@main_with_error_handling()
def run_command(settings: Settings) -> int:
    """Start the controller and block until it is stopped."""
    configure_logging(settings.log_level, json=settings.log_json)
    store = build_store(settings)
    controller = Controller.from_settings(store, settings)

    logger.info(
        "controller_configured",
        namespace=settings.namespace or "*",
        workers=settings.workers,
        policy_api=settings.policy_api_version,
    )
    asyncio.run(_run_controller(controller))
    return ExitCode.SUCCESS


@main_with_error_handling()
def reconcile_command(key: ObjectKey, settings: Settings) -> int:
    """Reconcile a single policy and report the outcome."""
    configure_logging(settings.log_level, json=settings.log_json)
    store = build_store(settings)
    result = asyncio.run(PolicyReconciler(store).reconcile(key))

    if result.outcome is Outcome.DONE:
        success(f"{key}: {result.reason or 'done'}")
        return ExitCode.SUCCESS
    reason = result.reason
    if isinstance(result.error, PolicySplitterError):
        reason = format_error_message(result.error)
    if result.outcome is Outcome.RETRY:
        warning(f"{key}: retry needed ({reason})")
        return ExitCode.STORE_ERROR
    error(f"{key}: {reason}")
    return ExitCode.MALFORMED_POLICY


@main_with_error_handling()
def status_command(key: ObjectKey, settings: Settings, output_format: str = "table") -> int:
    """Print the placement and per-cluster compliance of a policy."""
    store = build_store(settings)
    policy, leafs = asyncio.run(_load_status(store, key))

    if output_format != "table":
        data = {
            "policy": str(key),
            "leafs": [leaf.name for leaf in leafs],
            "status": policy.status.to_dict(),
        }
        if output_format == "json":
            print(json.dumps(data, indent=2))
        else:
            print(yaml.dump(data, default_flow_style=False, sort_keys=False))
        return ExitCode.SUCCESS

    role = classify(policy)
    if isinstance(role, Leaf) and role.owner_name:
        info(f"{key} is a leaf of {policy.namespace}/{role.owner_name} on cluster {role.cluster_name}")

    print_key_value(
        {
            "cluster": policy.labels.get(CLUSTER_LABEL, "-"),
            "leafs": ", ".join(leaf.name for leaf in leafs) or "-",
            "compliant": policy.status.compliant or "-",
        },
        title=str(key),
    )

    print_table(
        "Placement",
        ["Placement binding", "Placement rule", "Placement", "Policy set"],
        [
            [p.placement_binding or "-", p.placement_rule or "-", p.placement or "-", p.policy_set or "-"]
            for p in policy.status.placement
        ],
    )
    print_table(
        "Compliance per cluster",
        ["Cluster", "Namespace", "Compliant"],
        [
            [s.cluster_name or "-", s.cluster_namespace or "-", s.compliant or "-"]
            for s in policy.status.status
        ],
    )
    for detail in policy.status.details:
        for entry in detail.history:
            warning(entry.message)
    return ExitCode.SUCCESS


async def _load_status(store: ObjectStore, key: ObjectKey) -> tuple[Policy, list[Policy]]:
    policy = await store.get(key)
    leafs = await store.list(key.namespace, owned_by(key.name))
    return policy, sorted(leafs, key=lambda p: p.name)
