from __future__ import annotations

from typing import Any

import structlog

from policysplitter.core.errors import (
    AlreadyExistsError,
    MalformedPolicyError,
    NotFoundError,
    PolicySplitterError,
)
from policysplitter.domain.models import OWNED_BY_LABEL, ObjectKey, Policy, owned_by
from policysplitter.reconcile.aggregator import Aggregator
from policysplitter.reconcile.classifier import Leaf, Root, classify
from policysplitter.reconcile.results import ReconcileResult
from policysplitter.reconcile.splitter import Splitter, is_split_pending
from policysplitter.store.base import ObjectStore


class PolicyReconciler:
    """
    Reconcile entry point for Policy objects.

    Roots without leafs, or with an unfinished split, are split; leaf
    changes are aggregated onto their root. A NotFound for the object itself
    or for the root it writes to settles the invocation. Any other store
    error makes it retryable. Malformed label data is a terminal failure.
    """

    def __init__(self, store: ObjectStore, *, logger: Any = None) -> None:
        self.store = store
        self.logger = logger or structlog.get_logger()
        self.splitter = Splitter(store, logger=self.logger)
        self.aggregator = Aggregator(store, logger=self.logger)

    async def reconcile(self, key: ObjectKey) -> ReconcileResult:
        log = self.logger.bind(key=str(key))
        log.debug("reconcile_started")

        try:
            result = await self._reconcile(key, log)
        except MalformedPolicyError as exc:
            log.error("policy_malformed", error=exc.message, **exc.details)
            result = ReconcileResult.failed(key, exc)
        except AlreadyExistsError:
            result = ReconcileResult.done(key, "exists")
        except PolicySplitterError as exc:
            log.warning("reconcile_retry", error_type=type(exc).__name__, error=exc.message)
            result = ReconcileResult.retry(key, exc)
        except Exception as exc:
            log.exception("reconcile_unexpected_error", error=str(exc))
            result = ReconcileResult.retry(key, exc)

        log.debug("reconcile_finished", outcome=result.outcome.value, reason=result.reason)
        return result

    async def _reconcile(self, key: ObjectKey, log: Any) -> ReconcileResult:
        try:
            policy = await self.store.get(key)
        except NotFoundError:
            return ReconcileResult.done(key, "deleted")

        role = classify(policy)

        if isinstance(role, Root):
            leafs = await self.store.list(policy.namespace, owned_by(policy.name))
            if leafs and not is_split_pending(policy):
                return ReconcileResult.done(key, "leafs exist")
            try:
                split = await self.splitter.split(policy)
            except NotFoundError:
                log.info("root_missing")
                return ReconcileResult.done(key, "deleted")
            return ReconcileResult.done(key, split.branch.value)

        if isinstance(role, Leaf):
            if not role.owner_name:
                if _placed_in_place(policy):
                    log.debug("root_already_placed", cluster=role.cluster_name)
                    return ReconcileResult.done(key, "placed")
                raise MalformedPolicyError(
                    f"leaf {key} has an empty {OWNED_BY_LABEL} label",
                    {"cluster": role.cluster_name},
                )
            try:
                aggregated = await self.aggregator.aggregate(policy.namespace, role.owner_name)
            except NotFoundError:
                log.info("root_missing", root=role.owner_name)
                return ReconcileResult.done(key, "root deleted")
            return ReconcileResult.done(key, "aggregated" if aggregated.written else "unchanged")

        raise TypeError(f"unhandled policy role {role!r}")


def _placed_in_place(policy: Policy) -> bool:
    """A root the single-cluster split assigned directly: no owner label or reference."""
    return OWNED_BY_LABEL not in policy.labels and not policy.owner_references
