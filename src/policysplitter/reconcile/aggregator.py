"""
Fan leaf status back in to the owning root.

The root's placement and per-cluster status are rebuilt from scratch on
every run as the concatenation of its current leafs' sequences, siblings
ordered by name. The root's previous status is never carried forward:
appending to it would grow the status on every leaf event.
"""

from __future__ import annotations

import copy
from typing import Any

import structlog

from policysplitter.core.errors import ConflictError, NotFoundError, RetryableError, StoreError
from policysplitter.domain.models import ObjectKey, Policy, PolicyStatus, owned_by
from policysplitter.reconcile.results import AggregateResult
from policysplitter.store.base import ObjectStore


def aggregate_status(siblings: list[Policy]) -> PolicyStatus:
    """Fresh status concatenating every sibling's placement and compliance, in order."""
    status = PolicyStatus()
    for sibling in siblings:
        status.placement.extend(copy.deepcopy(sibling.status.placement))
        status.status.extend(copy.deepcopy(sibling.status.status))
    return status


class Aggregator:
    """Recomputes a root's aggregate status from its leafs."""

    def __init__(self, store: ObjectStore, *, logger: Any = None) -> None:
        self._store = store
        self._logger = logger or structlog.get_logger()

    async def aggregate(self, namespace: str, owner_name: str) -> AggregateResult:
        root_key = ObjectKey(namespace=namespace, name=owner_name)

        try:
            siblings = await self._store.list(namespace, owned_by(owner_name))
        except NotFoundError as exc:
            raise RetryableError(
                f"listing leafs of {root_key} failed",
                {"root": str(root_key)},
                cause=exc,
            ) from exc
        root = await self._store.get(root_key)

        siblings.sort(key=lambda p: p.name)
        result = AggregateResult(root=root_key, siblings=[s.name for s in siblings])

        status = aggregate_status(siblings)
        if status == root.status:
            self._logger.debug("root_status_unchanged", root=str(root_key))
            return result

        updated = root.copy()
        updated.status = status

        try:
            await self._store.update_status(updated)
        except NotFoundError:
            raise
        except ConflictError as exc:
            self._logger.info("root_status_conflict", root=str(root_key))
            raise RetryableError(
                f"root {root_key} changed during aggregation",
                {"root": str(root_key)},
                cause=exc,
            ) from exc
        except StoreError as exc:
            raise RetryableError(
                f"failed to write status of root {root_key}",
                {"root": str(root_key)},
                cause=exc,
            ) from exc

        result.written = True
        self._logger.info(
            "root_status_aggregated",
            root=str(root_key),
            leafs=len(siblings),
            placements=len(status.placement),
            clusters=len(status.status),
        )
        return result
