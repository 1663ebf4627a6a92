"""
Fan a root policy out to its target clusters.

Runs only for a root that has no leafs yet. The branch taken depends on how
many clusters the registry holds at the time of the call:

- none: record why nothing was placed on the root's status
- one: assign the root itself to that cluster, no leaf is created
- several: create one leaf per cluster, named ``<root>--<cluster>``

The leaf loop is bracketed by a split-pending annotation on the root. A
root that still carries it after a failed create is split again, even
though some of its leafs exist, until every leaf has been created.
"""

from __future__ import annotations

import copy
from typing import Any

import structlog

from policysplitter.core.errors import AlreadyExistsError, NotFoundError, RetryableError, StoreError
from policysplitter.domain.models import (
    CLUSTER_LABEL,
    OWNED_BY_LABEL,
    SPLIT_PENDING_ANNOTATION,
    Cluster,
    ComplianceHistory,
    DetailsPerTemplate,
    Policy,
    leaf_name,
)
from policysplitter.reconcile.results import SplitBranch, SplitResult
from policysplitter.store.base import ObjectStore

NO_CLUSTERS_MESSAGE = "no clusters registered to receive this policy"


def build_leaf(root: Policy, cluster_name: str) -> Policy:
    """
    Build the leaf placing ``root`` on ``cluster_name``.

    The leaf starts with empty status and no uid or resource version so the
    store admits it as a new object.
    """
    labels = dict(root.labels)
    labels[CLUSTER_LABEL] = cluster_name
    labels[OWNED_BY_LABEL] = root.name

    return Policy(
        name=leaf_name(root.name, cluster_name),
        namespace=root.namespace,
        labels=labels,
        annotations={k: v for k, v in root.annotations.items() if k != SPLIT_PENDING_ANNOTATION},
        owner_references=[root.owner_reference()],
        spec=copy.deepcopy(root.spec),
        api_version=root.api_version,
        kind=root.kind,
    )


def is_split_pending(policy: Policy) -> bool:
    return SPLIT_PENDING_ANNOTATION in policy.annotations


def no_clusters_details() -> list[DetailsPerTemplate]:
    return [DetailsPerTemplate(history=[ComplianceHistory(message=NO_CLUSTERS_MESSAGE)])]


class Splitter:
    """Creates leafs for a root, or places the root directly."""

    def __init__(self, store: ObjectStore, *, logger: Any = None) -> None:
        self._store = store
        self._logger = logger or structlog.get_logger()

    async def split(self, root: Policy) -> SplitResult:
        try:
            registered = await self._store.list_clusters()
        except NotFoundError as exc:
            raise RetryableError(
                "cluster registry not found",
                {"root": str(root.key)},
                cause=exc,
            ) from exc
        clusters = sorted(registered, key=lambda c: c.name)

        if is_split_pending(root):
            self._logger.info("split_resumed", root=str(root.key), clusters=len(clusters))
            return await self._create_leafs(root, clusters)
        if not clusters:
            return await self._record_no_clusters(root)
        if len(clusters) == 1:
            return await self._place_root(root, clusters[0])
        return await self._create_leafs(root, clusters)

    async def _record_no_clusters(self, root: Policy) -> SplitResult:
        result = SplitResult(root=root.key, branch=SplitBranch.NO_CLUSTERS)

        desired = root.copy()
        desired.status.details = no_clusters_details()
        if desired.status == root.status:
            return result

        await self._store.update_status(desired)
        result.updated = True
        self._logger.info("root_unplaced", root=str(root.key), message=NO_CLUSTERS_MESSAGE)
        return result

    async def _place_root(self, root: Policy, cluster: Cluster) -> SplitResult:
        result = SplitResult(
            root=root.key,
            branch=SplitBranch.SINGLE_CLUSTER,
            clusters=[cluster.name],
        )

        previous = root.copy()
        placed = root.copy()
        placed.labels[CLUSTER_LABEL] = cluster.name

        # Only write on a real change; a no-op update would re-trigger reconcile.
        if placed != previous:
            await self._store.update(placed)
            result.updated = True
            self._logger.info("root_placed", root=str(root.key), cluster=cluster.name)
        return result

    async def _create_leafs(self, root: Policy, clusters: list[Cluster]) -> SplitResult:
        result = SplitResult(
            root=root.key,
            branch=SplitBranch.MULTI_CLUSTER,
            clusters=[c.name for c in clusters],
        )

        if not is_split_pending(root):
            marked = root.copy()
            marked.annotations[SPLIT_PENDING_ANNOTATION] = "true"
            root = await self._store.update(marked)

        for cluster in clusters:
            leaf = build_leaf(root, cluster.name)
            try:
                await self._store.create(leaf)
            except AlreadyExistsError:
                result.existing.append(leaf.name)
                self._logger.debug("leaf_exists", root=str(root.key), leaf=leaf.name)
                continue
            except StoreError as exc:
                raise RetryableError(
                    f"failed to create leaf {leaf.key}",
                    {"root": str(root.key), "cluster": cluster.name},
                    cause=exc,
                ) from exc

            result.created.append(leaf.name)
            self._logger.info("leaf_created", root=str(root.key), leaf=leaf.name, cluster=cluster.name)

        cleared = root.copy()
        cleared.annotations.pop(SPLIT_PENDING_ANNOTATION, None)
        await self._store.update(cleared)
        return result
