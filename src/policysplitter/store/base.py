from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Literal, Protocol

from policysplitter.domain.models import Cluster, LabelSelector, ObjectKey, Policy

EventType = Literal["ADDED", "MODIFIED", "DELETED"]


@dataclass(frozen=True)
class WatchEvent:
    """A change to a Policy observed through the store's watch stream."""

    type: EventType
    policy: Policy

    @property
    def key(self) -> ObjectKey:
        return self.policy.key


class ObjectStore(Protocol):
    """
    Object store consumed by the reconciler.

    Reads return copies the caller may mutate. ``update`` writes metadata and
    spec, ``update_status`` writes only the status subresource; both reject a
    stale ``resource_version`` with ConflictError.
    """

    async def get(self, key: ObjectKey) -> Policy:
        ...

    async def list(self, namespace: str | None, selector: LabelSelector) -> list[Policy]:
        ...

    async def create(self, policy: Policy) -> Policy:
        ...

    async def update(self, policy: Policy) -> Policy:
        ...

    async def update_status(self, policy: Policy) -> Policy:
        ...

    async def list_clusters(self) -> list[Cluster]:
        ...

    def watch(self) -> AsyncIterator[WatchEvent]:
        ...
