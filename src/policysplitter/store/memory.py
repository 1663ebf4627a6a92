from __future__ import annotations

import asyncio
import uuid
from typing import AsyncIterator, Iterable

import structlog

from policysplitter.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    StoreError,
)
from policysplitter.domain.models import Cluster, LabelSelector, ObjectKey, Policy
from policysplitter.store.base import EventType, WatchEvent

logger = structlog.get_logger()


class InMemoryObjectStore:
    """
    Versioned in-process object store for local development and tests.

    Mirrors the API server behaviours the reconciler depends on: optimistic
    concurrency on resource versions, a separate status subresource,
    owner-reference cascade deletion and a watch stream. Every successful
    write is recorded in ``writes`` as ``(operation, key)``.
    """

    def __init__(self, clusters: Iterable[str] = ()) -> None:
        self._objects: dict[ObjectKey, Policy] = {}
        self._clusters: dict[str, Cluster] = {name: Cluster(name=name) for name in clusters}
        self._version = 0
        self._watchers: list[asyncio.Queue[WatchEvent | None]] = []
        self._faults: dict[str, list[StoreError]] = {}
        self.writes: list[tuple[str, ObjectKey]] = []

    # Cluster registry

    def add_cluster(self, name: str) -> None:
        self._clusters[name] = Cluster(name=name)

    def remove_cluster(self, name: str) -> None:
        self._clusters.pop(name, None)

    # Test hooks

    def fail_next(self, operation: str, error: StoreError) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        self._faults.setdefault(operation, []).append(error)

    def seed(self, policy: Policy) -> Policy:
        """Insert an object as an upstream actor would, bypassing fault injection."""
        stored = self._admit(policy)
        self._emit("ADDED", stored)
        return stored.copy()

    def peek(self, key: ObjectKey) -> Policy | None:
        """Synchronous read for assertions."""
        stored = self._objects.get(key)
        return stored.copy() if stored else None

    def objects(self) -> list[Policy]:
        return [p.copy() for p in sorted(self._objects.values(), key=lambda p: p.key)]

    # ObjectStore

    async def get(self, key: ObjectKey) -> Policy:
        self._maybe_fail("get")
        stored = self._objects.get(key)
        if stored is None:
            raise NotFoundError(f"policy {key} not found", {"key": str(key)})
        return stored.copy()

    async def list(self, namespace: str | None, selector: LabelSelector) -> list[Policy]:
        self._maybe_fail("list")
        return [
            p.copy()
            for p in self._objects.values()
            if (namespace is None or p.namespace == namespace) and selector.matches(p.labels)
        ]

    async def create(self, policy: Policy) -> Policy:
        self._maybe_fail("create")
        if policy.key in self._objects:
            raise AlreadyExistsError(f"policy {policy.key} already exists", {"key": str(policy.key)})
        stored = self._admit(policy)
        self.writes.append(("create", stored.key))
        self._emit("ADDED", stored)
        return stored.copy()

    async def update(self, policy: Policy) -> Policy:
        self._maybe_fail("update")
        current = self._current_for_write(policy)
        stored = policy.copy()
        stored.uid = current.uid
        stored.status = current.status
        return self._commit("update", stored)

    async def update_status(self, policy: Policy) -> Policy:
        self._maybe_fail("update_status")
        current = self._current_for_write(policy)
        stored = current.copy()
        stored.status = policy.copy().status
        return self._commit("update_status", stored)

    async def delete(self, key: ObjectKey) -> None:
        """Delete ``key`` and, like the garbage collector, everything it owns."""
        self._maybe_fail("delete")
        stored = self._objects.pop(key, None)
        if stored is None:
            raise NotFoundError(f"policy {key} not found", {"key": str(key)})
        self.writes.append(("delete", key))
        self._emit("DELETED", stored)

        dependents = [
            p.key
            for p in self._objects.values()
            if any(ref.uid == stored.uid for ref in p.owner_references)
        ]
        for dependent in dependents:
            if dependent in self._objects:
                logger.debug("cascade_delete", owner=str(key), dependent=str(dependent))
                await self.delete(dependent)

    async def list_clusters(self) -> list[Cluster]:
        self._maybe_fail("list_clusters")
        return list(self._clusters.values())

    async def watch(self) -> AsyncIterator[WatchEvent]:
        """Replay current objects as ADDED, then stream changes until ``close``."""
        queue: asyncio.Queue[WatchEvent | None] = asyncio.Queue()
        for stored in list(self._objects.values()):
            queue.put_nowait(WatchEvent("ADDED", stored.copy()))
        self._watchers.append(queue)
        try:
            while True:
                event = await queue.get()
                if event is None:
                    return
                yield event
        finally:
            self._watchers.remove(queue)

    def close(self) -> None:
        """End every open watch stream."""
        for queue in self._watchers:
            queue.put_nowait(None)

    # Internals

    def _maybe_fail(self, operation: str) -> None:
        pending = self._faults.get(operation)
        if pending:
            raise pending.pop(0)

    def _next_version(self) -> str:
        self._version += 1
        return str(self._version)

    def _admit(self, policy: Policy) -> Policy:
        stored = policy.copy()
        stored.uid = str(uuid.uuid4())
        stored.resource_version = self._next_version()
        self._objects[stored.key] = stored
        return stored

    def _current_for_write(self, policy: Policy) -> Policy:
        current = self._objects.get(policy.key)
        if current is None:
            raise NotFoundError(f"policy {policy.key} not found", {"key": str(policy.key)})
        if policy.resource_version and policy.resource_version != current.resource_version:
            raise ConflictError(
                f"policy {policy.key} has been modified",
                {
                    "key": str(policy.key),
                    "expected": policy.resource_version,
                    "actual": current.resource_version,
                },
            )
        return current

    def _commit(self, operation: str, stored: Policy) -> Policy:
        stored.resource_version = self._next_version()
        self._objects[stored.key] = stored
        self.writes.append((operation, stored.key))
        self._emit("MODIFIED", stored)
        return stored.copy()

    def _emit(self, event_type: EventType, policy: Policy) -> None:
        for queue in self._watchers:
            queue.put_nowait(WatchEvent(event_type, policy.copy()))
