"""Integration tests for the watch-driven controller."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from policysplitter.config import Settings
from policysplitter.controller import Controller, WorkQueue
from policysplitter.core.errors import ConflictError, TransientStoreError
from policysplitter.domain.models import CompliancePerClusterStatus, ObjectKey, Placement, owned_by
from policysplitter.reconcile.reconciler import PolicyReconciler
from policysplitter.reconcile.results import ReconcileResult
from policysplitter.store.memory import InMemoryObjectStore


def _controller(store, workers=3):
    return Controller(
        store,
        PolicyReconciler(store),
        workers=workers,
        queue=WorkQueue(base_delay=0.01, max_delay=0.05),
    )


async def _report_compliance(store, leaf_name, cluster):
    leaf = await store.get(ObjectKey("default", leaf_name))
    leaf.status.placement = [Placement(placement=f"placement-{cluster}")]
    leaf.status.status = [CompliancePerClusterStatus(cluster_name=cluster, compliant="Compliant")]
    await store.update_status(leaf)


class TestController:
    def test_rejects_zero_workers(self, store):
        with pytest.raises(ValueError):
            Controller(store, PolicyReconciler(store), workers=0)

    def test_keeps_given_queue(self, store):
        queue = WorkQueue(base_delay=0.2)

        controller = Controller(store, PolicyReconciler(store), queue=queue)

        assert controller.queue is queue

    def test_from_settings(self, store):
        controller = Controller.from_settings(store, Settings(workers=4, requeue_base_delay=0.1))

        assert controller.workers == 4
        assert controller.queue.requeue_delay(ObjectKey("a", "b")) == 0.1

    @pytest.mark.asyncio
    async def test_split_and_aggregate_end_to_end(self, make_policy, wait_until):
        store = InMemoryObjectStore(clusters=["c1", "c2", "c3"])
        root = store.seed(make_policy())
        controller = _controller(store)
        task = asyncio.create_task(controller.run())

        async def leafs_created():
            return len(await store.list("default", owned_by("root"))) == 3

        await wait_until(leafs_created)

        for cluster in ("c3", "c1", "c2"):
            await _report_compliance(store, f"root--{cluster}", cluster)

        async def root_aggregated():
            status = store.peek(root.key).status
            return [s.cluster_name for s in status.status] == ["c1", "c2", "c3"]

        await wait_until(root_aggregated)
        assert [p.placement for p in store.peek(root.key).status.placement] == [
            "placement-c1",
            "placement-c2",
            "placement-c3",
        ]

        controller.stop()
        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_retryable_failures_are_requeued(self, make_policy, make_leaf, wait_until):
        store = InMemoryObjectStore(clusters=["c1", "c2"])
        store.fail_next("list_clusters", TransientStoreError("registry unavailable"))
        store.fail_next("list_clusters", TransientStoreError("registry unavailable"))
        store.seed(make_policy())
        controller = _controller(store, workers=1)
        task = asyncio.create_task(controller.run())

        async def leafs_created():
            return len(await store.list("default", owned_by("root"))) == 2

        await wait_until(leafs_created)

        controller.stop()
        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_conflicting_status_write_converges(self, make_policy, make_leaf, wait_until):
        store = InMemoryObjectStore()
        root = store.seed(make_policy())
        store.fail_next("update_status", ConflictError("modified"))
        store.seed(make_leaf("root", "a"))
        controller = _controller(store, workers=2)
        task = asyncio.create_task(controller.run())

        async def root_aggregated():
            return len(store.peek(root.key).status.status) == 1

        await wait_until(root_aggregated)

        controller.stop()
        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_stops_when_watch_closes(self, store):
        controller = _controller(store)
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.01)

        store.close()

        await asyncio.wait_for(task, timeout=2)

    @pytest.mark.asyncio
    async def test_one_key_is_never_reconciled_concurrently(self, make_policy):
        store = InMemoryObjectStore()
        root = store.seed(make_policy())
        active = 0
        overlaps = 0
        calls = 0

        async def slow_reconcile(key):
            nonlocal active, overlaps, calls
            active += 1
            calls += 1
            if active > 1:
                overlaps += 1
            await asyncio.sleep(0.01)
            active -= 1
            return ReconcileResult.done(key)

        reconciler = AsyncMock(spec=PolicyReconciler)
        reconciler.reconcile.side_effect = slow_reconcile
        controller = Controller(store, reconciler, workers=4)
        task = asyncio.create_task(controller.run())
        await asyncio.sleep(0.005)

        for _ in range(5):
            controller.queue.add(root.key)
            await asyncio.sleep(0.002)
        await asyncio.sleep(0.05)

        controller.stop()
        await asyncio.wait_for(task, timeout=2)
        assert calls >= 2
        assert overlaps == 0
