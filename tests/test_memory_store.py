"""Tests for the in-memory object store."""

import asyncio

import pytest
from policysplitter.core.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    TransientStoreError,
)
from policysplitter.domain.models import (
    CompliancePerClusterStatus,
    LabelSelector,
    ObjectKey,
    PolicyStatus,
)
from policysplitter.store.memory import InMemoryObjectStore


class TestCreateAndGet:
    @pytest.mark.asyncio
    async def test_create_assigns_identity(self, store, make_policy):
        created = await store.create(make_policy())

        assert created.uid
        assert created.resource_version
        assert await store.get(created.key) == created

    @pytest.mark.asyncio
    async def test_create_duplicate_raises_already_exists(self, store, make_policy):
        await store.create(make_policy())

        with pytest.raises(AlreadyExistsError):
            await store.create(make_policy())

    @pytest.mark.asyncio
    async def test_get_missing_raises_not_found(self, store):
        with pytest.raises(NotFoundError):
            await store.get(ObjectKey("default", "missing"))

    @pytest.mark.asyncio
    async def test_reads_are_copies(self, store, make_policy):
        created = await store.create(make_policy())

        fetched = await store.get(created.key)
        fetched.labels["mutated"] = "yes"

        assert "mutated" not in (await store.get(created.key)).labels


class TestList:
    @pytest.mark.asyncio
    async def test_filters_by_namespace_and_selector(self, store, make_policy):
        store.seed(make_policy(name="a", labels={"team": "x"}))
        store.seed(make_policy(name="b", labels={"team": "y"}))
        store.seed(make_policy(name="c", namespace="other", labels={"team": "x"}))

        selector = LabelSelector("team", "x")

        assert [p.name for p in await store.list("default", selector)] == ["a"]
        assert sorted(p.name for p in await store.list(None, selector)) == ["a", "c"]


class TestUpdate:
    @pytest.mark.asyncio
    async def test_stale_resource_version_conflicts(self, store, make_policy):
        original = store.seed(make_policy())
        first = original.copy()
        first.labels["a"] = "1"
        await store.update(first)

        stale = original.copy()
        stale.labels["b"] = "2"
        with pytest.raises(ConflictError):
            await store.update(stale)

    @pytest.mark.asyncio
    async def test_update_bumps_resource_version(self, store, make_policy):
        original = store.seed(make_policy())
        changed = original.copy()
        changed.labels["a"] = "1"

        updated = await store.update(changed)

        assert updated.resource_version != original.resource_version

    @pytest.mark.asyncio
    async def test_update_ignores_status(self, store, make_policy):
        original = store.seed(make_policy())
        changed = original.copy()
        changed.status = PolicyStatus(compliant="Compliant")

        updated = await store.update(changed)

        assert updated.status == PolicyStatus()

    @pytest.mark.asyncio
    async def test_update_status_ignores_metadata(self, store, make_policy):
        original = store.seed(make_policy())
        changed = original.copy()
        changed.labels["ignored"] = "yes"
        changed.status.status = [CompliancePerClusterStatus(cluster_name="c1")]

        updated = await store.update_status(changed)

        assert "ignored" not in updated.labels
        assert updated.status.status[0].cluster_name == "c1"

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self, store, make_policy):
        with pytest.raises(NotFoundError):
            await store.update_status(make_policy(name="missing"))


class TestFaultsAndDeletion:
    @pytest.mark.asyncio
    async def test_fail_next_applies_once(self, store):
        store.fail_next("list_clusters", TransientStoreError("down"))

        with pytest.raises(TransientStoreError):
            await store.list_clusters()
        assert await store.list_clusters() == []

    @pytest.mark.asyncio
    async def test_delete_cascades_through_owner_references(self, store, make_policy):
        root = store.seed(make_policy())
        child = make_policy(name="child")
        child.owner_references = [root.owner_reference()]
        child = store.seed(child)
        grandchild = make_policy(name="grandchild")
        grandchild.owner_references = [child.owner_reference()]
        store.seed(grandchild)
        store.seed(make_policy(name="unrelated"))

        await store.delete(root.key)

        assert [p.name for p in store.objects()] == ["unrelated"]

    def test_clusters_registry(self):
        store = InMemoryObjectStore(clusters=["c1"])
        store.add_cluster("c2")
        store.remove_cluster("c1")

        assert [c.name for c in asyncio.run(store.list_clusters())] == ["c2"]


class TestWatch:
    @pytest.mark.asyncio
    async def test_replays_existing_then_streams_changes(self, store, make_policy):
        existing = store.seed(make_policy(name="existing"))
        events = []

        async def consume():
            async for event in store.watch():
                events.append((event.type, event.key.name))

        task = asyncio.create_task(consume())
        await asyncio.sleep(0)

        created = await store.create(make_policy(name="new"))
        await store.update_status(created)
        await store.delete(existing.key)
        store.close()
        await asyncio.wait_for(task, timeout=1)

        assert events == [
            ("ADDED", "existing"),
            ("ADDED", "new"),
            ("MODIFIED", "new"),
            ("DELETED", "existing"),
        ]
