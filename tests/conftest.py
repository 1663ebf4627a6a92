"""Root test configuration."""

import asyncio
import logging

import pytest
import structlog
from policysplitter.domain.models import (
    CLUSTER_LABEL,
    OWNED_BY_LABEL,
    CompliancePerClusterStatus,
    Placement,
    Policy,
    PolicyStatus,
)
from policysplitter.store.memory import InMemoryObjectStore


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def make_policy():
    """Build a Policy in the default namespace."""

    def _make(
        name="root",
        namespace="default",
        labels=None,
        spec=None,
        status=None,
    ):
        return Policy(
            name=name,
            namespace=namespace,
            labels=dict(labels or {}),
            spec=spec if spec is not None else {"remediationAction": "inform", "disabled": False},
            status=status or PolicyStatus(),
        )

    return _make


@pytest.fixture
def make_leaf(make_policy):
    """Build a leaf of ``owner`` reporting one placement and one cluster status."""

    def _make(owner, cluster, placement=None, compliant="Compliant", namespace="default"):
        return make_policy(
            name=f"{owner}--{cluster}",
            namespace=namespace,
            labels={CLUSTER_LABEL: cluster, OWNED_BY_LABEL: owner},
            status=PolicyStatus(
                placement=[Placement(placement_binding=f"binding-{cluster}", placement=placement or cluster)],
                status=[CompliancePerClusterStatus(cluster_name=cluster, cluster_namespace=cluster, compliant=compliant)],
            ),
        )

    return _make


@pytest.fixture
def store():
    return InMemoryObjectStore()


async def eventually(predicate, timeout=3.0, interval=0.01):
    """Poll an async predicate until it holds or ``timeout`` elapses."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if await predicate():
            return
        if loop.time() >= deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


@pytest.fixture
def wait_until():
    return eventually
