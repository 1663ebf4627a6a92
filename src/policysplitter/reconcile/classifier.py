"""
Root/leaf classification.

A policy without a cluster assignment is a root; anything assigned to a
cluster is a leaf whose owned-by label names its root.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from policysplitter.domain.models import CLUSTER_LABEL, OWNED_BY_LABEL, Policy


@dataclass(frozen=True)
class Root:
    """The source of truth for spec and target of aggregated status."""


@dataclass(frozen=True)
class Leaf:
    """
    Per-cluster copy of a root.

    ``owner_name`` is empty when the owned-by label is missing or blank;
    callers must treat that as a data problem rather than aggregate on it.
    """

    owner_name: str
    cluster_name: str


Role = Union[Root, Leaf]


def classify(policy: Policy) -> Role:
    labels = policy.labels or {}
    cluster_name = labels.get(CLUSTER_LABEL, "")
    if not cluster_name:
        return Root()
    return Leaf(owner_name=labels.get(OWNED_BY_LABEL, ""), cluster_name=cluster_name)
