"""Split-and-aggregate reconciliation of Policy roots and leafs."""

from policysplitter.reconcile.aggregator import Aggregator, aggregate_status
from policysplitter.reconcile.classifier import Leaf, Role, Root, classify
from policysplitter.reconcile.reconciler import PolicyReconciler
from policysplitter.reconcile.results import (
    AggregateResult,
    Outcome,
    ReconcileResult,
    SplitBranch,
    SplitResult,
)
from policysplitter.reconcile.splitter import NO_CLUSTERS_MESSAGE, Splitter, build_leaf

__all__ = [
    "Aggregator",
    "aggregate_status",
    "Leaf",
    "Role",
    "Root",
    "classify",
    "PolicyReconciler",
    "AggregateResult",
    "Outcome",
    "ReconcileResult",
    "SplitBranch",
    "SplitResult",
    "NO_CLUSTERS_MESSAGE",
    "Splitter",
    "build_leaf",
]
