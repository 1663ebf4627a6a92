"""Result types for policy reconciliation."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from policysplitter.domain.models import ObjectKey


class Outcome(Enum):
    """Completion signal returned to the controller runtime."""

    DONE = "done"  # Settled, do not requeue
    RETRY = "retry"  # Requeue with backoff
    FAILED = "failed"  # Terminal, retrying cannot help


class SplitBranch(Enum):
    """Which fan-out path the splitter took."""

    NO_CLUSTERS = "no_clusters"
    SINGLE_CLUSTER = "single_cluster"
    MULTI_CLUSTER = "multi_cluster"


@dataclass
class SplitResult:
    """Result of fanning a root out to its target clusters."""

    root: ObjectKey
    branch: SplitBranch
    clusters: List[str] = field(default_factory=list)
    created: List[str] = field(default_factory=list)
    existing: List[str] = field(default_factory=list)
    updated: bool = False

    @property
    def leaf_count(self) -> int:
        """Leafs present after the split, whether created now or earlier."""
        return len(self.created) + len(self.existing)


@dataclass
class AggregateResult:
    """Result of recomputing a root's status from its leafs."""

    root: ObjectKey
    siblings: List[str] = field(default_factory=list)
    written: bool = False


@dataclass
class ReconcileResult:
    """Outcome of a single reconcile invocation."""

    key: ObjectKey
    outcome: Outcome
    reason: str = ""
    error: Exception | None = None

    @property
    def requeue(self) -> bool:
        return self.outcome is Outcome.RETRY

    @classmethod
    def done(cls, key: ObjectKey, reason: str = "") -> ReconcileResult:
        return cls(key=key, outcome=Outcome.DONE, reason=reason)

    @classmethod
    def retry(cls, key: ObjectKey, error: Exception) -> ReconcileResult:
        return cls(key=key, outcome=Outcome.RETRY, reason=str(error), error=error)

    @classmethod
    def failed(cls, key: ObjectKey, error: Exception) -> ReconcileResult:
        return cls(key=key, outcome=Outcome.FAILED, reason=str(error), error=error)
