"""
Policy resource models.

Dataclass views of the Policy custom resource and the cluster registry
entries it is fanned out to. Every model round-trips to the Kubernetes
object dict shape (camelCase keys) so the store implementations can hand
them to the API server unchanged.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

POLICY_API_VERSION = "policy.open-cluster-management.io/v1"
POLICY_KIND = "Policy"

# Protocol labels
CLUSTER_LABEL = "kcp.dev/cluster"
OWNED_BY_LABEL = "kcp.dev/owned-by"

# Set on a root while its leafs are being created, cleared once all exist
SPLIT_PENDING_ANNOTATION = "kcp.dev/split-pending"

LEAF_NAME_SEPARATOR = "--"


def leaf_name(root_name: str, cluster_name: str) -> str:
    """Deterministic name of the leaf placing ``root_name`` on ``cluster_name``."""
    return f"{root_name}{LEAF_NAME_SEPARATOR}{cluster_name}"


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True, order=True)
class ObjectKey:
    """Namespace-scoped identity of a Policy."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, value: str) -> ObjectKey:
        """Parse ``namespace/name``."""
        namespace, sep, name = value.partition("/")
        if not sep or not namespace or not name or "/" in name:
            raise ValueError(f"expected NAMESPACE/NAME, got {value!r}")
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class LabelSelector:
    """Single ``key=value`` equality selector."""

    key: str
    value: str

    def matches(self, labels: dict[str, str] | None) -> bool:
        return (labels or {}).get(self.key) == self.value

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


def owned_by(root_name: str) -> LabelSelector:
    """Selector matching every leaf owned by ``root_name``."""
    return LabelSelector(OWNED_BY_LABEL, root_name)


@dataclass
class OwnerReference:
    """Back-link consumed by the garbage collector for cascade deletion."""

    api_version: str
    kind: str
    uid: str
    name: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "uid": self.uid,
            "name": self.name,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OwnerReference:
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            uid=data.get("uid", ""),
            name=data.get("name", ""),
        )


@dataclass
class Placement:
    """Placement record reported on a policy's status."""

    placement_binding: str | None = None
    placement_rule: str | None = None
    placement: str | None = None
    policy_set: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "placementBinding": self.placement_binding,
                "placementRule": self.placement_rule,
                "placement": self.placement,
                "policySet": self.policy_set,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Placement:
        return cls(
            placement_binding=data.get("placementBinding"),
            placement_rule=data.get("placementRule"),
            placement=data.get("placement"),
            policy_set=data.get("policySet"),
        )


@dataclass
class CompliancePerClusterStatus:
    """Compliance state of the policy on one cluster."""

    cluster_name: str | None = None
    cluster_namespace: str | None = None
    compliant: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "clustername": self.cluster_name,
                "clusternamespace": self.cluster_namespace,
                "compliant": self.compliant,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompliancePerClusterStatus:
        return cls(
            cluster_name=data.get("clustername"),
            cluster_namespace=data.get("clusternamespace"),
            compliant=data.get("compliant"),
        )


@dataclass
class ComplianceHistory:
    message: str
    last_timestamp: str | None = None
    event_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none(
            {
                "message": self.message,
                "lastTimestamp": self.last_timestamp,
                "eventName": self.event_name,
            }
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComplianceHistory:
        return cls(
            message=data.get("message", ""),
            last_timestamp=data.get("lastTimestamp"),
            event_name=data.get("eventName"),
        )


@dataclass
class DetailsPerTemplate:
    history: list[ComplianceHistory] = field(default_factory=list)
    compliant: str | None = None
    template_meta: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"history": [h.to_dict() for h in self.history]}
        if self.compliant is not None:
            data["compliant"] = self.compliant
        if self.template_meta:
            data["templateMeta"] = copy.deepcopy(self.template_meta)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DetailsPerTemplate:
        return cls(
            history=[ComplianceHistory.from_dict(h) for h in data.get("history") or []],
            compliant=data.get("compliant"),
            template_meta=copy.deepcopy(data.get("templateMeta") or {}),
        )


@dataclass
class PolicyStatus:
    """Status subresource of a Policy."""

    placement: list[Placement] = field(default_factory=list)
    status: list[CompliancePerClusterStatus] = field(default_factory=list)
    details: list[DetailsPerTemplate] = field(default_factory=list)
    compliant: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.placement:
            data["placement"] = [p.to_dict() for p in self.placement]
        if self.status:
            data["status"] = [s.to_dict() for s in self.status]
        if self.details:
            data["details"] = [d.to_dict() for d in self.details]
        if self.compliant is not None:
            data["compliant"] = self.compliant
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PolicyStatus:
        data = data or {}
        return cls(
            placement=[Placement.from_dict(p) for p in data.get("placement") or []],
            status=[CompliancePerClusterStatus.from_dict(s) for s in data.get("status") or []],
            details=[DetailsPerTemplate.from_dict(d) for d in data.get("details") or []],
            compliant=data.get("compliant"),
        )


@dataclass
class Policy:
    """
    The managed Policy resource.

    ``spec`` is opaque to the controller and copied verbatim to leafs.
    ``metadata_extra`` carries metadata fields the controller does not model
    (finalizers, generation, managedFields, ...) so that a read-modify-update
    cycle does not strip them.
    """

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    owner_references: list[OwnerReference] = field(default_factory=list)
    uid: str = ""
    resource_version: str = ""
    spec: dict[str, Any] = field(default_factory=dict)
    status: PolicyStatus = field(default_factory=PolicyStatus)
    metadata_extra: dict[str, Any] = field(default_factory=dict)
    api_version: str = POLICY_API_VERSION
    kind: str = POLICY_KIND

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    def copy(self) -> Policy:
        """Deep copy, safe to mutate."""
        return copy.deepcopy(self)

    def owner_reference(self) -> OwnerReference:
        """Owner reference pointing at this policy."""
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            uid=self.uid,
            name=self.name,
        )

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = copy.deepcopy(self.metadata_extra)
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        if self.labels:
            metadata["labels"] = dict(self.labels)
        if self.annotations:
            metadata["annotations"] = dict(self.annotations)
        if self.owner_references:
            metadata["ownerReferences"] = [ref.to_dict() for ref in self.owner_references]
        if self.uid:
            metadata["uid"] = self.uid
        if self.resource_version:
            metadata["resourceVersion"] = self.resource_version

        data: dict[str, Any] = {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": copy.deepcopy(self.spec),
        }
        status = self.status.to_dict()
        if status:
            data["status"] = status
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Policy:
        metadata = copy.deepcopy(data.get("metadata") or {})
        name = metadata.pop("name", "")
        namespace = metadata.pop("namespace", "")
        labels = metadata.pop("labels", None) or {}
        annotations = metadata.pop("annotations", None) or {}
        refs = metadata.pop("ownerReferences", None) or []
        uid = metadata.pop("uid", "") or ""
        resource_version = metadata.pop("resourceVersion", "") or ""

        return cls(
            name=name,
            namespace=namespace,
            labels=dict(labels),
            annotations=dict(annotations),
            owner_references=[OwnerReference.from_dict(ref) for ref in refs],
            uid=uid,
            resource_version=resource_version,
            spec=copy.deepcopy(data.get("spec") or {}),
            status=PolicyStatus.from_dict(data.get("status")),
            metadata_extra=metadata,
            api_version=data.get("apiVersion", POLICY_API_VERSION),
            kind=data.get("kind", POLICY_KIND),
        )


@dataclass(frozen=True)
class Cluster:
    """Target cluster registry entry. Not owned by this controller."""

    name: str
    namespace: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Cluster:
        metadata = data.get("metadata") or {}
        return cls(name=metadata.get("name", ""), namespace=metadata.get("namespace"))
