"""Policy and cluster models shared by the store, reconciler and CLI."""

from policysplitter.domain.models import (
    CLUSTER_LABEL,
    OWNED_BY_LABEL,
    POLICY_API_VERSION,
    POLICY_KIND,
    SPLIT_PENDING_ANNOTATION,
    Cluster,
    CompliancePerClusterStatus,
    ComplianceHistory,
    DetailsPerTemplate,
    LabelSelector,
    ObjectKey,
    OwnerReference,
    Placement,
    Policy,
    PolicyStatus,
    leaf_name,
    owned_by,
)

__all__ = [
    "CLUSTER_LABEL",
    "OWNED_BY_LABEL",
    "POLICY_API_VERSION",
    "POLICY_KIND",
    "SPLIT_PENDING_ANNOTATION",
    "Cluster",
    "CompliancePerClusterStatus",
    "ComplianceHistory",
    "DetailsPerTemplate",
    "LabelSelector",
    "ObjectKey",
    "OwnerReference",
    "Placement",
    "Policy",
    "PolicyStatus",
    "leaf_name",
    "owned_by",
]
