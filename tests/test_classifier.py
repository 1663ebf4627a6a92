"""Tests for root/leaf classification."""

from policysplitter.domain.models import CLUSTER_LABEL, OWNED_BY_LABEL
from policysplitter.reconcile.classifier import Leaf, Root, classify


class TestClassify:
    def test_no_labels_is_root(self, make_policy):
        assert classify(make_policy(labels={})) == Root()

    def test_unrelated_labels_is_root(self, make_policy):
        assert classify(make_policy(labels={"app": "web"})) == Root()

    def test_empty_cluster_label_is_root(self, make_policy):
        policy = make_policy(labels={CLUSTER_LABEL: "", OWNED_BY_LABEL: "root"})

        assert classify(policy) == Root()

    def test_cluster_label_is_leaf_with_owner(self, make_policy):
        policy = make_policy(labels={CLUSTER_LABEL: "c1", OWNED_BY_LABEL: "root"})

        assert classify(policy) == Leaf(owner_name="root", cluster_name="c1")

    def test_leaf_without_owned_by_has_empty_owner(self, make_policy):
        """Malformed leafs are still leafs; the owner name is left for callers to reject."""
        role = classify(make_policy(labels={CLUSTER_LABEL: "c1"}))

        assert isinstance(role, Leaf)
        assert role.owner_name == ""

    def test_classify_has_no_side_effects(self, make_policy):
        policy = make_policy(labels={CLUSTER_LABEL: "c1", OWNED_BY_LABEL: "root"})
        before = policy.copy()

        classify(policy)

        assert policy == before
