"""Tests for the in-memory cluster store and conflict retries."""

from __future__ import annotations

import pytest

from managedcluster_import.errors import ConflictError, NotFoundError
from managedcluster_import.models import (
    Condition,
    ConditionStatus,
    DependentRecord,
    ManagedCluster,
    ManifestWork,
    Namespace,
    ObjectMeta,
    ResourceKind,
    Secret,
)
from managedcluster_import.store.base import ClusterStore, retry_on_conflict
from managedcluster_import.store.memory import InMemoryClusterStore


def _secret(name: str = "s", data: dict[str, str] | None = None) -> Secret:
    return Secret(metadata=ObjectMeta(name=name, namespace="c1"), data=data or {"k": "v"})


class TestProtocol:
    def test_satisfies_protocol(self):
        assert isinstance(InMemoryClusterStore(), ClusterStore)


class TestReads:
    def test_missing_raises_not_found(self):
        store = InMemoryClusterStore()
        with pytest.raises(NotFoundError) as exc_info:
            store.get_secret("c1", "nope")
        assert exc_info.value.name == "nope"

    def test_reads_are_copies(self):
        store = InMemoryClusterStore()
        store.add(_secret())
        got = store.get_secret("c1", "s")
        got.data["k"] = "changed"
        assert store.get_secret("c1", "s").data == {"k": "v"}

    def test_add_assigns_resource_version(self):
        store = InMemoryClusterStore()
        stored = store.add(_secret())
        assert stored.metadata.resource_version is not None
        assert store.writes == []

    def test_list_works_filters_namespace_and_label(self):
        store = InMemoryClusterStore()
        store.add(ManifestWork(metadata=ObjectMeta(name="b", namespace="c1", labels={"l": ""})))
        store.add(ManifestWork(metadata=ObjectMeta(name="a", namespace="c1", labels={"l": ""})))
        store.add(ManifestWork(metadata=ObjectMeta(name="x", namespace="c1")))
        store.add(ManifestWork(metadata=ObjectMeta(name="y", namespace="c2", labels={"l": ""})))
        assert [w.metadata.name for w in store.list_manifest_works("c1", "l")] == ["a", "b"]

    def test_list_dependents_by_kind(self):
        store = InMemoryClusterStore()
        store.add(DependentRecord(
            kind=ResourceKind.INFRA_ENV, metadata=ObjectMeta(name="e", namespace="c1"),
        ))
        assert store.list_dependents(ResourceKind.CLUSTER_DEPLOYMENT, "c1") == []
        assert len(store.list_dependents(ResourceKind.INFRA_ENV, "c1")) == 1


class TestWrites:
    def test_create_then_conflict(self):
        store = InMemoryClusterStore()
        store.create_secret(_secret())
        with pytest.raises(ConflictError, match="already exists"):
            store.create_secret(_secret())
        assert store.writes == [("create", ResourceKind.SECRET, "c1/s")]

    def test_stale_update_rejected(self):
        store = InMemoryClusterStore()
        store.add(_secret())
        first = store.get_secret("c1", "s")
        second = store.get_secret("c1", "s")
        first.data = {"k": "1"}
        store.update_secret(first)
        second.data = {"k": "2"}
        with pytest.raises(ConflictError):
            store.update_secret(second)
        assert store.get_secret("c1", "s").data == {"k": "1"}

    def test_update_without_version_overwrites(self):
        store = InMemoryClusterStore()
        store.add(_secret())
        store.update_secret(_secret(data={"k": "new"}))
        assert store.get_secret("c1", "s").data == {"k": "new"}

    def test_update_missing_raises_not_found(self):
        with pytest.raises(NotFoundError):
            InMemoryClusterStore().update_secret(_secret())

    def test_status_update_only_touches_conditions(self):
        store = InMemoryClusterStore()
        store.add(ManagedCluster(metadata=ObjectMeta(name="c1", labels={"a": "b"})))
        cluster = store.get_cluster("c1")
        cluster.metadata.labels = {}
        cluster.conditions = [Condition(type="X", status=ConditionStatus.TRUE)]
        store.update_cluster_status(cluster)
        fresh = store.get_cluster("c1")
        assert fresh.metadata.labels == {"a": "b"}
        assert [c.type for c in fresh.conditions] == ["X"]
        assert store.writes == [("update_status", ResourceKind.MANAGED_CLUSTER, "c1")]

    def test_delete(self):
        store = InMemoryClusterStore()
        store.add(_secret())
        store.delete_secret("c1", "s")
        assert not store.exists(ResourceKind.SECRET, "s", "c1")
        with pytest.raises(NotFoundError):
            store.delete_secret("c1", "s")

    def test_delete_with_finalizers_marks_terminating(self):
        store = InMemoryClusterStore()
        store.add(Namespace(metadata=ObjectMeta(name="c1", finalizers=["kubernetes"])))
        store.delete_namespace("c1")
        store.delete_namespace("c1")
        assert store.get_namespace("c1").is_terminating
        assert store.writes == [("delete", ResourceKind.NAMESPACE, "c1")]

    def test_reset_writes(self):
        store = InMemoryClusterStore()
        store.create_secret(_secret())
        store.reset_writes()
        assert store.writes == []


class TestRetryOnConflict:
    def test_returns_first_success(self):
        assert retry_on_conflict(lambda: 42) == 42

    def test_retries_conflicts(self):
        calls = []

        def fn() -> str:
            calls.append(1)
            if len(calls) < 3:
                raise ConflictError("busy")
            return "ok"

        assert retry_on_conflict(fn) == "ok"
        assert len(calls) == 3

    def test_reraises_after_attempts(self):
        calls = []

        def fn() -> None:
            calls.append(1)
            raise ConflictError("busy")

        with pytest.raises(ConflictError):
            retry_on_conflict(fn, attempts=2)
        assert len(calls) == 2

    def test_single_attempt_reraises(self):
        calls = []

        def fn() -> None:
            calls.append(1)
            raise ConflictError("busy")

        with pytest.raises(ConflictError):
            retry_on_conflict(fn, attempts=1)
        assert len(calls) == 1

    def test_other_errors_not_retried(self):
        calls = []

        def fn() -> None:
            calls.append(1)
            raise NotFoundError("Secret", "s", "c1")

        with pytest.raises(NotFoundError):
            retry_on_conflict(fn)
        assert len(calls) == 1

    def test_invalid_attempts(self):
        with pytest.raises(ValueError, match="at least 1"):
            retry_on_conflict(lambda: None, attempts=0)
