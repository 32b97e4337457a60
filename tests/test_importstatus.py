"""Tests for the import status reconciler."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from managedcluster_import.conditions import find_condition, new_import_succeeded_condition
from managedcluster_import.config import ImportControllerConfig
from managedcluster_import.constants import (
    ANNOTATION_KLUSTERLET_DEPLOY_MODE,
    CONDITION_IMPORT_SUCCEEDED,
    DEPLOY_MODE_HOSTED,
    LABEL_KLUSTERLET_WORKS,
    REASON_IMPORT_FAILED,
    REASON_IMPORTED,
    REASON_IMPORTING,
    REASON_WAIT_FOR_IMPORTING,
)
from managedcluster_import.controllers.importstatus import ImportStatusReconciler
from managedcluster_import.errors import StoreError
from managedcluster_import.models import (
    Condition,
    ConditionStatus,
    ManagedCluster,
    ManifestWork,
    ObjectMeta,
)
from managedcluster_import.store.memory import InMemoryClusterStore

CLUSTER = "test"


def _make_cluster(
    reason: str | None = REASON_IMPORTING,
    hosted: bool = False,
    deleting: bool = False,
) -> ManagedCluster:
    annotations = {ANNOTATION_KLUSTERLET_DEPLOY_MODE: DEPLOY_MODE_HOSTED} if hosted else {}
    conditions = []
    if reason is not None:
        status = ConditionStatus.TRUE if reason == REASON_IMPORTED else ConditionStatus.FALSE
        conditions.append(new_import_succeeded_condition(status, reason, "test"))
    return ManagedCluster(
        metadata=ObjectMeta(
            name=CLUSTER,
            annotations=annotations,
            deletion_timestamp=datetime.now(tz=UTC) if deleting else None,
        ),
        conditions=conditions,
    )


def _make_work(name: str, available: bool | None, labelled: bool = True) -> ManifestWork:
    conditions = []
    if available is not None:
        status = ConditionStatus.TRUE if available else ConditionStatus.FALSE
        conditions.append(Condition(type="Available", status=status))
    return ManifestWork(
        metadata=ObjectMeta(
            name=name,
            namespace=CLUSTER,
            labels={LABEL_KLUSTERLET_WORKS: "true"} if labelled else {},
        ),
        conditions=conditions,
    )


def _make_store(cluster: ManagedCluster | None, *works: ManifestWork) -> InMemoryClusterStore:
    store = InMemoryClusterStore()
    if cluster is not None:
        store.add(cluster)
    for work in works:
        store.add(work)
    return store


def _import_condition(store: InMemoryClusterStore) -> Condition:
    cond = find_condition(store.get_cluster(CLUSTER).conditions, CONDITION_IMPORT_SUCCEEDED)
    assert cond is not None
    return cond


class TestSkippedClusters:
    def test_no_cluster(self):
        store = _make_store(None)
        result = ImportStatusReconciler(store).reconcile(CLUSTER)
        assert result.requeue is False
        assert store.writes == []

    def test_hosted_cluster_never_written(self):
        store = _make_store(
            _make_cluster(hosted=True),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert store.writes == []
        assert _import_condition(store).reason == REASON_IMPORTING

    def test_deleting_cluster_never_written(self):
        store = _make_store(
            _make_cluster(deleting=True),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert store.writes == []

    def test_absent_condition_is_preserved(self):
        store = _make_store(
            _make_cluster(reason=None),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert store.writes == []
        assert store.get_cluster(CLUSTER).conditions == []

    @pytest.mark.parametrize("reason", [
        REASON_WAIT_FOR_IMPORTING,
        REASON_IMPORT_FAILED,
        REASON_IMPORTED,
    ])
    def test_not_importing_left_alone(self, reason: str):
        store = _make_store(
            _make_cluster(reason=reason),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert store.writes == []
        assert _import_condition(store).reason == reason


class TestAggregation:
    def test_no_works(self):
        store = _make_store(_make_cluster())
        ImportStatusReconciler(store).reconcile(CLUSTER)
        cond = _import_condition(store)
        assert cond.status == ConditionStatus.FALSE
        assert cond.reason == REASON_IMPORTING
        # Reason unchanged, so nothing is written
        assert store.writes == []

    def test_none_of_two_available(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", None),
            _make_work(f"{CLUSTER}-klusterlet", False),
        )
        result = ImportStatusReconciler(store).reconcile(CLUSTER)
        cond = _import_condition(store)
        assert cond.status == ConditionStatus.FALSE
        assert cond.reason == REASON_IMPORTING
        assert "test-klusterlet" in result.message
        assert "test-klusterlet-crds" in result.message

    def test_one_of_two_available(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", False),
        )
        result = ImportStatusReconciler(store).reconcile(CLUSTER)
        cond = _import_condition(store)
        assert cond.status == ConditionStatus.FALSE
        assert cond.reason == REASON_IMPORTING
        assert "test-klusterlet" in result.message
        assert "crds" not in result.message

    def test_waiting_message_not_written(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", False),
        )
        result = ImportStatusReconciler(store).reconcile(CLUSTER)
        assert "test-klusterlet" in result.message
        assert _import_condition(store).message == "test"
        assert store.writes == []

    def test_missing_available_condition_counts_as_unavailable(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", None),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert _import_condition(store).reason == REASON_IMPORTING

    def test_both_available(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        cond = _import_condition(store)
        assert cond.status == ConditionStatus.TRUE
        assert cond.reason == REASON_IMPORTED
        assert cond.last_transition_time is not None
        assert len(store.writes) == 1

    def test_only_one_work_created(self):
        store = _make_store(_make_cluster(), _make_work(f"{CLUSTER}-klusterlet", True))
        result = ImportStatusReconciler(store).reconcile(CLUSTER)
        assert _import_condition(store).reason == REASON_IMPORTING
        assert "1 of 2" in result.message

    def test_unlabelled_works_not_counted(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet", True),
            _make_work("some-addon", True, labelled=False),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert _import_condition(store).reason == REASON_IMPORTING

    def test_extra_labelled_work_does_not_block(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
            _make_work(f"{CLUSTER}-klusterlet-extra", True),
        )
        ImportStatusReconciler(store).reconcile(CLUSTER)
        assert _import_condition(store).reason == REASON_IMPORTED

    def test_expected_work_count_is_configurable(self):
        store = _make_store(_make_cluster(), _make_work(f"{CLUSTER}-klusterlet", True))
        config = ImportControllerConfig(expected_klusterlet_works=1)
        ImportStatusReconciler(store, config).reconcile(CLUSTER)
        assert _import_condition(store).reason == REASON_IMPORTED

    def test_second_reconcile_writes_nothing(self):
        store = _make_store(
            _make_cluster(),
            _make_work(f"{CLUSTER}-klusterlet-crds", True),
            _make_work(f"{CLUSTER}-klusterlet", True),
        )
        reconciler = ImportStatusReconciler(store)
        reconciler.reconcile(CLUSTER)
        store.reset_writes()
        reconciler.reconcile(CLUSTER)
        assert store.writes == []


class TestFailures:
    def test_list_error_propagates_without_write(self):
        store = _make_store(_make_cluster())

        def broken(namespace: str, label: str) -> list[ManifestWork]:
            raise StoreError("timeout")

        store.list_manifest_works = broken  # type: ignore[method-assign]
        with pytest.raises(StoreError):
            ImportStatusReconciler(store).reconcile(CLUSTER)
        assert store.writes == []
