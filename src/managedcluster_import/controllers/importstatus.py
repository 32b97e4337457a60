"""Import status reconciler.

Reflects the availability of a cluster's klusterlet manifest works in its
``ManagedClusterImportSucceeded`` condition. The reconciler only acts while
an import is in flight (reason ``ManagedClusterImporting``); every other
state belongs to some other writer and is left alone.

Because it only runs while the condition is already ``False/Importing``,
the waiting messages it computes (no works, too few works, the names of
unavailable works) never change status or reason. The condition upsert
treats a message-only difference as no change, so those messages appear in
the logs and in the reconcile result but are not written to the cluster.
The only write this reconciler issues is the move to ``True/Imported``.
"""

from __future__ import annotations

import logging

from managedcluster_import.conditions import (
    find_condition,
    new_import_succeeded_condition,
    set_condition,
)
from managedcluster_import.config import ImportControllerConfig
from managedcluster_import.constants import (
    CONDITION_IMPORT_SUCCEEDED,
    LABEL_KLUSTERLET_WORKS,
    REASON_IMPORTED,
    REASON_IMPORTING,
)
from managedcluster_import.errors import NotFoundError
from managedcluster_import.models import (
    ConditionStatus,
    DeployMode,
    ManifestWork,
    ReconcileResult,
)
from managedcluster_import.store.base import ClusterStore

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "importstatus-controller"


class ImportStatusReconciler:
    """Aggregates klusterlet work availability into the import condition."""

    name = CONTROLLER_NAME

    def __init__(
        self,
        store: ClusterStore,
        config: ImportControllerConfig | None = None,
    ) -> None:
        self._store = store
        self._config = config or ImportControllerConfig()

    def reconcile(self, cluster_name: str) -> ReconcileResult:
        try:
            cluster = self._store.get_cluster(cluster_name)
        except NotFoundError:
            return ReconcileResult(key=cluster_name, message="cluster not found")

        if cluster.deploy_mode == DeployMode.HOSTED:
            return ReconcileResult(key=cluster_name, message="hosted cluster skipped")

        if cluster.is_deleting:
            return ReconcileResult(key=cluster_name, message="cluster is deleting")

        current = find_condition(cluster.conditions, CONDITION_IMPORT_SUCCEEDED)
        if current is None:
            return ReconcileResult(key=cluster_name, message="import condition absent")
        if current.reason != REASON_IMPORTING:
            return ReconcileResult(
                key=cluster_name, message=f"import not in progress ({current.reason})",
            )

        works = self._store.list_manifest_works(cluster_name, LABEL_KLUSTERLET_WORKS)
        status, reason, message = self._evaluate(cluster_name, works)

        conditions = list(cluster.conditions)
        changed = set_condition(
            conditions, new_import_succeeded_condition(status, reason, message),
        )
        if not changed:
            logger.debug("Import condition of %s unchanged (%s)", cluster_name, reason)
            return ReconcileResult(key=cluster_name, message=message)

        cluster.conditions = conditions
        self._store.update_cluster_status(cluster)
        logger.info(
            "Set %s of cluster %s to %s/%s: %s",
            CONDITION_IMPORT_SUCCEEDED, cluster_name, status, reason, message,
        )
        return ReconcileResult(key=cluster_name, message=message)

    def _evaluate(
        self, cluster_name: str, works: list[ManifestWork],
    ) -> tuple[ConditionStatus, str, str]:
        """Decide the condition from the labelled works."""
        if not works:
            return (
                ConditionStatus.FALSE,
                REASON_IMPORTING,
                "Wait for importing: no klusterlet works found",
            )

        expected = self._config.expected_klusterlet_works
        if len(works) < expected:
            return (
                ConditionStatus.FALSE,
                REASON_IMPORTING,
                f"Wait for importing: {len(works)} of {expected} klusterlet works created",
            )

        pending = sorted(w.metadata.name for w in works if not w.is_available)
        if pending:
            return (
                ConditionStatus.FALSE,
                REASON_IMPORTING,
                f"Wait for importing: klusterlet works not available: {', '.join(pending)}",
            )

        return (
            ConditionStatus.TRUE,
            REASON_IMPORTED,
            f"Import succeeded: all klusterlet works of {cluster_name} are available",
        )
