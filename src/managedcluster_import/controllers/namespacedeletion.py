"""Cluster namespace deletion reconciler.

Acts as a barrier in front of the cluster namespace: the namespace is
deleted only once the managed cluster is gone (or being deleted) and no
cluster deployment, add-on or infra env record is left in it. Those
records belong to other controllers that still need the namespace to run
their own cleanup, so this reconciler never deletes them itself.
"""

from __future__ import annotations

import logging

from managedcluster_import.constants import LABEL_CLUSTER_NAME
from managedcluster_import.errors import NotFoundError
from managedcluster_import.models import DEPENDENT_KINDS, ReconcileResult
from managedcluster_import.store.base import ClusterStore

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "clusternamespacedeletion-controller"


class NamespaceDeletionReconciler:
    """Deletes a cluster namespace once nothing depends on it."""

    name = CONTROLLER_NAME

    def __init__(self, store: ClusterStore) -> None:
        self._store = store

    def reconcile(self, namespace: str) -> ReconcileResult:
        try:
            cluster = self._store.get_cluster(namespace)
        except NotFoundError:
            cluster = None

        if cluster is not None and not cluster.is_deleting:
            return ReconcileResult(key=namespace, message="cluster still exists")

        for kind in DEPENDENT_KINDS:
            remaining = self._store.list_dependents(kind, namespace)
            if remaining:
                names = ", ".join(sorted(r.metadata.name for r in remaining))
                logger.debug("Namespace %s still has %s: %s", namespace, kind, names)
                return ReconcileResult(
                    key=namespace, message=f"waiting for {kind} deletion: {names}",
                )

        try:
            ns = self._store.get_namespace(namespace)
        except NotFoundError:
            return ReconcileResult(key=namespace, message="namespace already deleted")

        if LABEL_CLUSTER_NAME not in ns.metadata.labels:
            return ReconcileResult(key=namespace, message="not a cluster namespace")

        if ns.is_terminating:
            return ReconcileResult(key=namespace, message="namespace is terminating")

        try:
            self._store.delete_namespace(namespace)
        except NotFoundError:
            return ReconcileResult(key=namespace, message="namespace already deleted")

        logger.info("Deleted cluster namespace %s", namespace)
        return ReconcileResult(key=namespace, message="namespace deleted")
