"""Reconcilers for the managed cluster lifecycle.

Reconcilers: ImportStatusReconciler, AutoImportReconciler,
NamespaceDeletionReconciler.
"""

from managedcluster_import.controllers.autoimport import AutoImportReconciler
from managedcluster_import.controllers.importstatus import ImportStatusReconciler
from managedcluster_import.controllers.namespacedeletion import NamespaceDeletionReconciler

__all__ = [
    "AutoImportReconciler",
    "ImportStatusReconciler",
    "NamespaceDeletionReconciler",
]
