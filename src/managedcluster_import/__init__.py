"""managedcluster-import: lifecycle controllers for hub-managed clusters."""

__version__ = "0.1.0"

# Optional backend imports (don't crash if optional deps are missing)
import contextlib

from managedcluster_import.conditions import ConditionSet, find_condition, set_condition
from managedcluster_import.config import ImportControllerConfig, find_config, load_config
from managedcluster_import.controllers import (
    AutoImportReconciler,
    ImportStatusReconciler,
    NamespaceDeletionReconciler,
)
from managedcluster_import.errors import (
    ConflictError,
    ImportAttemptError,
    InvalidAccessError,
    NotFoundError,
    StoreError,
)
from managedcluster_import.importers import ClusterImporter, DryRunImporter, KubeImporter
from managedcluster_import.manager import (
    Controller,
    Dispatcher,
    build_controllers,
    build_dispatcher,
)
from managedcluster_import.models import (
    Condition,
    ConditionStatus,
    DeployMode,
    EventType,
    ImportAccess,
    ManagedCluster,
    ManifestWork,
    Namespace,
    ReconcileResult,
    ResourceKind,
    Secret,
)
from managedcluster_import.router import Router, WatchEvent, WatchMapping
from managedcluster_import.store.base import ClusterStore, retry_on_conflict
from managedcluster_import.store.memory import InMemoryClusterStore

with contextlib.suppress(ImportError):
    from managedcluster_import.store.kube import KubeClusterStore

__all__ = [
    "AutoImportReconciler",
    "ClusterImporter",
    "ClusterStore",
    "Condition",
    "ConditionSet",
    "ConditionStatus",
    "ConflictError",
    "Controller",
    "DeployMode",
    "Dispatcher",
    "DryRunImporter",
    "EventType",
    "ImportAccess",
    "ImportAttemptError",
    "ImportControllerConfig",
    "ImportStatusReconciler",
    "InMemoryClusterStore",
    "InvalidAccessError",
    "KubeClusterStore",
    "KubeImporter",
    "ManagedCluster",
    "ManifestWork",
    "Namespace",
    "NamespaceDeletionReconciler",
    "NotFoundError",
    "ReconcileResult",
    "ResourceKind",
    "Router",
    "Secret",
    "StoreError",
    "WatchEvent",
    "WatchMapping",
    "build_controllers",
    "build_dispatcher",
    "find_condition",
    "find_config",
    "load_config",
    "retry_on_conflict",
    "set_condition",
    "__version__",
]
