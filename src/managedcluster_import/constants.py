"""Well-known names, labels, annotations and condition values.

Relationships between a managed cluster and its resources are established
purely by these conventions: the cluster namespace is named after the
cluster, and dependent records are found by label or fixed name.
"""

from __future__ import annotations

# --- Auto-import secret ---

AUTO_IMPORT_SECRET_NAME = "auto-import-secret"  # noqa: S105

# Secret data key that overrides the retry budget for one secret
AUTO_IMPORT_RETRY_KEY = "autoImportRetry"

ANNOTATION_AUTO_IMPORT_CURRENT_RETRY = (
    "managedcluster-import-controller.open-cluster-management.io/current-retry"
)
ANNOTATION_KEEPING_AUTO_IMPORT_SECRET = (
    "managedcluster-import-controller.open-cluster-management.io/keeping-auto-import-secret"
)
LABEL_AUTO_IMPORT_RESTORE = "cluster.open-cluster-management.io/restore-auto-import-secret"

# Bootstrap access secret written for the deployment applier
AUTO_IMPORT_ACCESS_SECRET_SUFFIX = "auto-import-access"
LABEL_CLUSTER_IMPORT_SECRET = (
    "managedcluster-import-controller.open-cluster-management.io/import-secret"
)

IMPORT_SECRET_SUFFIX = "import"
IMPORT_SECRET_IMPORT_YAML_KEY = "import.yaml"

# --- Klusterlet works ---

LABEL_KLUSTERLET_WORKS = "import.open-cluster-management.io/klusterlet-works"
WORK_CONDITION_AVAILABLE = "Available"

# --- Deploy mode ---

ANNOTATION_KLUSTERLET_DEPLOY_MODE = "import.open-cluster-management.io/klusterlet-deploy-mode"
DEPLOY_MODE_HOSTED = "Hosted"

# --- Cluster namespace ---

LABEL_CLUSTER_NAME = "open-cluster-management.io/cluster-name"

# --- Import condition ---

CONDITION_IMPORT_SUCCEEDED = "ManagedClusterImportSucceeded"

REASON_WAIT_FOR_IMPORTING = "ManagedClusterWaitForImporting"
REASON_IMPORTING = "ManagedClusterImporting"
REASON_IMPORT_FAILED = "ManagedClusterImportFailed"
REASON_IMPORTED = "ManagedClusterImported"


def auto_import_access_secret_name(cluster_name: str) -> str:
    return f"{cluster_name}-{AUTO_IMPORT_ACCESS_SECRET_SUFFIX}"


def import_secret_name(cluster_name: str) -> str:
    return f"{cluster_name}-{IMPORT_SECRET_SUFFIX}"
