"""Auto-import reconciler.

Turns a caller-supplied ``auto-import-secret`` into an import attempt with a
bounded retry budget.

State kept on the secret itself:
- the current retry count (annotation, absent means 0)
- the keep flag (annotation): keep the secret after a successful import
- the restore marker (label): the secret is being replayed from a backup
- an optional per-secret retry budget (``autoImportRetry`` data key)

Transitions, decided from freshly read state on every reconcile:
- retries exhausted: delete the secret regardless of the keep flag
- attempt fails: bump the retry count by one and requeue, or delete the
  secret when the bump reaches the budget
- attempt succeeds: refresh the bootstrap access secret, move the import
  condition to Importing, delete the secret unless it is kept
- restore marker: only the bootstrap access secret is refreshed. The import
  manifests are not applied, the import condition is never touched, and an
  exhausted restore secret stays where it is.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from managedcluster_import.conditions import (
    find_condition,
    new_import_succeeded_condition,
    set_condition,
)
from managedcluster_import.config import ImportControllerConfig
from managedcluster_import.constants import (
    ANNOTATION_AUTO_IMPORT_CURRENT_RETRY,
    ANNOTATION_KEEPING_AUTO_IMPORT_SECRET,
    AUTO_IMPORT_RETRY_KEY,
    AUTO_IMPORT_SECRET_NAME,
    CONDITION_IMPORT_SUCCEEDED,
    LABEL_AUTO_IMPORT_RESTORE,
    LABEL_CLUSTER_IMPORT_SECRET,
    REASON_IMPORT_FAILED,
    REASON_IMPORTED,
    REASON_IMPORTING,
    REASON_WAIT_FOR_IMPORTING,
    auto_import_access_secret_name,
)
from managedcluster_import.errors import (
    ImportAttemptError,
    InvalidAccessError,
    NotFoundError,
)
from managedcluster_import.importers import ClusterImporter
from managedcluster_import.models import (
    ConditionStatus,
    DeployMode,
    ImportAccess,
    ManagedCluster,
    ObjectMeta,
    ReconcileResult,
    Secret,
)
from managedcluster_import.store.base import ClusterStore, retry_on_conflict

logger = logging.getLogger(__name__)

CONTROLLER_NAME = "autoimport-controller"

# Reasons the auto-import flow may move out of
_STARTABLE_REASONS = frozenset({REASON_WAIT_FOR_IMPORTING, REASON_IMPORT_FAILED})


def parse_access(secret: Secret) -> ImportAccess:
    """Read cluster access from an auto-import secret.

    Raises:
        InvalidAccessError: If the secret holds neither a kubeconfig nor a
            server and token pair.
    """
    data = secret.data
    kubeconfig = data.get("kubeconfig", "")
    if kubeconfig.strip():
        return ImportAccess(kubeconfig=kubeconfig)

    server = data.get("server", "").strip()
    token = data.get("token", "").strip()
    if server and token:
        return ImportAccess(
            server=server,
            token=token,
            ca_data=data.get("ca.crt") or None,
            insecure_skip_tls_verify=data.get("insecure-skip-tls-verify", "").lower() == "true",
        )

    raise InvalidAccessError(
        "auto-import-secret must contain 'kubeconfig', or both 'server' and 'token'"
    )


def current_retry(secret: Secret) -> int:
    """The retry count recorded on the secret (absent or malformed: 0)."""
    raw = secret.metadata.annotations.get(ANNOTATION_AUTO_IMPORT_CURRENT_RETRY)
    if raw is None:
        return 0
    try:
        value = int(raw)
    except ValueError:
        logger.warning(
            "Ignoring malformed retry annotation %r on %s/%s",
            raw, secret.metadata.namespace, secret.metadata.name,
        )
        return 0
    return max(value, 0)


def retry_budget(secret: Secret, default: int) -> int:
    """The maximum number of attempts for this secret."""
    raw = secret.data.get(AUTO_IMPORT_RETRY_KEY)
    if raw is None:
        return default
    try:
        value = int(raw.strip())
    except ValueError:
        return default
    return value if value >= 0 else default


def is_restore(secret: Secret) -> bool:
    return LABEL_AUTO_IMPORT_RESTORE in secret.metadata.labels


def is_kept(secret: Secret) -> bool:
    return ANNOTATION_KEEPING_AUTO_IMPORT_SECRET in secret.metadata.annotations


class AutoImportReconciler:
    """Drives the auto-import secret through its bounded-retry lifecycle."""

    name = CONTROLLER_NAME

    def __init__(
        self,
        store: ClusterStore,
        importer: ClusterImporter,
        config: ImportControllerConfig | None = None,
    ) -> None:
        self._store = store
        self._importer = importer
        self._config = config or ImportControllerConfig()

    def reconcile(self, cluster_name: str) -> ReconcileResult:
        try:
            secret = self._store.get_secret(cluster_name, AUTO_IMPORT_SECRET_NAME)
        except NotFoundError:
            return ReconcileResult(key=cluster_name, message="no auto-import secret")

        try:
            cluster = self._store.get_cluster(cluster_name)
        except NotFoundError:
            return ReconcileResult(key=cluster_name, message="cluster not found")

        if cluster.is_deleting:
            return ReconcileResult(key=cluster_name, message="cluster is deleting")

        if cluster.deploy_mode == DeployMode.HOSTED:
            return ReconcileResult(key=cluster_name, message="hosted cluster skipped")

        budget = retry_budget(secret, self._config.auto_import_max_retry)
        retry = current_retry(secret)
        if retry >= budget:
            return self._exhaust(
                cluster, secret, f"retry times exceeded ({retry}/{budget})",
            )

        if is_restore(secret):
            return self._restore(cluster, secret, budget)

        try:
            access = parse_access(secret)
            self._importer.apply(cluster_name, access)
        except NotFoundError as exc:
            # Import manifests not generated yet; not the secret's fault
            logger.debug("Import of %s not ready: %s", cluster_name, exc)
            return ReconcileResult(
                key=cluster_name,
                requeue=True,
                requeue_after=self._config.auto_import_requeue_seconds,
                message=f"import not ready: {exc}",
            )
        except (InvalidAccessError, ImportAttemptError) as exc:
            return self._record_failure(cluster, secret, budget, exc)

        self._write_access_secret(cluster_name, access)
        self._mark_importing(cluster)
        return self._finish(cluster_name, secret, "imported")

    def _restore(
        self, cluster: ManagedCluster, secret: Secret, budget: int,
    ) -> ReconcileResult:
        """Refresh the bootstrap access secret from a restored secret.

        A replayed backup must not start a new import cycle, so the
        importer is not called and the import condition is left alone.
        """
        try:
            access = parse_access(secret)
        except InvalidAccessError as exc:
            return self._record_failure(cluster, secret, budget, exc)

        self._write_access_secret(cluster.name, access)
        logger.info("Refreshed bootstrap access of %s from restored secret", cluster.name)
        return self._finish(cluster.name, secret, "bootstrap access restored")

    def _finish(self, cluster_name: str, secret: Secret, outcome: str) -> ReconcileResult:
        if is_kept(secret):
            return ReconcileResult(key=cluster_name, message=f"{outcome}, secret kept")

        self._delete_secret(cluster_name)
        return ReconcileResult(key=cluster_name, message=f"{outcome}, secret deleted")

    # --- Private: failure handling ---

    def _record_failure(
        self,
        cluster: ManagedCluster,
        secret: Secret,
        budget: int,
        error: Exception,
    ) -> ReconcileResult:
        cluster_name = cluster.name

        def bump() -> int:
            fresh = self._store.get_secret(cluster_name, AUTO_IMPORT_SECRET_NAME)
            next_retry = current_retry(fresh) + 1
            fresh.metadata.annotations[ANNOTATION_AUTO_IMPORT_CURRENT_RETRY] = str(next_retry)
            self._store.update_secret(fresh)
            return next_retry

        try:
            next_retry = retry_on_conflict(bump)
        except NotFoundError:
            return ReconcileResult(key=cluster_name, message="auto-import secret removed")

        logger.warning(
            "Auto-import of %s failed (attempt %d/%d): %s",
            cluster_name, next_retry, budget, error,
        )
        if next_retry >= budget:
            return self._exhaust(
                cluster, secret, f"retry times: {next_retry}/{budget}, error: {error}",
            )

        return ReconcileResult(
            key=cluster_name,
            requeue=True,
            requeue_after=self._config.auto_import_requeue_seconds,
            message=f"attempt {next_retry}/{budget} failed: {error}",
        )

    def _exhaust(
        self, cluster: ManagedCluster, secret: Secret, detail: str,
    ) -> ReconcileResult:
        """Delete a secret whose retries are spent, keep flag notwithstanding.

        The failure is recorded on the condition before the secret goes, so
        an interrupted reconcile finds the secret again and finishes.
        Restore secrets are neither deleted nor reflected in the condition;
        they belong to the backup tooling that replayed them.
        """
        if is_restore(secret):
            logger.warning(
                "Restored auto-import secret of %s gave up: %s", cluster.name, detail,
            )
            return ReconcileResult(key=cluster.name, message=f"restore gave up: {detail}")

        self._set_import_condition(
            cluster.name,
            ConditionStatus.FALSE,
            REASON_IMPORT_FAILED,
            f"Try to import managed cluster, {detail}",
            allowed=lambda reason: reason != REASON_IMPORTED,
        )

        self._delete_secret(cluster.name)
        logger.warning("Deleted auto-import secret of %s: %s", cluster.name, detail)
        return ReconcileResult(key=cluster.name, message=f"auto-import failed: {detail}")

    # --- Private: success handling ---

    def _write_access_secret(self, cluster_name: str, access: ImportAccess) -> None:
        """Create or refresh the bootstrap access secret (no-op when equal)."""
        name = auto_import_access_secret_name(cluster_name)
        desired = access.to_secret_data()

        def write() -> None:
            try:
                existing = self._store.get_secret(cluster_name, name)
            except NotFoundError:
                self._store.create_secret(Secret(
                    metadata=ObjectMeta(
                        name=name,
                        namespace=cluster_name,
                        labels={LABEL_CLUSTER_IMPORT_SECRET: ""},
                    ),
                    data=desired,
                ))
                logger.info("Created bootstrap access secret %s/%s", cluster_name, name)
                return

            if existing.data == desired and LABEL_CLUSTER_IMPORT_SECRET in existing.metadata.labels:
                return
            existing.data = desired
            existing.metadata.labels[LABEL_CLUSTER_IMPORT_SECRET] = ""
            self._store.update_secret(existing)
            logger.info("Updated bootstrap access secret %s/%s", cluster_name, name)

        retry_on_conflict(write)

    def _mark_importing(self, cluster: ManagedCluster) -> None:
        self._set_import_condition(
            cluster.name,
            ConditionStatus.FALSE,
            REASON_IMPORTING,
            f"Start to import managed cluster {cluster.name} with the auto-import secret",
            allowed=lambda reason: reason is None or reason in _STARTABLE_REASONS,
        )

    def _set_import_condition(
        self,
        cluster_name: str,
        status: ConditionStatus,
        reason: str,
        message: str,
        allowed: Callable[[str | None], bool],
    ) -> None:
        """Upsert the import condition on a fresh read of the cluster.

        ``allowed`` gets the current reason (``None`` when absent) and
        decides whether this transition may happen at all.
        """

        def write() -> None:
            cluster = self._store.get_cluster(cluster_name)
            current = find_condition(cluster.conditions, CONDITION_IMPORT_SUCCEEDED)
            if not allowed(current.reason if current is not None else None):
                return
            conditions = list(cluster.conditions)
            new = new_import_succeeded_condition(status, reason, message)
            if not set_condition(conditions, new):
                return
            cluster.conditions = conditions
            self._store.update_cluster_status(cluster)
            logger.info("Set import condition of %s to %s/%s", cluster_name, status, reason)

        try:
            retry_on_conflict(write)
        except NotFoundError:
            logger.debug("Cluster %s gone before its import condition was set", cluster_name)

    def _delete_secret(self, cluster_name: str) -> None:
        try:
            self._store.delete_secret(cluster_name, AUTO_IMPORT_SECRET_NAME)
        except NotFoundError:
            logger.debug("Auto-import secret of %s already gone", cluster_name)
