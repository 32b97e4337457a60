"""Cluster store protocol.

The store is the only way the controllers touch hub state. Any object with
these methods satisfies the protocol, no inheritance required. Reads raise
``NotFoundError`` for missing objects; updates are conditional on the
object's ``resource_version`` and raise ``ConflictError`` when it is stale.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Protocol, TypeVar, runtime_checkable

from managedcluster_import.errors import ConflictError
from managedcluster_import.models import (
    DependentRecord,
    ManagedCluster,
    ManifestWork,
    Namespace,
    ResourceKind,
    Secret,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONFLICT_RETRIES = 5


@runtime_checkable
class ClusterStore(Protocol):
    """Protocol for hub storage backends."""

    def get_cluster(self, name: str) -> ManagedCluster: ...

    def update_cluster_status(self, cluster: ManagedCluster) -> ManagedCluster:
        """Write ``cluster.conditions`` through the status subresource."""
        ...

    def list_manifest_works(self, namespace: str, label: str) -> list[ManifestWork]:
        """List works in ``namespace`` that carry the ``label`` key."""
        ...

    def get_secret(self, namespace: str, name: str) -> Secret: ...

    def create_secret(self, secret: Secret) -> Secret: ...

    def update_secret(self, secret: Secret) -> Secret: ...

    def delete_secret(self, namespace: str, name: str) -> None: ...

    def get_namespace(self, name: str) -> Namespace: ...

    def delete_namespace(self, name: str) -> None: ...

    def list_dependents(self, kind: ResourceKind, namespace: str) -> list[DependentRecord]: ...


def retry_on_conflict(
    fn: Callable[[], T],
    attempts: int = DEFAULT_CONFLICT_RETRIES,
) -> T:
    """Call ``fn`` until it stops raising ``ConflictError``.

    ``fn`` must re-read the object it modifies on every call. The last
    conflict is re-raised once ``attempts`` is spent.
    """
    if attempts < 1:
        msg = f"attempts must be at least 1, got {attempts}"
        raise ValueError(msg)
    for attempt in range(1, attempts):
        try:
            return fn()
        except ConflictError:
            logger.debug("Write conflict, retrying (%d/%d)", attempt, attempts)
    return fn()
