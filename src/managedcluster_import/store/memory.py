"""In-memory cluster store.

Dict-backed implementation of the ``ClusterStore`` protocol, used for
tests and dry runs. Thread-safe via a lock on all operations. Every stored
object gets a monotonically increasing resource version and updates with a
stale version are rejected, the same way the hub API server behaves.

Mutations made through the protocol are recorded in ``writes`` so callers
can assert on exactly what a reconcile changed. Seeding with ``add()`` is
not recorded.
"""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import Any

from managedcluster_import.errors import ConflictError, NotFoundError
from managedcluster_import.models import (
    DependentRecord,
    ManagedCluster,
    ManifestWork,
    Namespace,
    ResourceKind,
    Secret,
)

_MODEL_KINDS: dict[type, ResourceKind] = {
    ManagedCluster: ResourceKind.MANAGED_CLUSTER,
    ManifestWork: ResourceKind.MANIFEST_WORK,
    Secret: ResourceKind.SECRET,
    Namespace: ResourceKind.NAMESPACE,
}

_Key = tuple[ResourceKind, str, str]


class InMemoryClusterStore:
    """Dict-backed ``ClusterStore``."""

    def __init__(self) -> None:
        self._objects: dict[_Key, Any] = {}
        self._lock = threading.Lock()
        self._version = 0
        self.writes: list[tuple[str, ResourceKind, str]] = []

    # --- Seeding & inspection ---

    def add(self, obj: Any) -> Any:
        """Store ``obj`` as-is (overwriting), without recording a write."""
        with self._lock:
            stored = self._stamp(obj)
            self._objects[self._key_of(obj)] = stored
            return stored.model_copy(deep=True)

    def remove(self, kind: ResourceKind, name: str, namespace: str | None = None) -> None:
        """Drop an object without recording a write (simulates external deletion)."""
        with self._lock:
            self._objects.pop((kind, namespace or "", name), None)

    def exists(self, kind: ResourceKind, name: str, namespace: str | None = None) -> bool:
        with self._lock:
            return (kind, namespace or "", name) in self._objects

    def reset_writes(self) -> None:
        with self._lock:
            self.writes.clear()

    # --- ClusterStore protocol ---

    def get_cluster(self, name: str) -> ManagedCluster:
        return self._get(ResourceKind.MANAGED_CLUSTER, name, None)

    def update_cluster_status(self, cluster: ManagedCluster) -> ManagedCluster:
        with self._lock:
            key = self._key_of(cluster)
            current = self._require(key)
            self._check_version(current, cluster)
            # Status subresource: only conditions change
            updated = current.model_copy(
                update={"conditions": [c.model_copy() for c in cluster.conditions]},
            )
            return self._write("update_status", key, updated)

    def list_manifest_works(self, namespace: str, label: str) -> list[ManifestWork]:
        with self._lock:
            return [
                obj.model_copy(deep=True)
                for (kind, ns, _), obj in sorted(self._objects.items())
                if kind == ResourceKind.MANIFEST_WORK
                and ns == namespace
                and label in obj.metadata.labels
            ]

    def get_secret(self, namespace: str, name: str) -> Secret:
        return self._get(ResourceKind.SECRET, name, namespace)

    def create_secret(self, secret: Secret) -> Secret:
        with self._lock:
            key = self._key_of(secret)
            if key in self._objects:
                msg = f"Secret {secret.metadata.namespace}/{secret.metadata.name} already exists"
                raise ConflictError(msg)
            return self._write("create", key, secret)

    def update_secret(self, secret: Secret) -> Secret:
        with self._lock:
            key = self._key_of(secret)
            current = self._require(key)
            self._check_version(current, secret)
            return self._write("update", key, secret)

    def delete_secret(self, namespace: str, name: str) -> None:
        self._delete((ResourceKind.SECRET, namespace, name))

    def get_namespace(self, name: str) -> Namespace:
        return self._get(ResourceKind.NAMESPACE, name, None)

    def delete_namespace(self, name: str) -> None:
        self._delete((ResourceKind.NAMESPACE, "", name))

    def list_dependents(self, kind: ResourceKind, namespace: str) -> list[DependentRecord]:
        with self._lock:
            return [
                obj.model_copy(deep=True)
                for (k, ns, _), obj in sorted(self._objects.items())
                if k == kind and ns == namespace
            ]

    # --- Private ---

    def _key_of(self, obj: Any) -> _Key:
        kind = obj.kind if isinstance(obj, DependentRecord) else _MODEL_KINDS[type(obj)]
        return (kind, obj.metadata.namespace or "", obj.metadata.name)

    def _stamp(self, obj: Any) -> Any:
        self._version += 1
        stored = obj.model_copy(deep=True)
        stored.metadata.resource_version = str(self._version)
        return stored

    def _require(self, key: _Key) -> Any:
        current = self._objects.get(key)
        if current is None:
            kind, namespace, name = key
            raise NotFoundError(kind, name, namespace or None)
        return current

    def _check_version(self, current: Any, incoming: Any) -> None:
        want = incoming.metadata.resource_version
        if want is not None and want != current.metadata.resource_version:
            kind, namespace, name = self._key_of(current)
            msg = (
                f"{kind} {name} has been modified "
                f"(have {want}, current {current.metadata.resource_version})"
            )
            raise ConflictError(msg)

    def _write(self, verb: str, key: _Key, obj: Any) -> Any:
        stored = self._stamp(obj)
        self._objects[key] = stored
        self.writes.append((verb, key[0], self._display(key)))
        return stored.model_copy(deep=True)

    def _get(self, kind: ResourceKind, name: str, namespace: str | None) -> Any:
        with self._lock:
            return self._require((kind, namespace or "", name)).model_copy(deep=True)

    def _delete(self, key: _Key) -> None:
        with self._lock:
            current = self._require(key)
            if current.metadata.finalizers:
                # Finalizers hold the object in a terminating state
                if current.metadata.deletion_timestamp is None:
                    terminating = current.model_copy(deep=True)
                    terminating.metadata.deletion_timestamp = datetime.now(tz=UTC)
                    self._write("delete", key, terminating)
                return
            del self._objects[key]
            self.writes.append(("delete", key[0], self._display(key)))

    @staticmethod
    def _display(key: _Key) -> str:
        _, namespace, name = key
        return f"{namespace}/{name}" if namespace else name
