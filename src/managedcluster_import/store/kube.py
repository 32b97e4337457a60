"""KubeClusterStore: hub storage via the kubernetes Python client.

Core kinds (secrets, namespaces) go through ``CoreV1Api``; the custom
kinds go through ``CustomObjectsApi`` using the group/version/plural table
below. Every call carries the configured request timeout, and
``ApiException``s are translated into the store error taxonomy.

Requires: ``pip install managedcluster-import[k8s]``
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from managedcluster_import.errors import ConflictError, NotFoundError, StoreError
from managedcluster_import.models import (
    Condition,
    DependentRecord,
    ManagedCluster,
    ManifestWork,
    Namespace,
    ObjectMeta,
    ResourceKind,
    Secret,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _check_kubernetes_available() -> None:
    """Raise ImportError with helpful message if kubernetes is not installed."""
    try:
        import kubernetes  # noqa: F401
    except ImportError:
        raise ImportError(
            "The 'kubernetes' package is required for KubeClusterStore. "
            "Install it with: pip install managedcluster-import[k8s]"
        ) from None


@dataclass(frozen=True)
class KubeKindMapping:
    """Maps a custom kind to its API group, version and plural."""

    group: str
    version: str
    plural: str
    namespaced: bool = True


KIND_API_MAP: dict[ResourceKind, KubeKindMapping] = {
    ResourceKind.MANAGED_CLUSTER: KubeKindMapping(
        group="cluster.open-cluster-management.io",
        version="v1",
        plural="managedclusters",
        namespaced=False,
    ),
    ResourceKind.MANIFEST_WORK: KubeKindMapping(
        group="work.open-cluster-management.io",
        version="v1",
        plural="manifestworks",
    ),
    ResourceKind.CLUSTER_DEPLOYMENT: KubeKindMapping(
        group="hive.openshift.io",
        version="v1",
        plural="clusterdeployments",
    ),
    ResourceKind.MANAGED_CLUSTER_ADDON: KubeKindMapping(
        group="addon.open-cluster-management.io",
        version="v1alpha1",
        plural="managedclusteraddons",
    ),
    ResourceKind.INFRA_ENV: KubeKindMapping(
        group="agent-install.openshift.io",
        version="v1beta1",
        plural="infraenvs",
    ),
}


class KubeClusterStore:
    """``ClusterStore`` backed by a live hub API server.

    Client setup:
    - ``in_cluster=True`` loads the in-cluster service account config
    - otherwise loads ``kubeconfig`` (default location when ``None``)
      with the optional ``context``
    - an explicit ``api_client`` bypasses both
    """

    def __init__(
        self,
        kubeconfig: str | None = None,
        context: str | None = None,
        in_cluster: bool = False,
        request_timeout: float = 30.0,
        api_client: Any = None,
    ) -> None:
        _check_kubernetes_available()
        self._kubeconfig = kubeconfig
        self._context = context
        self._in_cluster = in_cluster
        self._timeout = request_timeout
        self._api_client = api_client
        self._core: Any = None
        self._custom: Any = None

    # --- Managed clusters ---

    def get_cluster(self, name: str) -> ManagedCluster:
        m = KIND_API_MAP[ResourceKind.MANAGED_CLUSTER]
        data = self._call(
            ResourceKind.MANAGED_CLUSTER, name, None,
            lambda: self._custom_api().get_cluster_custom_object(
                m.group, m.version, m.plural, name, _request_timeout=self._timeout,
            ),
        )
        return model_from_dict(ResourceKind.MANAGED_CLUSTER, data)

    def update_cluster_status(self, cluster: ManagedCluster) -> ManagedCluster:
        m = KIND_API_MAP[ResourceKind.MANAGED_CLUSTER]
        body = {
            "metadata": {"resourceVersion": cluster.metadata.resource_version},
            "status": {"conditions": [_condition_to_dict(c) for c in cluster.conditions]},
        }
        data = self._call(
            ResourceKind.MANAGED_CLUSTER, cluster.name, None,
            lambda: self._custom_api().patch_cluster_custom_object_status(
                m.group, m.version, m.plural, cluster.name, body,
                _request_timeout=self._timeout,
            ),
        )
        return model_from_dict(ResourceKind.MANAGED_CLUSTER, data)

    # --- Manifest works & dependents ---

    def list_manifest_works(self, namespace: str, label: str) -> list[ManifestWork]:
        return [
            model_from_dict(ResourceKind.MANIFEST_WORK, item)
            for item in self._list_custom(ResourceKind.MANIFEST_WORK, namespace, label)
        ]

    def list_dependents(self, kind: ResourceKind, namespace: str) -> list[DependentRecord]:
        return [
            model_from_dict(kind, item)
            for item in self._list_custom(kind, namespace)
        ]

    # --- Secrets ---

    def get_secret(self, namespace: str, name: str) -> Secret:
        result = self._call(
            ResourceKind.SECRET, name, namespace,
            lambda: self._core_api().read_namespaced_secret(
                name, namespace, _request_timeout=self._timeout,
            ),
        )
        return _secret_from_dict(self._serialize(result))

    def create_secret(self, secret: Secret) -> Secret:
        namespace = secret.metadata.namespace or ""
        result = self._call(
            ResourceKind.SECRET, secret.metadata.name, namespace,
            lambda: self._core_api().create_namespaced_secret(
                namespace, _secret_to_dict(secret), _request_timeout=self._timeout,
            ),
        )
        return _secret_from_dict(self._serialize(result))

    def update_secret(self, secret: Secret) -> Secret:
        namespace = secret.metadata.namespace or ""
        result = self._call(
            ResourceKind.SECRET, secret.metadata.name, namespace,
            lambda: self._core_api().replace_namespaced_secret(
                secret.metadata.name, namespace, _secret_to_dict(secret),
                _request_timeout=self._timeout,
            ),
        )
        return _secret_from_dict(self._serialize(result))

    def delete_secret(self, namespace: str, name: str) -> None:
        self._call(
            ResourceKind.SECRET, name, namespace,
            lambda: self._core_api().delete_namespaced_secret(
                name, namespace, _request_timeout=self._timeout,
            ),
        )

    # --- Namespaces ---

    def get_namespace(self, name: str) -> Namespace:
        result = self._call(
            ResourceKind.NAMESPACE, name, None,
            lambda: self._core_api().read_namespace(name, _request_timeout=self._timeout),
        )
        return model_from_dict(ResourceKind.NAMESPACE, self._serialize(result))

    def delete_namespace(self, name: str) -> None:
        self._call(
            ResourceKind.NAMESPACE, name, None,
            lambda: self._core_api().delete_namespace(name, _request_timeout=self._timeout),
        )

    # --- Private: client setup ---

    def _get_api_client(self) -> Any:
        """Build a kubernetes ApiClient from constructor config."""
        if self._api_client is not None:
            return self._api_client

        from kubernetes import client, config

        if self._in_cluster:
            config.load_incluster_config()
        else:
            kwargs: dict[str, Any] = {}
            if self._kubeconfig:
                kwargs["config_file"] = self._kubeconfig
            if self._context:
                kwargs["context"] = self._context
            config.load_kube_config(**kwargs)
        self._api_client = client.ApiClient()
        return self._api_client

    def _core_api(self) -> Any:
        if self._core is None:
            from kubernetes import client

            self._core = client.CoreV1Api(self._get_api_client())
        return self._core

    def _custom_api(self) -> Any:
        if self._custom is None:
            from kubernetes import client

            self._custom = client.CustomObjectsApi(self._get_api_client())
        return self._custom

    # --- Private: helpers ---

    def _list_custom(
        self, kind: ResourceKind, namespace: str, label_selector: str | None = None,
    ) -> list[dict[str, Any]]:
        """List a custom kind; a kind the hub does not serve lists as empty."""
        m = KIND_API_MAP[kind]
        kwargs: dict[str, Any] = {"_request_timeout": self._timeout}
        if label_selector:
            kwargs["label_selector"] = label_selector
        try:
            data = self._call(
                kind, "", namespace,
                lambda: self._custom_api().list_namespaced_custom_object(
                    m.group, m.version, namespace, m.plural, **kwargs,
                ),
            )
        except NotFoundError:
            # CRD not installed (e.g. no hive or assisted-service on the hub)
            logger.debug("%s is not served by the hub, treating as empty", kind)
            return []
        return list(data.get("items") or [])

    def _serialize(self, k8s_object: Any) -> dict[str, Any]:
        """Convert a kubernetes client model to its JSON dict form."""
        if isinstance(k8s_object, dict):
            return k8s_object
        return self._get_api_client().sanitize_for_serialization(k8s_object)

    def _call(
        self,
        kind: ResourceKind,
        name: str,
        namespace: str | None,
        fn: Callable[[], T],
    ) -> T:
        try:
            return fn()
        except Exception as exc:
            # Detect kubernetes ApiException by class name to avoid import
            if type(exc).__name__ != "ApiException":
                raise
            status = getattr(exc, "status", None)
            if status == 404:
                raise NotFoundError(kind, name, namespace) from exc
            if status == 409:
                raise ConflictError(f"{kind} {name}: {exc.reason}") from exc
            raise StoreError(f"K8s API error ({status}) on {kind} {name}: {exc.reason}") from exc


# --- Conversion ---


def model_from_dict(kind: ResourceKind, data: dict[str, Any]) -> Any:
    """Build the model for a JSON/YAML object of ``kind``."""
    metadata = _meta_from_dict(data.get("metadata") or {})
    if kind == ResourceKind.MANAGED_CLUSTER:
        return ManagedCluster(metadata=metadata, conditions=_conditions_from_dict(data))
    if kind == ResourceKind.MANIFEST_WORK:
        return ManifestWork(metadata=metadata, conditions=_conditions_from_dict(data))
    if kind == ResourceKind.SECRET:
        return _secret_from_dict(data)
    if kind == ResourceKind.NAMESPACE:
        return Namespace(
            metadata=metadata,
            phase=(data.get("status") or {}).get("phase") or "Active",
        )
    return DependentRecord(kind=kind, metadata=metadata)


def _meta_from_dict(meta: dict[str, Any]) -> ObjectMeta:
    return ObjectMeta(
        name=meta.get("name") or "",
        namespace=meta.get("namespace"),
        labels=meta.get("labels") or {},
        annotations=meta.get("annotations") or {},
        resource_version=meta.get("resourceVersion"),
        deletion_timestamp=meta.get("deletionTimestamp"),
        finalizers=meta.get("finalizers") or [],
    )


def _meta_to_dict(meta: ObjectMeta) -> dict[str, Any]:
    data: dict[str, Any] = {"name": meta.name}
    if meta.namespace:
        data["namespace"] = meta.namespace
    if meta.labels:
        data["labels"] = dict(meta.labels)
    if meta.annotations:
        data["annotations"] = dict(meta.annotations)
    if meta.resource_version:
        data["resourceVersion"] = meta.resource_version
    if meta.finalizers:
        data["finalizers"] = list(meta.finalizers)
    return data


def _conditions_from_dict(obj: dict[str, Any]) -> list[Condition]:
    raw = (obj.get("status") or {}).get("conditions") or []
    return [
        Condition(
            type=c["type"],
            status=c.get("status", "Unknown"),
            reason=c.get("reason") or "",
            message=c.get("message") or "",
            last_transition_time=c.get("lastTransitionTime"),
        )
        for c in raw
    ]


def _condition_to_dict(cond: Condition) -> dict[str, Any]:
    data: dict[str, Any] = {
        "type": cond.type,
        "status": str(cond.status),
        "reason": cond.reason,
        "message": cond.message,
    }
    if cond.last_transition_time is not None:
        data["lastTransitionTime"] = cond.last_transition_time.strftime("%Y-%m-%dT%H:%M:%SZ")
    return data


def _secret_from_dict(data: dict[str, Any]) -> Secret:
    decoded: dict[str, str] = {}
    binary: dict[str, str] = {}
    for key, value in (data.get("data") or {}).items():
        try:
            decoded[key] = base64.b64decode(value).decode("utf-8")
        except UnicodeDecodeError:
            binary[key] = value
    return Secret(
        metadata=_meta_from_dict(data.get("metadata") or {}),
        type=data.get("type") or "Opaque",
        data=decoded,
        binary_data=binary,
    )


def _secret_to_dict(secret: Secret) -> dict[str, Any]:
    encoded = {
        key: base64.b64encode(value.encode("utf-8")).decode("ascii")
        for key, value in secret.data.items()
    }
    for key, value in secret.binary_data.items():
        encoded.setdefault(key, value)
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": _meta_to_dict(secret.metadata),
        "type": secret.type,
        "data": encoded,
    }
