"""Core data models for managedcluster-import.

Defines the schemas for:
- Object metadata shared by every hub record
- Status conditions (the ``ManagedClusterImportSucceeded`` condition)
- Managed clusters, klusterlet manifest works, secrets and namespaces
- Dependent provisioning records (cluster deployments, add-ons, infra envs)
- Auto-import access parsed from the auto-import secret
- Reconcile results handed back to the dispatcher
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from managedcluster_import.constants import (
    ANNOTATION_KLUSTERLET_DEPLOY_MODE,
    WORK_CONDITION_AVAILABLE,
)

# --- Enums ---


class ConditionStatus(enum.StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class DeployMode(enum.StrEnum):
    DEFAULT = "Default"
    HOSTED = "Hosted"


class ResourceKind(enum.StrEnum):
    MANAGED_CLUSTER = "ManagedCluster"
    MANIFEST_WORK = "ManifestWork"
    SECRET = "Secret"
    NAMESPACE = "Namespace"
    CLUSTER_DEPLOYMENT = "ClusterDeployment"
    MANAGED_CLUSTER_ADDON = "ManagedClusterAddOn"
    INFRA_ENV = "InfraEnv"


class EventType(enum.StrEnum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GENERIC = "generic"


# Kinds whose presence in a cluster namespace blocks its deletion
DEPENDENT_KINDS: tuple[ResourceKind, ...] = (
    ResourceKind.CLUSTER_DEPLOYMENT,
    ResourceKind.MANAGED_CLUSTER_ADDON,
    ResourceKind.INFRA_ENV,
)


# --- Metadata & Conditions ---


class ObjectMeta(BaseModel):
    """The subset of object metadata the controllers read and write."""

    name: str
    namespace: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    resource_version: str | None = None
    deletion_timestamp: datetime | None = None
    finalizers: list[str] = Field(default_factory=list)


class Condition(BaseModel):
    """A named status condition."""

    type: str
    status: ConditionStatus
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None


# --- Hub records ---


class ManagedCluster(BaseModel):
    """A cluster registered to the hub.

    The cluster name doubles as the name of its dedicated namespace.
    """

    metadata: ObjectMeta
    conditions: list[Condition] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def deploy_mode(self) -> DeployMode:
        mode = self.metadata.annotations.get(ANNOTATION_KLUSTERLET_DEPLOY_MODE)
        if mode == DeployMode.HOSTED:
            return DeployMode.HOSTED
        return DeployMode.DEFAULT

    @property
    def is_deleting(self) -> bool:
        return self.metadata.deletion_timestamp is not None


class ManifestWork(BaseModel):
    """A unit of klusterlet configuration applied to a managed cluster."""

    metadata: ObjectMeta
    conditions: list[Condition] = Field(default_factory=list)

    @property
    def is_available(self) -> bool:
        # A work that never reported Available counts as unavailable
        for cond in self.conditions:
            if cond.type == WORK_CONDITION_AVAILABLE:
                return cond.status == ConditionStatus.TRUE
        return False


class Secret(BaseModel):
    """A secret with its text data already base64-decoded.

    Values that are not UTF-8 text stay base64-encoded in ``binary_data``
    and are written back unchanged.
    """

    metadata: ObjectMeta
    type: str = "Opaque"
    data: dict[str, str] = Field(default_factory=dict)
    binary_data: dict[str, str] = Field(default_factory=dict)


class Namespace(BaseModel):
    metadata: ObjectMeta
    phase: str = "Active"

    @property
    def is_terminating(self) -> bool:
        return self.metadata.deletion_timestamp is not None or self.phase == "Terminating"


class DependentRecord(BaseModel):
    """A provisioning record that must be finalized before its namespace goes."""

    kind: ResourceKind
    metadata: ObjectMeta


# --- Auto-import access ---


class ImportAccess(BaseModel):
    """Caller-supplied access to a managed cluster.

    Exactly one form is populated: a kubeconfig, or a server URL plus a
    bearer token.
    """

    kubeconfig: str | None = None
    server: str | None = None
    token: str | None = None
    ca_data: str | None = None
    insecure_skip_tls_verify: bool = False

    @property
    def uses_kubeconfig(self) -> bool:
        return self.kubeconfig is not None

    def to_secret_data(self) -> dict[str, str]:
        """Render the access as bootstrap secret data."""
        if self.kubeconfig is not None:
            return {"kubeconfig": self.kubeconfig}
        data = {"server": self.server or "", "token": self.token or ""}
        if self.ca_data:
            data["ca.crt"] = self.ca_data
        if self.insecure_skip_tls_verify:
            data["insecure-skip-tls-verify"] = "true"
        return data


# --- Reconcile Result ---


class ReconcileResult(BaseModel):
    """The outcome of one reconcile, returned to the dispatcher."""

    key: str
    requeue: bool = False
    requeue_after: float | None = None
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
