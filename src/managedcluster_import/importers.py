"""Importer protocol and built-in importers.

An importer uses caller-supplied access to a managed cluster to start the
klusterlet import there. The protocol has one method, ``apply()``, which
raises ``ImportAttemptError`` when the access cannot be used. Any object
with that method satisfies the protocol.

- ``DryRunImporter`` accepts every access without side effects.
- ``KubeImporter`` applies the cluster's generated ``import.yaml`` to the
  managed cluster with the kubernetes Python client.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import yaml

from managedcluster_import.constants import (
    IMPORT_SECRET_IMPORT_YAML_KEY,
    import_secret_name,
)
from managedcluster_import.errors import ImportAttemptError
from managedcluster_import.models import ImportAccess

if TYPE_CHECKING:
    from managedcluster_import.store.base import ClusterStore

logger = logging.getLogger(__name__)


@runtime_checkable
class ClusterImporter(Protocol):
    """Protocol for import backends."""

    def apply(self, cluster_name: str, access: ImportAccess) -> None:
        """Import ``cluster_name`` using ``access``.

        Raises:
            ImportAttemptError: If the access could not be used.
            NotFoundError: If the hub has not generated the import
                manifests yet (not counted as a failed attempt).
        """
        ...


class DryRunImporter:
    """Importer that records calls and never fails.

    Useful for tests and dry runs of the auto-import flow.
    """

    def __init__(self) -> None:
        self.applied: list[tuple[str, ImportAccess]] = []

    def apply(self, cluster_name: str, access: ImportAccess) -> None:
        self.applied.append((cluster_name, access))
        logger.debug("[dry-run] Would import cluster %s", cluster_name)


class KubeImporter:
    """Apply ``<cluster>-import/import.yaml`` to the managed cluster.

    Requires: ``pip install managedcluster-import[k8s]``

    Access handling:
    - ``access.kubeconfig`` is loaded as a kubeconfig document
    - otherwise ``access.server`` + ``access.token`` use bearer token auth
    Objects that already exist on the managed cluster are left alone.
    """

    def __init__(self, store: ClusterStore, request_timeout: float = 30.0) -> None:
        self._store = store
        self._timeout = request_timeout

    def apply(self, cluster_name: str, access: ImportAccess) -> None:
        secret = self._store.get_secret(cluster_name, import_secret_name(cluster_name))
        manifests = secret.data.get(IMPORT_SECRET_IMPORT_YAML_KEY, "")
        docs = [doc for doc in yaml.safe_load_all(manifests) if doc]
        if not docs:
            raise ImportAttemptError(
                f"Import secret for {cluster_name} has no {IMPORT_SECRET_IMPORT_YAML_KEY}"
            )

        # The CA file is read when connections open, so it lives until the
        # manifests are applied and is removed with the directory.
        with tempfile.TemporaryDirectory(prefix="mcimport-") as workdir:
            try:
                api_client = self._get_api_client(access, Path(workdir))
            except Exception as exc:
                raise ImportAttemptError(f"Invalid access for {cluster_name}: {exc}") from exc
            self._create_all(cluster_name, api_client, docs)

        logger.info("Applied %d import manifests to %s", len(docs), cluster_name)

    def _create_all(self, cluster_name: str, api_client: Any, docs: list[Any]) -> None:
        from kubernetes import utils

        try:
            for doc in docs:
                utils.create_from_dict(api_client, doc, _request_timeout=self._timeout)
        except utils.FailToCreateError as exc:
            failures = [e for e in exc.api_exceptions if getattr(e, "status", None) != 409]
            if failures:
                raise ImportAttemptError(
                    f"Failed to apply import manifests to {cluster_name}: "
                    f"{failures[0].status} {failures[0].reason}"
                ) from exc
        except Exception as exc:
            raise ImportAttemptError(
                f"Failed to apply import manifests to {cluster_name}: {exc}"
            ) from exc

    def _get_api_client(self, access: ImportAccess, workdir: Path) -> Any:
        """Build a kubernetes ApiClient from the supplied access."""
        from kubernetes import client, config

        if access.kubeconfig is not None:
            config_dict = yaml.safe_load(access.kubeconfig)
            if not isinstance(config_dict, dict):
                raise ValueError("kubeconfig is not a YAML mapping")
            return config.new_client_from_config_dict(config_dict)

        configuration = client.Configuration()
        configuration.host = access.server
        configuration.api_key["authorization"] = access.token
        configuration.api_key_prefix["authorization"] = "Bearer"
        if access.insecure_skip_tls_verify:
            configuration.verify_ssl = False
        elif access.ca_data:
            ca_file = workdir / "ca.crt"
            ca_file.write_text(access.ca_data, encoding="utf-8")
            configuration.ssl_ca_cert = str(ca_file)
        return client.ApiClient(configuration)
