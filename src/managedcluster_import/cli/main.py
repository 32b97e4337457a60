"""mcimport CLI: command-line interface for managedcluster-import.

Commands:
    config          Show the effective controller configuration
    reconcile       Run one reconcile of a controller against the hub
    route           Show which reconcile keys an object change produces
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any

import click
import yaml

from managedcluster_import import __version__
from managedcluster_import.config import ImportControllerConfig, load_config
from managedcluster_import.errors import StoreError
from managedcluster_import.importers import DryRunImporter, KubeImporter
from managedcluster_import.models import EventType, ResourceKind
from managedcluster_import.router import (
    AUTO_IMPORT_WATCHES,
    IMPORT_STATUS_WATCHES,
    NAMESPACE_DELETION_WATCHES,
    Router,
    WatchEvent,
)

CONTROLLERS = ("import-status", "auto-import", "namespace-deletion")

ROUTERS: dict[str, Router] = {
    "import-status": Router(IMPORT_STATUS_WATCHES),
    "auto-import": Router(AUTO_IMPORT_WATCHES),
    "namespace-deletion": Router(NAMESPACE_DELETION_WATCHES),
}


def _load_cfg(path: str | None) -> ImportControllerConfig:
    try:
        return load_config(path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


# --- Root group ---


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to import-controller.yaml.")
@click.option("--log-level", default=None, help="Log level (default from config, INFO).")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_level: str | None) -> None:
    """managedcluster-import: lifecycle controllers for hub-managed clusters."""
    cfg = _load_cfg(config_path)
    logging.basicConfig(
        level=(log_level or cfg.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = cfg


# --- config command ---


@cli.command("config")
@click.option("--json-output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def show_config(cfg: ImportControllerConfig, json_output: bool) -> None:
    """Show the effective controller configuration."""
    data = cfg.to_dict()
    if json_output:
        click.echo(json.dumps(data, indent=2))
        return
    for key, value in data.items():
        click.echo(f"{key}: {value if value is not None else '-'}")


# --- reconcile command ---


@cli.command()
@click.argument("controller", type=click.Choice(CONTROLLERS))
@click.argument("key")
@click.option("--kubeconfig", default=None, help="Hub kubeconfig (default from config).")
@click.option("--context", "kube_context", default=None, help="Hub kubeconfig context.")
@click.option("--in-cluster", is_flag=True, help="Use the in-cluster service account.")
@click.option("--dry-run", is_flag=True, help="Do not touch managed clusters (auto-import).")
@click.option("--json-output", is_flag=True, help="Output as JSON.")
@click.pass_obj
def reconcile(
    cfg: ImportControllerConfig,
    controller: str,
    key: str,
    kubeconfig: str | None,
    kube_context: str | None,
    in_cluster: bool,
    dry_run: bool,
    json_output: bool,
) -> None:
    """Run one reconcile of CONTROLLER for KEY (a cluster or namespace name)."""
    from managedcluster_import.controllers import (
        AutoImportReconciler,
        ImportStatusReconciler,
        NamespaceDeletionReconciler,
    )
    from managedcluster_import.store.kube import KubeClusterStore

    try:
        store = KubeClusterStore(
            kubeconfig=kubeconfig or cfg.kubeconfig,
            context=kube_context or cfg.context,
            in_cluster=in_cluster or cfg.in_cluster,
            request_timeout=cfg.request_timeout,
        )
    except ImportError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    reconciler: Any
    if controller == "import-status":
        reconciler = ImportStatusReconciler(store, cfg)
    elif controller == "auto-import":
        importer = DryRunImporter() if dry_run else KubeImporter(store, cfg.request_timeout)
        reconciler = AutoImportReconciler(store, importer, cfg)
    else:
        reconciler = NamespaceDeletionReconciler(store)

    try:
        result = reconciler.reconcile(key)
    except StoreError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    click.echo(f"{controller} {key}: {result.message or 'done'}")
    if result.requeue:
        click.echo(f"  requeue after {result.requeue_after or 0:.1f}s")


# --- route command ---


@cli.command()
@click.argument("kind", type=click.Choice([k.value for k in ResourceKind]))
@click.argument("event", type=click.Choice([e.value for e in EventType]))
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--old-file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="Previous object state (update events).")
@click.option("--json-output", is_flag=True, help="Output as JSON.")
def route(
    kind: str,
    event: str,
    file: str,
    old_file: str | None,
    json_output: bool,
) -> None:
    """Show the reconcile keys each controller derives from an object change."""
    from managedcluster_import.store.kube import model_from_dict

    resource_kind = ResourceKind(kind)
    obj = model_from_dict(resource_kind, _read_object(file))
    old_obj = model_from_dict(resource_kind, _read_object(old_file)) if old_file else None
    watch_event = WatchEvent(kind=resource_kind, type=EventType(event), obj=obj, old_obj=old_obj)

    keys = {name: router.route(watch_event) for name, router in ROUTERS.items()}

    if json_output:
        click.echo(json.dumps(keys, indent=2))
        return

    for name, routed in keys.items():
        click.echo(f"{name}: {', '.join(routed) if routed else '(filtered)'}")


def _read_object(path: str) -> dict[str, Any]:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        click.echo(f"Error: expected a YAML mapping in {path}", err=True)
        sys.exit(1)
    return data
