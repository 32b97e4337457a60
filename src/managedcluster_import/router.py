"""Correlation router: maps change notifications to reconcile keys.

Each controller watches a fixed set of resource kinds. A ``WatchMapping``
pairs a kind with per-event-type predicates and a key-extraction function;
a ``Router`` is just a table of them. Event types without a predicate are
dropped, so generic events never reach a reconciler.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from managedcluster_import.constants import (
    AUTO_IMPORT_SECRET_NAME,
    LABEL_CLUSTER_NAME,
    LABEL_KLUSTERLET_WORKS,
)
from managedcluster_import.models import EventType, ResourceKind

Predicate = Callable[["WatchEvent"], bool]
KeyFunc = Callable[[Any], str | None]


@dataclass(frozen=True)
class WatchEvent:
    """A single change notification.

    ``obj`` is the new object (or the last known state for deletes);
    ``old_obj`` is only set for updates.
    """

    kind: ResourceKind
    type: EventType
    obj: Any
    old_obj: Any = None


@dataclass(frozen=True)
class WatchMapping:
    """How one resource kind feeds a controller."""

    kind: ResourceKind
    key_func: KeyFunc
    predicates: dict[EventType, Predicate] = field(default_factory=dict)

    def accepts(self, event: WatchEvent) -> bool:
        predicate = self.predicates.get(event.type)
        return predicate is not None and predicate(event)


class Router:
    """Routes watch events through a table of ``WatchMapping``s."""

    def __init__(self, mappings: Iterable[WatchMapping]) -> None:
        self._mappings: dict[ResourceKind, WatchMapping] = {}
        for mapping in mappings:
            if mapping.kind in self._mappings:
                msg = f"Duplicate watch mapping for kind: {mapping.kind}"
                raise ValueError(msg)
            self._mappings[mapping.kind] = mapping

    def kinds(self) -> list[ResourceKind]:
        return list(self._mappings)

    def get(self, kind: ResourceKind) -> WatchMapping | None:
        return self._mappings.get(kind)

    def route(self, event: WatchEvent) -> list[str]:
        """Return the reconcile keys for ``event`` (empty if filtered out)."""
        mapping = self._mappings.get(event.kind)
        if mapping is None or not mapping.accepts(event):
            return []
        key = mapping.key_func(event.obj)
        return [key] if key else []


# --- Key functions ---


def by_name(obj: Any) -> str | None:
    return obj.metadata.name


def by_namespace(obj: Any) -> str | None:
    return obj.metadata.namespace


# --- Predicates ---


def always(event: WatchEvent) -> bool:
    return True


def is_deleting(event: WatchEvent) -> bool:
    return event.obj.metadata.deletion_timestamp is not None


def has_cluster_label(event: WatchEvent) -> bool:
    return LABEL_CLUSTER_NAME in event.obj.metadata.labels


def has_klusterlet_works_label(event: WatchEvent) -> bool:
    return LABEL_KLUSTERLET_WORKS in event.obj.metadata.labels


def is_auto_import_secret(event: WatchEvent) -> bool:
    return event.obj.metadata.name == AUTO_IMPORT_SECRET_NAME


def cluster_changed(event: WatchEvent) -> bool:
    """True when an update touched conditions or annotations."""
    old = event.old_obj
    if old is None:
        return True
    new = event.obj
    return (
        old.conditions != new.conditions
        or old.metadata.annotations != new.metadata.annotations
    )


# --- Controller watch tables ---


IMPORT_STATUS_WATCHES: tuple[WatchMapping, ...] = (
    WatchMapping(
        kind=ResourceKind.MANAGED_CLUSTER,
        key_func=by_name,
        predicates={EventType.CREATE: always, EventType.UPDATE: always},
    ),
    WatchMapping(
        kind=ResourceKind.MANIFEST_WORK,
        key_func=by_namespace,
        predicates={
            EventType.CREATE: has_klusterlet_works_label,
            EventType.UPDATE: has_klusterlet_works_label,
            EventType.DELETE: has_klusterlet_works_label,
        },
    ),
)

AUTO_IMPORT_WATCHES: tuple[WatchMapping, ...] = (
    WatchMapping(
        kind=ResourceKind.SECRET,
        key_func=by_namespace,
        predicates={
            EventType.CREATE: is_auto_import_secret,
            EventType.UPDATE: is_auto_import_secret,
        },
    ),
    WatchMapping(
        kind=ResourceKind.MANAGED_CLUSTER,
        key_func=by_name,
        predicates={EventType.CREATE: always, EventType.UPDATE: cluster_changed},
    ),
)

NAMESPACE_DELETION_WATCHES: tuple[WatchMapping, ...] = (
    # Only cares about the cluster being deleted
    WatchMapping(
        kind=ResourceKind.MANAGED_CLUSTER,
        key_func=by_name,
        predicates={EventType.DELETE: always, EventType.UPDATE: is_deleting},
    ),
    # Only cares about cluster namespaces
    WatchMapping(
        kind=ResourceKind.NAMESPACE,
        key_func=by_name,
        predicates={EventType.CREATE: has_cluster_label, EventType.UPDATE: has_cluster_label},
    ),
    WatchMapping(
        kind=ResourceKind.CLUSTER_DEPLOYMENT,
        key_func=by_namespace,
        predicates={EventType.DELETE: always},
    ),
    WatchMapping(
        kind=ResourceKind.MANAGED_CLUSTER_ADDON,
        key_func=by_namespace,
        predicates={EventType.DELETE: always},
    ),
    WatchMapping(
        kind=ResourceKind.INFRA_ENV,
        key_func=by_namespace,
        predicates={EventType.DELETE: always},
    ),
)
