"""Dispatcher: feeds watch events to the reconcilers.

Each controller pairs a reconciler with its router table. Events are routed
to reconcile keys and run on a thread pool with at most one in-flight
reconcile per (controller, key). A key that arrives while its reconcile is
running is marked dirty and reconciled once more afterwards, so no change
is lost and no two reconciles of the same key overlap.

Failures never escape the worker: transient errors are logged and the key
is re-queued after a short delay.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from managedcluster_import.config import ImportControllerConfig
from managedcluster_import.controllers import (
    AutoImportReconciler,
    ImportStatusReconciler,
    NamespaceDeletionReconciler,
)
from managedcluster_import.importers import ClusterImporter
from managedcluster_import.models import ReconcileResult
from managedcluster_import.router import (
    AUTO_IMPORT_WATCHES,
    IMPORT_STATUS_WATCHES,
    NAMESPACE_DELETION_WATCHES,
    Router,
    WatchEvent,
)
from managedcluster_import.store.base import ClusterStore

logger = logging.getLogger(__name__)

DEFAULT_ERROR_REQUEUE_SECONDS = 5.0


@runtime_checkable
class Reconciler(Protocol):
    """Anything with a ``name`` and a ``reconcile(key)`` method."""

    name: str

    def reconcile(self, key: str) -> ReconcileResult: ...


@dataclass(frozen=True)
class Controller:
    reconciler: Reconciler
    router: Router

    @property
    def name(self) -> str:
        return self.reconciler.name


def build_controllers(
    store: ClusterStore,
    importer: ClusterImporter,
    config: ImportControllerConfig | None = None,
) -> list[Controller]:
    """The three lifecycle controllers wired to their watch tables."""
    config = config or ImportControllerConfig()
    return [
        Controller(ImportStatusReconciler(store, config), Router(IMPORT_STATUS_WATCHES)),
        Controller(AutoImportReconciler(store, importer, config), Router(AUTO_IMPORT_WATCHES)),
        Controller(NamespaceDeletionReconciler(store), Router(NAMESPACE_DELETION_WATCHES)),
    ]


def build_dispatcher(
    store: ClusterStore,
    importer: ClusterImporter,
    config: ImportControllerConfig | None = None,
) -> Dispatcher:
    """A dispatcher for the three controllers, sized by ``config``."""
    config = config or ImportControllerConfig()
    return Dispatcher(
        build_controllers(store, importer, config),
        max_workers=config.max_concurrent_reconciles,
    )


class Dispatcher:
    """Routes events to controllers and runs their reconciles."""

    def __init__(
        self,
        controllers: Iterable[Controller],
        max_workers: int = 4,
        error_requeue_seconds: float = DEFAULT_ERROR_REQUEUE_SECONDS,
    ) -> None:
        self._controllers = {c.name: c for c in controllers}
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reconcile")
        self._error_requeue = error_requeue_seconds
        self._lock = threading.Lock()
        self._active: set[tuple[str, str]] = set()
        self._dirty: set[tuple[str, str]] = set()
        self._timers: set[threading.Timer] = set()
        self._closed = False

    def dispatch(self, event: WatchEvent) -> list[tuple[str, str]]:
        """Route ``event`` and enqueue the resulting keys.

        Returns the (controller, key) pairs that were enqueued.
        """
        enqueued: list[tuple[str, str]] = []
        for name, controller in self._controllers.items():
            for key in controller.router.route(event):
                self.enqueue(name, key)
                enqueued.append((name, key))
        return enqueued

    def enqueue(self, controller_name: str, key: str) -> None:
        item = (controller_name, key)
        with self._lock:
            if self._closed:
                return
            if item in self._active:
                self._dirty.add(item)
                return
            self._active.add(item)
        self._pool.submit(self._run, item)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            self._closed = True
            timers = list(self._timers)
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        self._pool.shutdown(wait=wait)

    # --- Private ---

    def _run(self, item: tuple[str, str]) -> None:
        controller_name, key = item
        reconciler = self._controllers[controller_name].reconciler
        while True:
            with self._lock:
                self._dirty.discard(item)

            delay: float | None = None
            try:
                result = reconciler.reconcile(key)
                logger.debug("%s reconciled %s: %s", controller_name, key, result.message)
                if result.requeue:
                    delay = result.requeue_after or 0.0
            except Exception:
                logger.exception("%s failed to reconcile %s", controller_name, key)
                delay = self._error_requeue

            with self._lock:
                if item in self._dirty and not self._closed:
                    continue
                self._active.discard(item)

            if delay is not None:
                self._schedule(item, delay)
            return

    def _schedule(self, item: tuple[str, str], delay: float) -> None:
        timer = threading.Timer(delay, self._fire, args=(item,))
        timer.daemon = True
        with self._lock:
            if self._closed:
                return
            self._timers.add(timer)
        timer.start()

    def _fire(self, item: tuple[str, str]) -> None:
        me = threading.current_thread()
        with self._lock:
            self._timers = {t for t in self._timers if t is not me and t.is_alive()}
        self.enqueue(*item)
