"""Error taxonomy shared by the stores, importers and reconcilers.

- ``NotFoundError``: the object vanished concurrently. Always benign.
- ``ConflictError``: a write lost an optimistic-concurrency race.
- ``StoreError``: any other transient infrastructure failure; surfaced to
  the dispatcher for backoff and retry.
- ``InvalidAccessError``: the auto-import secret content is malformed.
- ``ImportAttemptError``: using the supplied access failed.
"""

from __future__ import annotations


class StoreError(Exception):
    """Raised when a read or write against the hub fails."""


class NotFoundError(StoreError):
    """Raised when the requested object does not exist."""

    def __init__(self, kind: str, name: str, namespace: str | None = None) -> None:
        self.kind = kind
        self.name = name
        self.namespace = namespace
        where = f"{namespace}/{name}" if namespace else name
        super().__init__(f"{kind} {where} not found")


class ConflictError(StoreError):
    """Raised when a write is rejected because the object changed."""


class InvalidAccessError(ValueError):
    """Raised when auto-import secret content is neither a kubeconfig nor server+token."""


class ImportAttemptError(Exception):
    """Raised when the supplied cluster access could not be used to import."""
