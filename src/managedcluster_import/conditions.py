"""Status condition helpers.

Conditions are held as an ordered map keyed by condition type. Updates go
through an idempotent upsert: writing a condition whose status and reason
already match leaves the entry (and its last-transition time) untouched and
reports that nothing changed, so callers can skip the status write.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime

from managedcluster_import.constants import CONDITION_IMPORT_SUCCEEDED
from managedcluster_import.models import Condition, ConditionStatus


class ConditionSet:
    """Ordered map of conditions keyed by type."""

    def __init__(self, conditions: Iterable[Condition] | None = None) -> None:
        self._items: dict[str, Condition] = {}
        for cond in conditions or []:
            self._items[cond.type] = cond

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, cond_type: object) -> bool:
        return cond_type in self._items

    def get(self, cond_type: str) -> Condition | None:
        return self._items.get(cond_type)

    def upsert(self, new: Condition, now: datetime | None = None) -> bool:
        """Insert or replace ``new`` by type.

        Returns ``True`` if the set changed. When the existing condition has
        the same status and reason the set is left as is.
        """
        existing = self._items.get(new.type)
        if (
            existing is not None
            and existing.status == new.status
            and existing.reason == new.reason
        ):
            return False

        self._items[new.type] = new.model_copy(
            update={"last_transition_time": now or datetime.now(tz=UTC)},
        )
        return True

    def as_list(self) -> list[Condition]:
        return list(self._items.values())


def find_condition(conditions: Iterable[Condition], cond_type: str) -> Condition | None:
    """Return the condition of ``cond_type``, or ``None`` when absent."""
    for cond in conditions:
        if cond.type == cond_type:
            return cond
    return None


def set_condition(
    conditions: list[Condition],
    new: Condition,
    now: datetime | None = None,
) -> bool:
    """Idempotently upsert ``new`` into ``conditions`` in place.

    Returns ``True`` when the list changed and a write is needed.
    """
    cond_set = ConditionSet(conditions)
    changed = cond_set.upsert(new, now=now)
    if changed:
        conditions[:] = cond_set.as_list()
    return changed


def new_import_succeeded_condition(
    status: ConditionStatus,
    reason: str,
    message: str,
) -> Condition:
    return Condition(
        type=CONDITION_IMPORT_SUCCEEDED,
        status=status,
        reason=reason,
        message=message,
    )
