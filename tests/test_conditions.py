"""Tests for the condition helpers."""

from __future__ import annotations

from datetime import UTC, datetime

from managedcluster_import.conditions import (
    ConditionSet,
    find_condition,
    new_import_succeeded_condition,
    set_condition,
)
from managedcluster_import.constants import (
    CONDITION_IMPORT_SUCCEEDED,
    REASON_IMPORTED,
    REASON_IMPORTING,
)
from managedcluster_import.models import Condition, ConditionStatus

T0 = datetime(2024, 1, 1, tzinfo=UTC)
T1 = datetime(2024, 1, 2, tzinfo=UTC)


def _importing(message: str = "wait") -> Condition:
    return new_import_succeeded_condition(ConditionStatus.FALSE, REASON_IMPORTING, message)


class TestFindCondition:
    def test_absent(self):
        assert find_condition([], CONDITION_IMPORT_SUCCEEDED) is None

    def test_found_by_type(self):
        other = Condition(type="Available", status=ConditionStatus.TRUE)
        conds = [other, _importing()]
        found = find_condition(conds, CONDITION_IMPORT_SUCCEEDED)
        assert found is not None
        assert found.reason == REASON_IMPORTING


class TestSetCondition:
    def test_appends_new_type(self):
        conds: list[Condition] = []
        assert set_condition(conds, _importing(), now=T0) is True
        assert len(conds) == 1
        assert conds[0].last_transition_time == T0

    def test_same_status_and_reason_is_noop(self):
        conds: list[Condition] = []
        set_condition(conds, _importing("first"), now=T0)
        assert set_condition(conds, _importing("second"), now=T1) is False
        assert conds[0].last_transition_time == T0
        assert conds[0].message == "first"

    def test_reason_change_replaces_in_place(self):
        other = Condition(type="Available", status=ConditionStatus.TRUE)
        conds = [_importing(), other]
        imported = new_import_succeeded_condition(ConditionStatus.TRUE, REASON_IMPORTED, "done")
        assert set_condition(conds, imported, now=T1) is True
        assert [c.type for c in conds] == [CONDITION_IMPORT_SUCCEEDED, "Available"]
        assert conds[0].reason == REASON_IMPORTED
        assert conds[0].last_transition_time == T1

    def test_status_change_alone_is_a_change(self):
        conds = [_importing()]
        unknown = new_import_succeeded_condition(ConditionStatus.UNKNOWN, REASON_IMPORTING, "")
        assert set_condition(conds, unknown) is True
        assert conds[0].status == ConditionStatus.UNKNOWN


class TestConditionSet:
    def test_keeps_insertion_order(self):
        cs = ConditionSet([
            Condition(type="A", status=ConditionStatus.TRUE),
            Condition(type="B", status=ConditionStatus.FALSE),
        ])
        cs.upsert(Condition(type="A", status=ConditionStatus.FALSE))
        assert [c.type for c in cs.as_list()] == ["A", "B"]
        assert len(cs) == 2
        assert "B" in cs

    def test_get_missing(self):
        assert ConditionSet().get("A") is None
