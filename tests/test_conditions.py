"""
tests/test_conditions.py
─────────────────────────
Keyed upsert and condition helpers.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from admission_gate.shared.conditions import (
    find_condition,
    is_condition_true,
    set_condition,
    upsert,
)
from admission_gate.shared.models import Condition, ConditionStatus, GateState, CheckState


class TestUpsert:

    def test_appends_when_key_absent(self) -> None:
        items = [GateState(name="a"), GateState(name="b")]
        result = upsert(items, lambda s: s.name, GateState(name="c"))
        assert [s.name for s in result] == ["a", "b", "c"]

    def test_replaces_in_place(self) -> None:
        items = [GateState(name="a"), GateState(name="b"), GateState(name="c")]
        result = upsert(items, lambda s: s.name, GateState(name="b", state=CheckState.READY))
        assert [s.name for s in result] == ["a", "b", "c"]
        assert result[1].state == CheckState.READY

    def test_does_not_mutate_input(self) -> None:
        items = [GateState(name="a")]
        upsert(items, lambda s: s.name, GateState(name="a", message="new"))
        upsert(items, lambda s: s.name, GateState(name="z"))
        assert len(items) == 1
        assert items[0].message == ""

    def test_empty_list(self) -> None:
        entry = GateState(name="a")
        assert upsert([], lambda s: s.name, entry) == [entry]

    def test_works_on_plain_tuples(self) -> None:
        items = [("x", 1), ("y", 2)]
        assert upsert(items, lambda t: t[0], ("x", 9)) == [("x", 9), ("y", 2)]


class TestConditions:

    def test_find_and_is_true(self) -> None:
        conditions = [
            Condition(type="Active", status=ConditionStatus.TRUE),
            Condition(type="Stalled", status=ConditionStatus.FALSE),
        ]
        assert find_condition(conditions, "Stalled").status == ConditionStatus.FALSE
        assert find_condition(conditions, "Missing") is None
        assert is_condition_true(conditions, "Active")
        assert not is_condition_true(conditions, "Stalled")
        assert not is_condition_true(conditions, "Missing")

    def test_set_condition_keeps_time_when_status_unchanged(self) -> None:
        old = datetime.utcnow() - timedelta(days=1)
        conditions = [Condition(type="Active", status=ConditionStatus.TRUE, last_transition_time=old)]

        result = set_condition(
            conditions, Condition(type="Active", status=ConditionStatus.TRUE, reason="Again")
        )

        assert result[0].reason == "Again"
        assert result[0].last_transition_time == old

    def test_set_condition_moves_time_on_status_change(self) -> None:
        old = datetime.utcnow() - timedelta(days=1)
        conditions = [Condition(type="Active", status=ConditionStatus.FALSE, last_transition_time=old)]

        result = set_condition(conditions, Condition(type="Active", status=ConditionStatus.TRUE))

        assert result[0].status == ConditionStatus.TRUE
        assert result[0].last_transition_time > old
        assert conditions[0].status == ConditionStatus.FALSE
