"""
admission_gate/shared/conditions.py
───────────────────────────────────
Keyed upsert over ordered status lists.

Both controllers maintain a list of records keyed by one field:

    GateDefinition.status.conditions  keyed by Condition.type
    Workload.status.gate_states       keyed by GateState.name

``upsert`` is the single find-or-append used for both. It replaces the entry
in place (keeping list order) or appends it at the end. Functions here are
pure: they return a new list and never mutate their input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional, Sequence, TypeVar

from admission_gate.shared.models import Condition, ConditionStatus

T = TypeVar("T")


def upsert(items: Sequence[T], key: Callable[[T], str], new_value: T) -> List[T]:
    """
    Replace the first item whose key matches ``new_value``'s key, else append.

    Args:
        items:     The current ordered list.
        key:       Extracts the identifying field of an item.
        new_value: The record to store.

    Returns:
        A new list. Position of a replaced entry is preserved.
    """
    wanted = key(new_value)
    result = list(items)
    for idx, item in enumerate(result):
        if key(item) == wanted:
            result[idx] = new_value
            return result
    result.append(new_value)
    return result


def find_condition(conditions: Sequence[Condition], condition_type: str) -> Optional[Condition]:
    """Return the condition of the given type, or None."""
    for condition in conditions:
        if condition.type == condition_type:
            return condition
    return None


def is_condition_true(conditions: Sequence[Condition], condition_type: str) -> bool:
    condition = find_condition(conditions, condition_type)
    return condition is not None and condition.status == ConditionStatus.TRUE


def set_condition(conditions: Sequence[Condition], new_condition: Condition) -> List[Condition]:
    """
    Upsert a condition by type.

    ``last_transition_time`` moves only when the status actually changes;
    a reason/message-only update keeps the previous timestamp.
    """
    existing = find_condition(conditions, new_condition.type)
    stored = new_condition.model_copy()
    if existing is not None and existing.status == new_condition.status:
        stored.last_transition_time = existing.last_transition_time
    elif existing is not None:
        stored.last_transition_time = datetime.utcnow()
    return upsert(conditions, lambda c: c.type, stored)
