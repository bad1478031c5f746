"""
admission_gate/control_plane/gate_state.py
──────────────────────────────────────────
Find and update the one gate-state entry a controller owns on a workload.

Ownership is not recorded on the entry itself. Each entry names a
GateDefinition; the entry belongs to whichever controller that definition
lists in ``spec.controller_name``. Finding "my" entry is therefore a join
between the workload's gate states and the gate definitions in the store.

The join has four distinct outcomes, and callers must treat them apart:

  FOUND      exactly one entry resolves to the controller.
  NOT_FOUND  the full scan matched nothing.
  AMBIGUOUS  more than one entry matched.
  (raise)    a store read failed during the scan. The error propagates
             unchanged, so a transient failure is never mistaken for
             "not found".

A referenced definition that no longer exists is skipped: a deleted gate
cannot be owned by anybody.

owned_gate_state() turns NOT_FOUND and AMBIGUOUS into exceptions for
callers that only proceed with exactly one entry.
"""

from __future__ import annotations

import logging
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional, Tuple

from admission_gate.cluster.object_store import ObjectStore
from admission_gate.shared.conditions import upsert
from admission_gate.shared.errors import (
    AmbiguousGateStateError,
    GateStateNotFoundError,
    ObjectNotFoundError,
)
from admission_gate.shared.models import (
    CheckState,
    GateDefinition,
    GateState,
    NamespacedName,
    Workload,
)

logger = logging.getLogger(__name__)

TERMINAL_STATES = frozenset({CheckState.READY, CheckState.REJECTED})


class LookupOutcome(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not-found"
    AMBIGUOUS = "ambiguous"


class GateStateLookup(NamedTuple):
    outcome: LookupOutcome
    state: Optional[GateState] = None
    candidates: Tuple[str, ...] = ()


def find_owned_gate_state(
    store: ObjectStore,
    gate_states: List[GateState],
    controller_name: str,
) -> GateStateLookup:
    """
    Resolve which of ``gate_states`` belongs to ``controller_name``.

    Args:
        store:           Used to read each referenced GateDefinition.
        gate_states:     The workload's entries, in order.
        controller_name: The identity to match.

    Returns:
        GateStateLookup. ``state`` is a copy of the matching entry when
        the outcome is FOUND.

    Raises:
        Any store error other than ObjectNotFoundError.
    """
    matches: List[GateState] = []
    for entry in gate_states:
        try:
            definition = store.get(GateDefinition.KIND, NamespacedName(name=entry.name))
        except ObjectNotFoundError:
            logger.debug("gate definition %s not found, skipping", entry.name)
            continue
        if definition.spec.controller_name == controller_name:
            matches.append(entry)

    if not matches:
        return GateStateLookup(LookupOutcome.NOT_FOUND)
    if len(matches) > 1:
        return GateStateLookup(
            LookupOutcome.AMBIGUOUS, candidates=tuple(m.name for m in matches)
        )
    return GateStateLookup(
        LookupOutcome.FOUND, state=matches[0].model_copy(), candidates=(matches[0].name,)
    )


def owned_gate_state(
    store: ObjectStore,
    workload: Workload,
    controller_name: str,
) -> GateState:
    """
    Like find_owned_gate_state(), but anything other than FOUND raises.

    Raises:
        GateStateNotFoundError:  no entry resolves to controller_name.
        AmbiguousGateStateError: more than one entry does.
    """
    lookup = find_owned_gate_state(store, workload.status.gate_states, controller_name)
    if lookup.outcome == LookupOutcome.NOT_FOUND:
        raise GateStateNotFoundError(workload.key, controller_name)
    if lookup.outcome == LookupOutcome.AMBIGUOUS:
        raise AmbiguousGateStateError(workload.key, controller_name, lookup.candidates)
    return lookup.state


def commit_gate_state(
    store: ObjectStore,
    workload: Workload,
    controller_name: str,
    state: CheckState,
    message: str,
    entry: Optional[GateState] = None,
) -> Optional[Workload]:
    """
    Set state/message on the controller's entry and persist the workload status.

    ``entry`` is the owned entry when the caller has already resolved it;
    otherwise it is resolved here.

    Returns:
        The workload as stored after the write, or None when the owned
        entry is already Ready or Rejected and nothing was written.

    Raises:
        GateStateNotFoundError:  no entry resolves to controller_name.
        AmbiguousGateStateError: more than one entry does.
        Store errors (ConflictError, ObjectNotFoundError, ...) unchanged.
    """
    if entry is None:
        entry = owned_gate_state(store, workload, controller_name)
    else:
        entry = entry.model_copy()
    if entry.state in TERMINAL_STATES:
        # Ready and Rejected are final; never rewrite them.
        logger.debug(
            "workload %s: gate %s already %s", workload.key, entry.name, entry.state.value
        )
        return None
    if entry.state != state:
        entry.last_transition_time = datetime.utcnow()
    entry.state = state
    entry.message = message

    workload.status.gate_states = upsert(
        workload.status.gate_states, lambda s: s.name, entry
    )
    stored = store.update_status(workload)
    logger.info(
        "workload %s: gate %s → %s (%s)",
        workload.key, entry.name, state.value, message,
    )
    return stored
