"""
admission_gate/control_plane — the two reconcilers and what they lean on.

Public API:

    Leaves:
        StoreOperationStatusLookup — operation type tag + key → OperationStatus
        find_owned_gate_state()    — which gate-state entry is ours
        owned_gate_state()         — the same, raising unless exactly one
        commit_gate_state()        — set state/message on it and persist

    Reconcilers:
        AdmissionController        — Workload: wait for the data operation,
                                     then mark the gate Ready or Rejected
        GateActivator              — GateDefinition: mark ours Active once

    Wiring:
        ReconcileDriver            — keyed queue with retry-after + backoff
        setup_controllers()        — register both reconcilers on a driver
"""

from admission_gate.control_plane.operation_status import (
    SUPPORTED_OPERATION_TYPES,
    OperationStatusLookup,
    StoreOperationStatusLookup,
)
from admission_gate.control_plane.gate_state import (
    GateStateLookup,
    LookupOutcome,
    commit_gate_state,
    find_owned_gate_state,
    owned_gate_state,
)
from admission_gate.control_plane.admission_controller import AdmissionController
from admission_gate.control_plane.gate_activator import GateActivator
from admission_gate.control_plane.driver import ReconcileDriver, setup_controllers

__all__ = [
    "SUPPORTED_OPERATION_TYPES",
    "OperationStatusLookup",
    "StoreOperationStatusLookup",
    "GateStateLookup",
    "LookupOutcome",
    "commit_gate_state",
    "find_owned_gate_state",
    "owned_gate_state",
    "AdmissionController",
    "GateActivator",
    "ReconcileDriver",
    "setup_controllers",
]
