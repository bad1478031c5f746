"""
admission_gate/control_plane/admission_controller.py
────────────────────────────────────────────────────
AdmissionController: holds a workload at its gate until the data operation
it waits on has concluded.

The workload names the operation through three pod-template labels:

    fluid.io/wait-dataop-type       DataLoad | DataProcess | DataMigrate | DataBackup
    fluid.io/wait-dataop-name       operation name
    fluid.io/wait-dataop-namespace  operation namespace (read literally, may be empty)

Reconcile pipeline
───────────────────
  1. Fetch the workload.           missing → no requeue; other error → requeue w/ error
  2. Already admitted?             → no requeue
  3. Exactly one pod set?          otherwise → no requeue
  4. Type label present?           otherwise → no requeue (not gated by us)
  5. Query the operation status.   invalid request → Warning event, no requeue
                                   transient error → requeue w/ error
  6. Map the phase:
       Failed    → Warning event, gate state Rejected, no requeue
       Complete  → Normal event, gate state Ready, no requeue
       otherwise → untouched, requeue after poll_interval_s

State machine of the owned gate state
──────────────────────────────────────
  Pending --Complete--> Ready       (terminal)
  Pending --Failed----> Rejected    (terminal)
  Pending --running---> Pending     (re-poll)

Step 2 leaves a workload with several gates alone as soon as it is
admitted. Until then, an owned entry that is already Ready or Rejected ends
the reconcile without an event or a write, so re-delivery of a concluded
workload never reports its verdict twice.

Error contract
───────────────
reconcile() never raises. Every outcome is a ReconcileResult; errors that
deserve a retry ride along in ReconcileResult.error.
"""

from __future__ import annotations

import logging
from typing import Optional

from admission_gate.cluster.events import EventRecorder
from admission_gate.cluster.object_store import ObjectStore
from admission_gate.control_plane.gate_state import (
    TERMINAL_STATES,
    commit_gate_state,
    owned_gate_state,
)
from admission_gate.control_plane.operation_status import OperationStatusLookup
from admission_gate.shared.config import ControllerConfig, MissingGateStatePolicy
from admission_gate.shared.errors import (
    AmbiguousGateStateError,
    GateStateNotFoundError,
    InvalidOperationRequestError,
    ObjectNotFoundError,
)
from admission_gate.shared.models import (
    CheckState,
    EventType,
    NamespacedName,
    OperationPhase,
    ReconcileResult,
    Workload,
)

logger = logging.getLogger(__name__)

# Event reasons
REASON_OPERATION_NOT_VALID = "DataOperationNotValid"
REASON_OPERATION_FAILED = "Waiting DataOperation failed"
REASON_OPERATION_COMPLETED = "Waiting DataOperation completed"
REASON_GATE_STATE_MISSING = "AdmissionCheckStateMissing"

# Gate-state messages. Operators grep for these.
MESSAGE_REJECTED = "waited data operation is failed"
MESSAGE_READY = "waited data operation is completed"


class AdmissionController:
    """
    Workload reconciler for the data-operation gate.

    Args:
        store:     Object store holding workloads and gate definitions.
        recorder:  Event sink for user-facing Normal/Warning events.
        lookup:    Operation-status collaborator.
        config:    Controller identity, poll interval, missing-entry policy.
    """

    def __init__(
        self,
        store: ObjectStore,
        recorder: EventRecorder,
        lookup: OperationStatusLookup,
        config: Optional[ControllerConfig] = None,
    ) -> None:
        self._store = store
        self._recorder = recorder
        self._lookup = lookup
        self._config = config or ControllerConfig()

    @property
    def config(self) -> ControllerConfig:
        return self._config

    def reconcile(self, key: NamespacedName) -> ReconcileResult:
        try:
            workload = self._store.get(Workload.KIND, key)
        except ObjectNotFoundError:
            logger.debug("workload %s is gone, nothing to reconcile", key)
            return ReconcileResult.no_requeue()
        except Exception as e:
            logger.error("failed to get workload %s: %s", key, e)
            return ReconcileResult.requeue_with_error(e)

        if workload.is_admitted:
            return ReconcileResult.no_requeue()

        pod_sets = workload.spec.pod_sets
        # only single-template (batch job) workloads are gated
        if len(pod_sets) != 1:
            logger.debug("workload %s has %d pod sets, skipping", key, len(pod_sets))
            return ReconcileResult.no_requeue()
        labels = pod_sets[0].template.labels

        op_type = labels.get(self._config.label_op_type)
        if op_type is None:
            return ReconcileResult.no_requeue()

        op_key = NamespacedName(
            name=labels.get(self._config.label_op_name, ""),
            namespace=labels.get(self._config.label_op_namespace, ""),
        )

        try:
            status = self._lookup.get_status(op_type, op_key)
        except InvalidOperationRequestError as e:
            logger.warning("workload %s waits on an invalid data operation: %s", key, e)
            self._recorder.record(workload, EventType.WARNING, REASON_OPERATION_NOT_VALID, str(e))
            return ReconcileResult.no_requeue()
        except Exception as e:
            logger.error("get data operation status failed for %s %s: %s", op_type, op_key, e)
            return ReconcileResult.requeue_with_error(e)

        if status.phase == OperationPhase.FAILED:
            return self._conclude(
                workload, CheckState.REJECTED, MESSAGE_REJECTED,
                EventType.WARNING, REASON_OPERATION_FAILED, "reject workload",
            )

        if status.phase == OperationPhase.COMPLETE:
            return self._conclude(
                workload, CheckState.READY, MESSAGE_READY,
                EventType.NORMAL, REASON_OPERATION_COMPLETED, "run workload",
            )

        logger.debug(
            "workload %s: %s %s is %r, polling again in %.1fs",
            key, op_type, op_key, status.phase.value, self._config.poll_interval_s,
        )
        return ReconcileResult.requeue_after(self._config.poll_interval_s)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _conclude(
        self,
        workload: Workload,
        state: CheckState,
        message: str,
        event_type: EventType,
        reason: str,
        event_message: str,
    ) -> ReconcileResult:
        """Record the verdict event and commit the owned entry, once per transition."""
        controller_name = self._config.controller_name
        try:
            entry = owned_gate_state(self._store, workload, controller_name)
        except (GateStateNotFoundError, AmbiguousGateStateError) as e:
            return self._on_missing_gate_state(workload, e)
        except Exception as e:
            logger.error("resolve gate state of workload %s failed: %s", workload.key, e)
            return ReconcileResult.requeue_with_error(e)

        if entry.state in TERMINAL_STATES:
            # already concluded: no second event, no write
            logger.debug(
                "workload %s: gate %s already %s", workload.key, entry.name, entry.state.value
            )
            return ReconcileResult.no_requeue()

        self._recorder.record(workload, event_type, reason, event_message)
        try:
            commit_gate_state(
                self._store, workload, controller_name, state, message, entry=entry
            )
        except Exception as e:
            logger.error("update workload %s status failed: %s", workload.key, e)
            return ReconcileResult.requeue_with_error(e)
        return ReconcileResult.no_requeue()

    def _on_missing_gate_state(self, workload: Workload, error: Exception) -> ReconcileResult:
        if self._config.missing_gate_state_policy == MissingGateStatePolicy.FAIL:
            logger.warning("giving up on workload %s: %s", workload.key, error)
            self._recorder.record(
                workload, EventType.WARNING, REASON_GATE_STATE_MISSING, str(error)
            )
            return ReconcileResult.no_requeue()
        logger.error("workload %s: %s", workload.key, error)
        return ReconcileResult.requeue_with_error(error)
