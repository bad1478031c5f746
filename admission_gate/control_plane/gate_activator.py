"""
admission_gate/control_plane/gate_activator.py
──────────────────────────────────────────────
GateActivator: marks this controller's gate definitions Active.

A gate definition is ours when ``spec.controller_name`` equals the
configured controller name; foreign definitions are never written. Ours get
an ``Active`` condition with status True exactly once. When the condition is
already True nothing is written, which keeps resource versions stable and
avoids conflicts with other writers.
"""

from __future__ import annotations

import logging
from typing import Optional

from admission_gate.cluster.object_store import ObjectStore
from admission_gate.shared.conditions import is_condition_true, set_condition
from admission_gate.shared.config import ControllerConfig
from admission_gate.shared.errors import ObjectNotFoundError
from admission_gate.shared.models import (
    ACTIVE_CONDITION,
    Condition,
    ConditionStatus,
    GateDefinition,
    NamespacedName,
    ReconcileResult,
)

logger = logging.getLogger(__name__)

ACTIVE_REASON = "Active"
ACTIVE_MESSAGE = "the admission check is active"


class GateActivator:
    """GateDefinition reconciler."""

    def __init__(self, store: ObjectStore, config: Optional[ControllerConfig] = None) -> None:
        self._store = store
        self._config = config or ControllerConfig()

    def reconcile(self, key: NamespacedName) -> ReconcileResult:
        try:
            gate = self._store.get(GateDefinition.KIND, key)
        except ObjectNotFoundError:
            return ReconcileResult.no_requeue()
        except Exception as e:
            logger.error("failed to get gate definition %s: %s", key, e)
            return ReconcileResult.requeue_with_error(e)

        if gate.spec.controller_name != self._config.controller_name:
            return ReconcileResult.no_requeue()

        if is_condition_true(gate.status.conditions, ACTIVE_CONDITION):
            return ReconcileResult.no_requeue()

        gate.status.conditions = set_condition(
            gate.status.conditions,
            Condition(
                type=ACTIVE_CONDITION,
                status=ConditionStatus.TRUE,
                reason=ACTIVE_REASON,
                message=ACTIVE_MESSAGE,
            ),
        )
        try:
            self._store.update_status(gate)
        except Exception as e:
            logger.error("failed to activate gate definition %s: %s", key, e)
            return ReconcileResult.requeue_with_error(e)

        logger.info("gate definition %s is active", key)
        return ReconcileResult.no_requeue()
