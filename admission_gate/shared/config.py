"""
admission_gate/shared/config.py
───────────────────────────────
ControllerConfig: every tunable of the two reconcilers and the driver.

Defaults reproduce the behaviour of the upstream data-operation gate
(10 s polling, retry forever when the owned gate state is missing).
Deployments override values in code or via ``ADMISSION_GATE_*`` environment
variables (see ``from_env``).
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Mapping, Optional

from pydantic import BaseModel, Field

CONTROLLER_NAME: str = "fluid.io/dataop-admission"
"""Identity written into GateDefinition.spec.controller_name by administrators."""

DEFAULT_POLL_INTERVAL_S: float = 10.0
"""
Delay before re-polling an operation that is still running.

Fixed, not exponential: progress is gated by the external operation, not
by controller load.
"""

LABEL_OP_TYPE: str = "fluid.io/wait-dataop-type"
LABEL_OP_NAME: str = "fluid.io/wait-dataop-name"
LABEL_OP_NAMESPACE: str = "fluid.io/wait-dataop-namespace"

ENV_PREFIX: str = "ADMISSION_GATE_"


class MissingGateStatePolicy(str, Enum):
    """
    What to do when a workload has no (or more than one) gate-state entry
    owned by this controller.

    RETRY → requeue with error; the driver backs off and tries again.
    FAIL  → emit a Warning event and stop; an operator must fix the workload.
    """
    RETRY = "retry"
    FAIL = "fail"


class ControllerConfig(BaseModel):
    controller_name: str = Field(CONTROLLER_NAME, min_length=1)
    poll_interval_s: float = Field(
        DEFAULT_POLL_INTERVAL_S, gt=0,
        description="requeue-after for operations that have not concluded yet"
    )
    missing_gate_state_policy: MissingGateStatePolicy = MissingGateStatePolicy.RETRY

    label_op_type: str = LABEL_OP_TYPE
    label_op_name: str = LABEL_OP_NAME
    label_op_namespace: str = LABEL_OP_NAMESPACE

    # Per-key error backoff used by ReconcileDriver
    base_backoff_s: float = Field(0.005, gt=0)
    max_backoff_s: float = Field(1000.0, gt=0)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ControllerConfig":
        """
        Build a config from ``ADMISSION_GATE_*`` variables.

        Recognised: CONTROLLER_NAME, POLL_INTERVAL_S, MISSING_GATE_STATE_POLICY,
        BASE_BACKOFF_S, MAX_BACKOFF_S. Explicit keyword overrides win.
        Bad values raise pydantic.ValidationError.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for field_name in (
            "controller_name",
            "poll_interval_s",
            "missing_gate_state_policy",
            "base_backoff_s",
            "max_backoff_s",
        ):
            raw = environ.get(ENV_PREFIX + field_name.upper())
            if raw is not None and raw != "":
                values[field_name] = raw.lower() if field_name == "missing_gate_state_policy" else raw
        values.update(overrides)
        return cls(**values)
