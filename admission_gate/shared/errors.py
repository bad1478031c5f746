"""
admission_gate/shared/errors.py
───────────────────────────────
Error taxonomy of the admission gate.

How each class is handled by the reconcilers
─────────────────────────────────────────────
  ObjectNotFoundError            absorbed: the object was deleted, nothing to do.
  InvalidOperationRequestError   absorbed after a Warning event: the reference
                                 on the workload is wrong and retrying cannot
                                 fix it.
  ConflictError                  requeue with error: re-read and try again.
  OperationStatusUnavailableError
                                 requeue with error: the collaborator could not
                                 answer right now.
  GateStateNotFoundError /
  AmbiguousGateStateError        internal invariant violation. Handled by
                                 ControllerConfig.missing_gate_state_policy.
"""

from __future__ import annotations

from typing import List, Optional

from admission_gate.shared.models import NamespacedName


class AdmissionGateError(Exception):
    """
    Base class for every error raised by this package.

    Attributes:
        reason: Human-readable explanation.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class ObjectNotFoundError(AdmissionGateError):
    """Raised by the object store when no object exists for (kind, key)."""

    def __init__(self, kind: str, key: NamespacedName) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {str(key)!r} not found")


class ConflictError(AdmissionGateError):
    """
    Raised on a write carrying a stale resource_version.

    The writer must re-read the object and recompute its change; the store
    never applies last-writer-wins.
    """

    def __init__(self, kind: str, key: NamespacedName, expected: int, actual: int) -> None:
        self.kind = kind
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"{kind} {str(key)!r} was modified: write carried resource_version "
            f"{actual}, stored is {expected}. Re-read and retry."
        )


class InvalidOperationRequestError(AdmissionGateError):
    """The operation reference itself is invalid (unknown type tag, empty name)."""

    def __init__(self, op_type: str, key: NamespacedName, reason: str) -> None:
        self.op_type = op_type
        self.key = key
        super().__init__(f"invalid data operation {op_type!r} {str(key)!r}: {reason}")


class OperationStatusUnavailableError(AdmissionGateError):
    """The operation status could not be retrieved right now. Transient."""

    def __init__(self, op_type: str, key: NamespacedName, cause: Optional[Exception] = None) -> None:
        self.op_type = op_type
        self.key = key
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"status of {op_type} {str(key)!r} unavailable{detail}")


class GateStateNotFoundError(AdmissionGateError):
    """No gate-state entry on the workload resolves to this controller."""

    def __init__(self, workload: NamespacedName, controller_name: str) -> None:
        self.workload = workload
        self.controller_name = controller_name
        super().__init__(
            f"can not find admission check state for {controller_name} "
            f"on workload {str(workload)!r}"
        )


class AmbiguousGateStateError(AdmissionGateError):
    """More than one gate-state entry resolves to this controller."""

    def __init__(self, workload: NamespacedName, controller_name: str, names: List[str]) -> None:
        self.workload = workload
        self.controller_name = controller_name
        self.names = list(names)
        super().__init__(
            f"workload {str(workload)!r} has {len(names)} admission check states "
            f"owned by {controller_name}: {', '.join(names)}"
        )
