"""
admission_gate/shared/models.py
───────────────────────────────
Every resource the admission gate reads, mutates or returns.

Reading guide
-------------
Section 1 holds the small enumerations. Section 2 is the generic condition
record shared by gate definitions and workloads. Sections 3–5 describe the
three resources the controllers touch (GateDefinition, Workload, the external
DataOperation). Section 6 is what a reconcile hands back to the driver.

Objects are owned by the object store. A reconciler always works on a copy
returned by ``get()`` and only persists it through ``update_status()``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import ClassVar, Dict, List, Optional

from pydantic import BaseModel, Field


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 1: ENUMERATIONS
# ─────────────────────────────────────────────────────────────────────────────

class ConditionStatus(str, Enum):
    """Tri-state status of a condition, as the API server reports it."""
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class CheckState(str, Enum):
    """
    Admission progress of one gate on one workload.

    PENDING  → set by the queueing system when the workload enters the gate.
    READY    → the waited data operation completed. Terminal.
    REJECTED → the waited data operation failed. Terminal.
    """
    PENDING = "Pending"
    READY = "Ready"
    REJECTED = "Rejected"


class OperationPhase(str, Enum):
    """
    Lifecycle phase of an external data operation.

    Only COMPLETE and FAILED conclude the wait; everything else (including
    the empty phase of a freshly created operation) means "still running".
    """
    NONE = ""
    PENDING = "Pending"
    EXECUTING = "Executing"
    COMPLETE = "Complete"
    FAILED = "Failed"


class EventType(str, Enum):
    """Severity of a recorded event."""
    NORMAL = "Normal"
    WARNING = "Warning"


# Condition kinds the controllers care about.
ACTIVE_CONDITION = "Active"
ADMITTED_CONDITION = "Admitted"


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 2: IDENTITY + CONDITIONS
# ─────────────────────────────────────────────────────────────────────────────

class NamespacedName(BaseModel):
    """
    Key of a stored object. Cluster-scoped objects use an empty namespace.
    """
    name: str = Field(..., description="Object name")
    namespace: str = Field("", description="Object namespace; empty for cluster scope")

    model_config = {"frozen": True}

    def __str__(self) -> str:
        if not self.namespace:
            return self.name
        return f"{self.namespace}/{self.name}"


class ObjectMeta(BaseModel):
    """Metadata common to every stored object."""
    name: str
    namespace: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    resource_version: int = Field(
        0, ge=0,
        description="Bumped by the store on every write. Used for optimistic concurrency."
    )

    @property
    def key(self) -> NamespacedName:
        return NamespacedName(name=self.name, namespace=self.namespace)


class Condition(BaseModel):
    """
    One observed condition on an object's status.

    ``type`` is the key: a condition list never holds two entries with the
    same type (see shared/conditions.py).
    """
    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: datetime = Field(default_factory=datetime.utcnow)


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 3: GATE DEFINITION
# ─────────────────────────────────────────────────────────────────────────────

class GateDefinitionSpec(BaseModel):
    controller_name: str = Field(
        ..., description="Identity of the controller that evaluates this gate"
    )


class GateDefinitionStatus(BaseModel):
    conditions: List[Condition] = Field(default_factory=list)


class GateDefinition(BaseModel):
    """
    A cluster-scoped, named admission check.

    Created by an administrator. The gate activator marks it Active once;
    the admission controller only ever reads ``spec.controller_name``.
    """
    KIND: ClassVar[str] = "GateDefinition"

    metadata: ObjectMeta
    spec: GateDefinitionSpec
    status: GateDefinitionStatus = Field(default_factory=GateDefinitionStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 4: WORKLOAD
# ─────────────────────────────────────────────────────────────────────────────

class PodTemplate(BaseModel):
    labels: Dict[str, str] = Field(default_factory=dict)


class PodSet(BaseModel):
    """One group of identical pods inside a workload."""
    name: str = "main"
    count: int = Field(1, ge=0)
    template: PodTemplate = Field(default_factory=PodTemplate)


class GateState(BaseModel):
    """
    Per-workload record of one gate's verdict.

    ``name`` references a GateDefinition. The queueing system appends one
    entry per gate before this controller ever sees the workload.
    """
    name: str
    state: CheckState = CheckState.PENDING
    message: str = ""
    last_transition_time: datetime = Field(default_factory=datetime.utcnow)


class WorkloadSpec(BaseModel):
    pod_sets: List[PodSet] = Field(default_factory=list)


class WorkloadStatus(BaseModel):
    gate_states: List[GateState] = Field(default_factory=list)
    conditions: List[Condition] = Field(default_factory=list)


class Workload(BaseModel):
    """
    One unit of work waiting for admission.

    Once admitted, the workload is frozen from this controller's point of
    view: no reconcile re-evaluates it.
    """
    KIND: ClassVar[str] = "Workload"

    metadata: ObjectMeta
    spec: WorkloadSpec = Field(default_factory=WorkloadSpec)
    status: WorkloadStatus = Field(default_factory=WorkloadStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key

    @property
    def is_admitted(self) -> bool:
        """True when the queueing system has recorded an Admitted=True condition."""
        for condition in self.status.conditions:
            if condition.type == ADMITTED_CONDITION:
                return condition.status == ConditionStatus.TRUE
        return False


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 5: EXTERNAL DATA OPERATION (read-only)
# ─────────────────────────────────────────────────────────────────────────────

class OperationStatus(BaseModel):
    """Status block shared by every data-operation kind."""
    phase: OperationPhase = OperationPhase.NONE
    duration: str = ""


class DataOperation(BaseModel):
    """
    A data-preparation job (DataLoad, DataProcess, DataMigrate, DataBackup).

    Owned by the operation platform. The admission gate only reads
    ``status.phase``; ``kind`` selects which store bucket it lives in.
    """
    kind: str = Field(..., description="Operation kind, e.g. 'DataLoad'")
    metadata: ObjectMeta
    status: OperationStatus = Field(default_factory=OperationStatus)

    @property
    def key(self) -> NamespacedName:
        return self.metadata.key


# ─────────────────────────────────────────────────────────────────────────────
# SECTION 6: EVENTS + RECONCILE RESULT
# ─────────────────────────────────────────────────────────────────────────────

class Event(BaseModel):
    """A user-facing event attached to an object."""
    kind: str
    key: NamespacedName
    type: EventType
    reason: str
    message: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ReconcileResult(BaseModel):
    """
    What one reconcile tells the driver. Exactly one of three shapes:

        no_requeue()          → forget the key until the next change
        requeue_after(secs)   → re-invoke after a fixed delay, no backoff
        requeue_with_error(e) → re-invoke with the driver's error backoff
    """
    requeue_after_s: Optional[float] = Field(None, gt=0)
    error: Optional[Exception] = None

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def no_requeue(cls) -> "ReconcileResult":
        return cls()

    @classmethod
    def requeue_after(cls, seconds: float) -> "ReconcileResult":
        return cls(requeue_after_s=seconds)

    @classmethod
    def requeue_with_error(cls, error: Exception) -> "ReconcileResult":
        return cls(error=error)

    @property
    def requeue(self) -> bool:
        return self.error is not None or self.requeue_after_s is not None
