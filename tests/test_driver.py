"""
tests/test_driver.py
─────────────────────
ReconcileDriver, setup_controllers() and ControllerConfig.

Test groups:
    Group 1 — Queue semantics (collapse, ordering, one run per key per pass)
    Group 2 — Result handling (requeue-after, error backoff, reset)
    Group 3 — End-to-end with both reconcilers
    Group 4 — ControllerConfig
"""

from __future__ import annotations

from typing import List

import pytest
from pydantic import ValidationError

from admission_gate.cluster.events import InMemoryEventRecorder
from admission_gate.cluster.object_store import InMemoryObjectStore
from admission_gate.control_plane.admission_controller import (
    REASON_OPERATION_COMPLETED,
    REASON_OPERATION_FAILED,
)
from admission_gate.control_plane.driver import ReconcileDriver, setup_controllers
from admission_gate.shared.conditions import is_condition_true
from admission_gate.shared.config import (
    CONTROLLER_NAME,
    LABEL_OP_NAME,
    LABEL_OP_NAMESPACE,
    LABEL_OP_TYPE,
    ControllerConfig,
    MissingGateStatePolicy,
)
from admission_gate.shared.models import (
    ACTIVE_CONDITION,
    CheckState,
    DataOperation,
    EventType,
    GateDefinition,
    GateDefinitionSpec,
    GateState,
    NamespacedName,
    ObjectMeta,
    OperationPhase,
    OperationStatus,
    PodSet,
    PodTemplate,
    ReconcileResult,
    Workload,
    WorkloadSpec,
    WorkloadStatus,
)

KEY_A = NamespacedName(name="a", namespace="ns")
KEY_B = NamespacedName(name="b", namespace="ns")


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class ScriptedReconciler:
    """Returns queued results in order and remembers which keys it saw."""

    def __init__(self, *results: ReconcileResult) -> None:
        self.results: List[ReconcileResult] = list(results)
        self.seen: List[NamespacedName] = []

    def reconcile(self, key: NamespacedName) -> ReconcileResult:
        self.seen.append(key)
        if self.results:
            return self.results.pop(0)
        return ReconcileResult.no_requeue()


def _driver(clock: FakeClock, **config) -> ReconcileDriver:
    return ReconcileDriver(config=ControllerConfig(**config), clock=clock)


# ─────────────────────────────────────────────────────────────────────────────
# Group 1: Queue semantics
# ─────────────────────────────────────────────────────────────────────────────

class TestQueue:

    def test_unregistered_kind_is_ignored(self) -> None:
        driver = _driver(FakeClock())
        driver.enqueue("DataLoad", KEY_A)
        assert driver.queued == []

    def test_duplicate_register_rejected(self) -> None:
        driver = _driver(FakeClock())
        driver.register("Workload", ScriptedReconciler())
        with pytest.raises(ValueError):
            driver.register("Workload", ScriptedReconciler())

    def test_enqueue_all_lists_any_keyed_store(self) -> None:
        class ListOnlyStore:
            def get(self, kind, key):
                raise NotImplementedError

            def update_status(self, obj):
                raise NotImplementedError

            def keys(self, kind):
                return [KEY_A, KEY_B] if kind == "Workload" else [KEY_A]

        driver = _driver(FakeClock())
        driver.register("Workload", ScriptedReconciler())

        driver.enqueue_all(ListOnlyStore(), now=0.0)

        assert sorted(str(key) for _, key in driver.queued) == ["ns/a", "ns/b"]

    def test_repeated_enqueue_collapses_to_earliest(self) -> None:
        clock = FakeClock()
        driver = _driver(clock)
        reconciler = ScriptedReconciler()
        driver.register("Workload", reconciler)

        driver.enqueue("Workload", KEY_A, delay_s=30.0)
        driver.enqueue("Workload", KEY_A, delay_s=5.0)
        driver.enqueue("Workload", KEY_A, delay_s=60.0)

        assert driver.due_at("Workload", KEY_A) == 5.0
        assert driver.run_once(now=4.0) == 0
        assert driver.run_once(now=5.0) == 1
        assert reconciler.seen == [KEY_A]

    def test_due_keys_run_in_due_order(self) -> None:
        driver = _driver(FakeClock())
        reconciler = ScriptedReconciler()
        driver.register("Workload", reconciler)
        driver.enqueue("Workload", KEY_A, delay_s=2.0, now=0.0)
        driver.enqueue("Workload", KEY_B, delay_s=1.0, now=0.0)

        driver.run_once(now=3.0)

        assert reconciler.seen == [KEY_B, KEY_A]

    def test_key_enqueued_during_its_reconcile_waits_for_next_pass(self) -> None:
        clock = FakeClock()
        driver = _driver(clock)

        class SelfEnqueuing(ScriptedReconciler):
            def reconcile(self, key):
                driver.enqueue("Workload", key)
                return super().reconcile(key)

        reconciler = SelfEnqueuing()
        driver.register("Workload", reconciler)
        driver.enqueue("Workload", KEY_A)

        assert driver.run_once() == 1
        assert reconciler.seen == [KEY_A]
        assert driver.queued == [("Workload", KEY_A)]

    def test_raising_reconciler_is_treated_as_error(self) -> None:
        driver = _driver(FakeClock(), base_backoff_s=1.0)

        class Exploding:
            def reconcile(self, key):
                raise RuntimeError("boom")

        driver.register("Workload", Exploding())
        driver.enqueue("Workload", KEY_A, now=0.0)

        driver.run_once(now=0.0)

        assert driver.failures("Workload", KEY_A) == 1
        assert driver.due_at("Workload", KEY_A) == 1.0


# ─────────────────────────────────────────────────────────────────────────────
# Group 2: Result handling
# ─────────────────────────────────────────────────────────────────────────────

class TestResults:

    def test_no_requeue_forgets_key(self) -> None:
        driver = _driver(FakeClock())
        driver.register("Workload", ScriptedReconciler(ReconcileResult.no_requeue()))
        driver.enqueue("Workload", KEY_A)
        driver.run_once()
        assert driver.queued == []

    def test_requeue_after_is_fixed_delay(self) -> None:
        driver = _driver(FakeClock())
        driver.register("Workload", ScriptedReconciler(
            ReconcileResult.requeue_after(10.0),
            ReconcileResult.requeue_after(10.0),
        ))
        driver.enqueue("Workload", KEY_A, now=0.0)

        driver.run_once(now=0.0)
        assert driver.due_at("Workload", KEY_A) == 10.0
        driver.run_once(now=10.0)
        assert driver.due_at("Workload", KEY_A) == 20.0
        assert driver.failures("Workload", KEY_A) == 0

    def test_error_backoff_is_exponential_and_capped(self) -> None:
        driver = _driver(FakeClock(), base_backoff_s=1.0, max_backoff_s=4.0)
        error = ReconcileResult.requeue_with_error(ConnectionError("down"))
        driver.register("Workload", ScriptedReconciler(error, error, error, error))
        driver.enqueue("Workload", KEY_A, now=0.0)

        now = 0.0
        delays = []
        for _ in range(4):
            driver.run_once(now=now)
            due = driver.due_at("Workload", KEY_A)
            delays.append(due - now)
            now = due

        assert delays == [1.0, 2.0, 4.0, 4.0]
        assert driver.failures("Workload", KEY_A) == 4

    def test_success_resets_failures(self) -> None:
        driver = _driver(FakeClock(), base_backoff_s=1.0)
        driver.register("Workload", ScriptedReconciler(
            ReconcileResult.requeue_with_error(ConnectionError("down")),
            ReconcileResult.requeue_after(10.0),
        ))
        driver.enqueue("Workload", KEY_A, now=0.0)

        driver.run_once(now=0.0)
        assert driver.failures("Workload", KEY_A) == 1
        driver.run_once(now=1.0)
        assert driver.failures("Workload", KEY_A) == 0
        assert driver.due_at("Workload", KEY_A) == 11.0

    def test_backoff_of_zero_failures(self) -> None:
        assert _driver(FakeClock()).backoff(0) == 0.0


# ─────────────────────────────────────────────────────────────────────────────
# Group 3: End-to-end
# ─────────────────────────────────────────────────────────────────────────────

WL_KEY = NamespacedName(name="w", namespace="default")
GATE_KEY = NamespacedName(name="gate1")
OP_KEY = NamespacedName(name="op1", namespace="ns1")


def _seed(store: InMemoryObjectStore, phase: OperationPhase) -> None:
    store.create(GateDefinition(
        metadata=ObjectMeta(name=GATE_KEY.name),
        spec=GateDefinitionSpec(controller_name=CONTROLLER_NAME),
    ))
    store.create(DataOperation(
        kind="DataLoad",
        metadata=ObjectMeta(name=OP_KEY.name, namespace=OP_KEY.namespace),
        status=OperationStatus(phase=phase),
    ))
    store.create(Workload(
        metadata=ObjectMeta(name=WL_KEY.name, namespace=WL_KEY.namespace),
        spec=WorkloadSpec(pod_sets=[PodSet(template=PodTemplate(labels={
            LABEL_OP_TYPE: "DataLoad",
            LABEL_OP_NAME: OP_KEY.name,
            LABEL_OP_NAMESPACE: OP_KEY.namespace,
        }))]),
        status=WorkloadStatus(gate_states=[GateState(name=GATE_KEY.name)]),
    ))


def _set_phase(store: InMemoryObjectStore, phase: OperationPhase) -> None:
    operation = store.get("DataLoad", OP_KEY)
    operation.status.phase = phase
    store.replace(operation)


class TestEndToEnd:

    def test_workload_waits_then_becomes_ready(self) -> None:
        clock = FakeClock()
        store = InMemoryObjectStore()
        recorder = InMemoryEventRecorder()
        _seed(store, OperationPhase.EXECUTING)
        driver = setup_controllers(store, recorder, clock=clock)
        driver.enqueue_all(store)

        # pass 1: gate activated, workload polls again in 10s
        assert driver.run_once() == 2
        assert is_condition_true(
            store.get(GateDefinition.KIND, GATE_KEY).status.conditions, ACTIVE_CONDITION
        )
        assert driver.due_at(Workload.KIND, WL_KEY) == 10.0

        # the activation write re-delivers the gate; nothing more to do
        driver.run_once()
        assert driver.due_at(GateDefinition.KIND, GATE_KEY) is None

        _set_phase(store, OperationPhase.COMPLETE)
        clock.now = 5.0
        assert driver.run_once() == 0

        clock.now = 10.0
        driver.run_once()
        state = store.get(Workload.KIND, WL_KEY).status.gate_states[0]
        assert state.state == CheckState.READY
        assert state.message == "waited data operation is completed"

        # the status write re-delivers the workload; a terminal entry is not rewritten
        writes = store.status_writes
        driver.run_once()
        driver.run_once()
        assert store.status_writes == writes
        assert driver.queued == []
        events = [e for e in recorder.events if e.key == WL_KEY]
        assert len(events) == 1
        assert events[0].type == EventType.NORMAL
        assert events[0].reason == REASON_OPERATION_COMPLETED

    def test_failed_operation_rejects_workload(self) -> None:
        clock = FakeClock()
        store = InMemoryObjectStore()
        recorder = InMemoryEventRecorder()
        _seed(store, OperationPhase.FAILED)
        driver = setup_controllers(store, recorder, clock=clock)
        driver.enqueue_all(store)

        driver.run_once()

        state = store.get(Workload.KIND, WL_KEY).status.gate_states[0]
        assert state.state == CheckState.REJECTED

        # never admitted, so every later write re-delivers it; the verdict is reported once
        writes = store.status_writes
        driver.run_once()
        driver.run_once()
        assert store.status_writes == writes
        events = [e for e in recorder.events if e.key == WL_KEY]
        assert [(e.type, e.reason) for e in events] == [
            (EventType.WARNING, REASON_OPERATION_FAILED)
        ]

    def test_missing_operation_backs_off(self) -> None:
        clock = FakeClock()
        store = InMemoryObjectStore()
        _seed(store, OperationPhase.EXECUTING)
        store.delete("DataLoad", OP_KEY)
        driver = setup_controllers(
            store, InMemoryEventRecorder(),
            config=ControllerConfig(base_backoff_s=0.5), clock=clock,
        )
        driver.enqueue_all(store)

        driver.run_once()

        assert driver.failures(Workload.KIND, WL_KEY) == 1
        assert driver.due_at(Workload.KIND, WL_KEY) == 0.5


# ─────────────────────────────────────────────────────────────────────────────
# Group 4: ControllerConfig
# ─────────────────────────────────────────────────────────────────────────────

class TestControllerConfig:

    def test_defaults(self) -> None:
        config = ControllerConfig()
        assert config.controller_name == CONTROLLER_NAME
        assert config.poll_interval_s == 10.0
        assert config.missing_gate_state_policy == MissingGateStatePolicy.RETRY

    def test_from_env(self) -> None:
        config = ControllerConfig.from_env({
            "ADMISSION_GATE_CONTROLLER_NAME": "example.com/gate",
            "ADMISSION_GATE_POLL_INTERVAL_S": "30",
            "ADMISSION_GATE_MISSING_GATE_STATE_POLICY": "FAIL",
            "UNRELATED": "x",
        })
        assert config.controller_name == "example.com/gate"
        assert config.poll_interval_s == 30.0
        assert config.missing_gate_state_policy == MissingGateStatePolicy.FAIL

    def test_from_env_overrides_win(self) -> None:
        config = ControllerConfig.from_env(
            {"ADMISSION_GATE_POLL_INTERVAL_S": "30"}, poll_interval_s=1.0
        )
        assert config.poll_interval_s == 1.0

    @pytest.mark.parametrize(
        "env",
        [
            {"ADMISSION_GATE_POLL_INTERVAL_S": "0"},
            {"ADMISSION_GATE_POLL_INTERVAL_S": "soon"},
            {"ADMISSION_GATE_MISSING_GATE_STATE_POLICY": "ignore"},
        ],
    )
    def test_bad_values_rejected(self, env) -> None:
        with pytest.raises(ValidationError):
            ControllerConfig.from_env(env)
