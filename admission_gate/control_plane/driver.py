"""
admission_gate/control_plane/driver.py
──────────────────────────────────────
ReconcileDriver: the keyed work queue that runs the reconcilers.

What it does
─────────────
  - One reconciler per kind (register()).
  - enqueue(kind, key) schedules a key; a key already queued keeps its
    earliest due time, so a burst of changes collapses into one reconcile.
  - run_once(now) pops every key that is due, invokes its reconciler and
    re-schedules according to the ReconcileResult:

        no_requeue()          forget the key, reset its failure count
        requeue_after(s)      due again at now + s, reset failure count
        requeue_with_error(e) due again at now + backoff(failures)

    backoff(n) = min(base_backoff_s * 2**(n-1), max_backoff_s)

  - A key is handled at most once per pass. A key re-enqueued while its
    reconcile runs (e.g. by the reconciler's own write) waits for the next
    pass, so the same key is never reconciled concurrently with itself.

Wiring
───────
    driver = setup_controllers(store, recorder)
    driver.enqueue_all(store)          # initial list
    driver.run_once()                  # call periodically

setup_controllers() registers AdmissionController for Workload and
GateActivator for GateDefinition, and subscribes the driver to the
store's write notifications for those two kinds.

Thread safety
──────────────
Not thread-safe. Drive it from one thread; concurrency across keys belongs
to the outer platform.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from admission_gate.cluster.events import EventRecorder
from admission_gate.cluster.object_store import ListableObjectStore, ObjectStore
from admission_gate.control_plane.admission_controller import AdmissionController
from admission_gate.control_plane.gate_activator import GateActivator
from admission_gate.control_plane.operation_status import (
    OperationStatusLookup,
    StoreOperationStatusLookup,
)
from admission_gate.shared.config import ControllerConfig
from admission_gate.shared.models import (
    GateDefinition,
    NamespacedName,
    ReconcileResult,
    Workload,
)

logger = logging.getLogger(__name__)

QueueKey = Tuple[str, NamespacedName]


class Reconciler(Protocol):
    def reconcile(self, key: NamespacedName) -> ReconcileResult:
        ...


class ReconcileDriver:
    """
    Keyed delaying queue plus per-key failure counters.

    Args:
        config: Supplies base_backoff_s / max_backoff_s.
        clock:  Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        config: Optional[ControllerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or ControllerConfig()
        self._clock = clock
        self._reconcilers: Dict[str, Reconciler] = {}
        self._queue: Dict[QueueKey, float] = {}
        self._failures: Dict[QueueKey, int] = {}
        self.reconcile_count: int = 0

    # ── Registration + enqueue ────────────────────────────────────────────────

    def register(self, kind: str, reconciler: Reconciler) -> None:
        if kind in self._reconcilers:
            raise ValueError(f"a reconciler for {kind} is already registered")
        self._reconcilers[kind] = reconciler

    def enqueue(
        self,
        kind: str,
        key: NamespacedName,
        delay_s: float = 0.0,
        now: Optional[float] = None,
    ) -> None:
        """Schedule (kind, key). Unregistered kinds are ignored."""
        if kind not in self._reconcilers:
            return
        now = self._clock() if now is None else now
        due = now + delay_s
        qkey = (kind, key)
        current = self._queue.get(qkey)
        if current is None or due < current:
            self._queue[qkey] = due

    def enqueue_all(self, store: ListableObjectStore, now: Optional[float] = None) -> None:
        """Enqueue every stored object of every registered kind."""
        for kind in self._reconcilers:
            for key in store.keys(kind):
                self.enqueue(kind, key, now=now)

    def on_store_event(self, kind: str, key: NamespacedName) -> None:
        """Watch callback for InMemoryObjectStore.watch()."""
        self.enqueue(kind, key)

    # ── Processing ────────────────────────────────────────────────────────────

    def run_once(self, now: Optional[float] = None) -> int:
        """
        Reconcile every key due at ``now``.

        Returns:
            Number of reconciles performed.
        """
        now = self._clock() if now is None else now
        due = sorted(
            ((when, qkey) for qkey, when in self._queue.items() if when <= now),
            key=lambda item: item[0],
        )
        for _, qkey in due:
            del self._queue[qkey]

        for _, (kind, key) in due:
            result = self._invoke(kind, key)
            self._schedule(kind, key, result, now)
        return len(due)

    # ── Introspection ─────────────────────────────────────────────────────────

    def due_at(self, kind: str, key: NamespacedName) -> Optional[float]:
        return self._queue.get((kind, key))

    def failures(self, kind: str, key: NamespacedName) -> int:
        return self._failures.get((kind, key), 0)

    def next_due(self) -> Optional[float]:
        return min(self._queue.values(), default=None)

    @property
    def queued(self) -> List[QueueKey]:
        return list(self._queue)

    def backoff(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        delay = self._config.base_backoff_s * (2 ** (failures - 1))
        return min(delay, self._config.max_backoff_s)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _invoke(self, kind: str, key: NamespacedName) -> ReconcileResult:
        self.reconcile_count += 1
        try:
            return self._reconcilers[kind].reconcile(key)
        except Exception as e:
            logger.exception("reconciler for %s raised on %s", kind, key)
            return ReconcileResult.requeue_with_error(e)

    def _schedule(
        self, kind: str, key: NamespacedName, result: ReconcileResult, now: float
    ) -> None:
        qkey = (kind, key)
        if result.error is not None:
            failures = self._failures.get(qkey, 0) + 1
            self._failures[qkey] = failures
            delay = self.backoff(failures)
            logger.info(
                "requeue %s %s in %.3fs after error #%d: %s",
                kind, key, delay, failures, result.error,
            )
            self.enqueue(kind, key, delay_s=delay, now=now)
            return

        self._failures.pop(qkey, None)
        if result.requeue_after_s is not None:
            self.enqueue(kind, key, delay_s=result.requeue_after_s, now=now)

    def __repr__(self) -> str:
        return (
            f"ReconcileDriver(kinds={sorted(self._reconcilers)}, "
            f"queued={len(self._queue)}, reconciles={self.reconcile_count})"
        )


def setup_controllers(
    store: ObjectStore,
    recorder: EventRecorder,
    config: Optional[ControllerConfig] = None,
    lookup: Optional[OperationStatusLookup] = None,
    clock: Callable[[], float] = time.monotonic,
) -> ReconcileDriver:
    """
    Build a driver running both reconcilers against ``store``.

    Args:
        store:    Object store. When it supports watch(), the driver
                  subscribes to its write notifications.
        recorder: Event sink for the admission controller.
        config:   Shared controller config.
        lookup:   Operation-status collaborator; defaults to reading data
                  operations from ``store``.
        clock:    Time source for the driver.
    """
    config = config or ControllerConfig()
    lookup = lookup or StoreOperationStatusLookup(store)

    driver = ReconcileDriver(config=config, clock=clock)
    driver.register(Workload.KIND, AdmissionController(store, recorder, lookup, config))
    driver.register(GateDefinition.KIND, GateActivator(store, config))

    watch = getattr(store, "watch", None)
    if watch is not None:
        watch(driver.on_store_event)

    logger.info(
        "admission gate %s started (poll every %.1fs, missing gate state → %s)",
        config.controller_name, config.poll_interval_s,
        config.missing_gate_state_policy.value,
    )
    return driver
