"""
admission_gate/cluster/object_store.py
──────────────────────────────────────
Object store contract consumed by the reconcilers, plus an in-memory
implementation used by tests and local runs.

Contract
─────────
    get(kind, key)        → deep copy of the stored object
                            raises ObjectNotFoundError if absent
    update_status(obj)    → persist obj.status only
                            raises ObjectNotFoundError if deleted meanwhile
                            raises ConflictError on a stale resource_version

Optimistic concurrency
───────────────────────
Every stored object carries ``metadata.resource_version``. A write must
carry the version it was read at; the store bumps it on success. A stale
write is rejected, never merged.

Watches
────────
``watch(callback)`` registers a function called with (kind, key) after every
create / update_status / delete. ReconcileDriver uses it to re-enqueue keys,
which gives the level-triggered re-delivery a real API server provides.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Protocol, Tuple

from pydantic import BaseModel

from admission_gate.shared.errors import ConflictError, ObjectNotFoundError
from admission_gate.shared.models import NamespacedName

logger = logging.getLogger(__name__)

WatchCallback = Callable[[str, NamespacedName], None]


def kind_of(obj: BaseModel) -> str:
    """
    Kind under which ``obj`` is stored.

    Data operations carry their kind as a field (one model, many kinds);
    everything else declares a KIND class attribute.
    """
    kind = getattr(obj, "kind", None)
    if isinstance(kind, str) and kind:
        return kind
    return type(obj).KIND


class ObjectStore(Protocol):
    def get(self, kind: str, key: NamespacedName) -> BaseModel:
        ...

    def update_status(self, obj: BaseModel) -> BaseModel:
        ...


class ListableObjectStore(ObjectStore, Protocol):
    """An ObjectStore that can also enumerate the keys of one kind."""

    def keys(self, kind: str) -> List[NamespacedName]:
        ...


class InMemoryObjectStore:
    """
    Dict-backed ObjectStore with resource versions and write notifications.

    Thread-safe: one lock guards the map. Objects never leave the store by
    reference; get() and every write hand out deep copies.
    """

    def __init__(self) -> None:
        self._objects: Dict[Tuple[str, NamespacedName], BaseModel] = {}
        self._lock = threading.Lock()
        self._watchers: List[WatchCallback] = []
        self._next_version: int = 1
        self.status_writes: int = 0

    # ── ObjectStore contract ──────────────────────────────────────────────────

    def get(self, kind: str, key: NamespacedName) -> BaseModel:
        with self._lock:
            stored = self._objects.get((kind, key))
            if stored is None:
                raise ObjectNotFoundError(kind, key)
            return stored.model_copy(deep=True)

    def update_status(self, obj: BaseModel) -> BaseModel:
        kind = kind_of(obj)
        key = obj.metadata.key
        with self._lock:
            stored = self._objects.get((kind, key))
            if stored is None:
                raise ObjectNotFoundError(kind, key)
            if stored.metadata.resource_version != obj.metadata.resource_version:
                raise ConflictError(
                    kind, key,
                    expected=stored.metadata.resource_version,
                    actual=obj.metadata.resource_version,
                )
            updated = stored.model_copy(deep=True)
            updated.status = obj.status.model_copy(deep=True)
            updated.metadata.resource_version = self._bump()
            self._objects[(kind, key)] = updated
            self.status_writes += 1
            result = updated.model_copy(deep=True)

        logger.debug(
            "update_status: %s %s → rv=%d", kind, key, result.metadata.resource_version
        )
        self._notify(kind, key)
        return result

    # ── Administration (used by tests, fixtures and the outer platform) ───────

    def create(self, obj: BaseModel) -> BaseModel:
        """Insert a new object. Raises ValueError if it already exists."""
        kind = kind_of(obj)
        key = obj.metadata.key
        with self._lock:
            if (kind, key) in self._objects:
                raise ValueError(f"{kind} {str(key)!r} already exists")
            stored = obj.model_copy(deep=True)
            stored.metadata.resource_version = self._bump()
            self._objects[(kind, key)] = stored
            result = stored.model_copy(deep=True)
        self._notify(kind, key)
        return result

    def replace(self, obj: BaseModel) -> BaseModel:
        """Overwrite a whole object (spec and status), with the same version check."""
        kind = kind_of(obj)
        key = obj.metadata.key
        with self._lock:
            stored = self._objects.get((kind, key))
            if stored is None:
                raise ObjectNotFoundError(kind, key)
            if stored.metadata.resource_version != obj.metadata.resource_version:
                raise ConflictError(
                    kind, key,
                    expected=stored.metadata.resource_version,
                    actual=obj.metadata.resource_version,
                )
            updated = obj.model_copy(deep=True)
            updated.metadata.resource_version = self._bump()
            self._objects[(kind, key)] = updated
            result = updated.model_copy(deep=True)
        self._notify(kind, key)
        return result

    def delete(self, kind: str, key: NamespacedName) -> None:
        with self._lock:
            if self._objects.pop((kind, key), None) is None:
                raise ObjectNotFoundError(kind, key)
        self._notify(kind, key)

    def keys(self, kind: str) -> List[NamespacedName]:
        with self._lock:
            return [key for (k, key) in self._objects if k == kind]

    def watch(self, callback: WatchCallback) -> None:
        self._watchers.append(callback)

    # ── Private helpers ───────────────────────────────────────────────────────

    def _bump(self) -> int:
        version = self._next_version
        self._next_version += 1
        return version

    def _notify(self, kind: str, key: NamespacedName) -> None:
        for callback in list(self._watchers):
            callback(kind, key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._objects)

    def __repr__(self) -> str:
        return f"InMemoryObjectStore(objects={len(self._objects)}, status_writes={self.status_writes})"
