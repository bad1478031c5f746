"""
admission_gate/cluster — collaborators the reconcilers consume.

Public API:
    ObjectStore           — get / update_status contract
    ListableObjectStore   — ObjectStore plus keys(kind)
    InMemoryObjectStore   — optimistic-concurrency store with watches
    EventRecorder         — record(obj, type, reason, message) contract
    InMemoryEventRecorder — bounded, drop-on-full recorder
"""

from admission_gate.cluster.object_store import (
    InMemoryObjectStore,
    ListableObjectStore,
    ObjectStore,
    kind_of,
)
from admission_gate.cluster.events import EventRecorder, InMemoryEventRecorder

__all__ = [
    "ObjectStore",
    "ListableObjectStore",
    "InMemoryObjectStore",
    "kind_of",
    "EventRecorder",
    "InMemoryEventRecorder",
]
