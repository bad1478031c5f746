"""
admission_gate/control_plane/operation_status.py
────────────────────────────────────────────────
Operation-status lookup: the only window onto the data-operation platform.

Input: an operation type tag ("DataLoad", ...) and a namespaced name.
Output: the operation's OperationStatus.

The caller needs two kinds of failure kept apart:

  InvalidOperationRequestError      the request is wrong (unsupported type
                                    tag, empty name). Retrying is pointless.
  OperationStatusUnavailableError   the answer is not available now (object
                                    not created yet, store unreachable).
                                    Retry with backoff.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional, Protocol

from admission_gate.cluster.object_store import ObjectStore
from admission_gate.shared.errors import (
    InvalidOperationRequestError,
    OperationStatusUnavailableError,
)
from admission_gate.shared.models import NamespacedName, OperationStatus

logger = logging.getLogger(__name__)

SUPPORTED_OPERATION_TYPES: FrozenSet[str] = frozenset(
    {"DataLoad", "DataProcess", "DataMigrate", "DataBackup"}
)


class OperationStatusLookup(Protocol):
    def get_status(self, op_type: str, key: NamespacedName) -> OperationStatus:
        ...


class StoreOperationStatusLookup:
    """
    Reads data operations from the object store, one kind per type tag.

    Args:
        store:           Where the operation objects live.
        supported_types: Type tags accepted. Defaults to the four data
                         operation kinds.
    """

    def __init__(
        self,
        store: ObjectStore,
        supported_types: Optional[Iterable[str]] = None,
    ) -> None:
        self._store = store
        self._supported = (
            frozenset(supported_types) if supported_types is not None
            else SUPPORTED_OPERATION_TYPES
        )

    def get_status(self, op_type: str, key: NamespacedName) -> OperationStatus:
        if op_type not in self._supported:
            raise InvalidOperationRequestError(
                op_type, key,
                f"unsupported operation type, expected one of {sorted(self._supported)}",
            )
        if not key.name:
            raise InvalidOperationRequestError(op_type, key, "operation name is empty")

        try:
            operation = self._store.get(op_type, key)
        except Exception as e:
            logger.debug("get_status: %s %s failed: %s", op_type, key, e)
            raise OperationStatusUnavailableError(op_type, key, cause=e) from e

        return operation.status.model_copy()
