"""In-memory implementation of the state store."""

from __future__ import annotations

import copy
from collections import defaultdict
from typing import Dict

from .base import Record, StateStore


class InMemoryStateStore(StateStore):
    """Store workflow state in local memory.

    Useful for tests or single-process deployments. Data is not persisted
    across process restarts. Records are deep-copied on the way in and out so
    a caller holding a reference can never change what is stored.
    """

    def __init__(self) -> None:
        self._namespaces: Dict[str, Dict[str, Record]] = defaultdict(dict)

    async def get(self, namespace: str, key: str) -> Record | None:
        record = self._namespaces.get(namespace, {}).get(key)
        return copy.deepcopy(record) if record is not None else None

    async def set(self, namespace: str, key: str, value: Record) -> None:
        self._namespaces[namespace][key] = copy.deepcopy(value)

    async def delete(self, namespace: str, key: str) -> bool:
        records = self._namespaces.get(namespace)
        if not records or key not in records:
            return False
        del records[key]
        return True

    async def items(self, namespace: str) -> Dict[str, Record]:
        return copy.deepcopy(dict(self._namespaces.get(namespace, {})))
