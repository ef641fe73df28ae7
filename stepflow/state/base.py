"""State store abstraction used as workflow memory."""

from __future__ import annotations

from typing import Any, Dict, Protocol

Record = Dict[str, Any]


class StateStore(Protocol):
    """Protocol for namespaced key-value state backends.

    ``set`` replaces whatever is stored under ``(namespace, key)``. There is
    no field-level merge, so writers must resupply every field they want to
    keep. Concurrent writers to the same key race; the last write wins.
    Backend failures raise :class:`~stepflow.errors.StateStoreError`.
    """

    async def get(self, namespace: str, key: str) -> Record | None:
        """Return the record stored under ``(namespace, key)`` or ``None``."""

    async def set(self, namespace: str, key: str, value: Record) -> None:
        """Store ``value`` under ``(namespace, key)``, replacing any record."""

    async def delete(self, namespace: str, key: str) -> bool:
        """Remove a record. Returns ``True`` if something was deleted."""

    async def items(self, namespace: str) -> Dict[str, Record]:
        """Return every record in ``namespace`` keyed by record key."""
