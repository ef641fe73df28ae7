from __future__ import annotations

from typing import Any, Mapping

from .base import Record, StateStore


async def merge_record(
    store: StateStore, namespace: str, key: str, fields: Mapping[str, Any]
) -> Record:
    """Shallow-merge ``fields`` into the stored record and write it back.

    This is a read-modify-write on top of the store, not a store primitive:
    two concurrent callers can still lose each other's fields.
    """
    current = await store.get(namespace, key) or {}
    current.update(fields)
    await store.set(namespace, key, current)
    return current
