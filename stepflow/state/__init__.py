"""State persistence layer for stepflow."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepflowConfig, load_config
from .base import Record, StateStore
from .inmemory import InMemoryStateStore
from .merge import merge_record
from .sqlite import SQLiteStateStore


def get_state_store(
    state_url: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> StateStore:
    """Factory function to obtain a state store.

    The backend is selected from ``state_url`` which can be provided
    explicitly, via environment variable ``STEPFLOW_STATE_URL``, or from
    loaded configuration. When nothing is configured an in-memory store is
    returned.
    """

    config = config or load_config()
    state_url = state_url or os.getenv("STEPFLOW_STATE_URL") or config.state_url

    if not state_url:
        return InMemoryStateStore()

    if state_url.startswith("sqlite://"):
        path = state_url.replace("sqlite://", "", 1)
        return SQLiteStateStore(path)

    raise ValueError(f"Unsupported state backend: {state_url}")


__all__ = [
    "Record",
    "StateStore",
    "InMemoryStateStore",
    "SQLiteStateStore",
    "get_state_store",
    "merge_record",
]
