"""Event bus factory and initialization."""

from __future__ import annotations

import os
from typing import Optional

from ..config import StepflowConfig, load_config
from .base import BaseEventBus, EventHandler
from .inmemory import InMemoryEventBus


def get_bus(
    backend: Optional[str] = None, config: Optional[StepflowConfig] = None
) -> BaseEventBus:
    """Factory function to get the configured event bus."""

    config = config or load_config()
    backend = (backend or os.getenv("STEPFLOW_BUS") or config.bus.backend).lower()

    if backend == "inmemory":
        return InMemoryEventBus()
    elif backend == "redis":
        from .redis import RedisEventBus

        redis_conf = config.bus.redis
        return RedisEventBus(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
            channel_prefix=redis_conf.channel_prefix,
        )
    else:
        raise ValueError(f"Unsupported bus backend: {backend}")


__all__ = ["BaseEventBus", "EventHandler", "InMemoryEventBus", "get_bus"]
