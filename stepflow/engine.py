"""Assemble a runtime: bus, state store and every workflow step."""

from __future__ import annotations

import logging
import random
from typing import Any, Awaitable, Callable, Optional

from .bus import BaseEventBus, get_bus
from .config import StepflowConfig, load_config
from .dispatch import DeliveryClient
from .runtime import StepRegistry
from .state import StateStore, get_state_store
from .workflows import campaign, data_pipeline, maintenance
from .workflows.data_pipeline import RecordSource, SimulatedRecordSource
from .workflows.maintenance import Clock, MetricsSource
from .utils.time import utc_now

logger = logging.getLogger(__name__)


def build_runtime(
    config: Optional[StepflowConfig] = None,
    *,
    bus: Optional[BaseEventBus] = None,
    state: Optional[StateStore] = None,
    delivery_client: Optional[DeliveryClient] = None,
    metrics_source: Optional[MetricsSource] = None,
    record_source: Optional[RecordSource] = None,
    rng: Optional[random.Random] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    clock: Clock = utc_now,
) -> StepRegistry:
    """Create a registry with every workflow step registered.

    Collaborators not passed explicitly come from ``config``. The returned
    registry is not yet bound to the bus; see :func:`create_runtime`.
    """
    config = config or load_config()
    bus = bus or get_bus(config=config)
    state = state or get_state_store(config=config)

    registry = StepRegistry(bus, state)
    data_pipeline.register(registry, record_source=record_source or SimulatedRecordSource(rng))
    campaign.register(
        registry,
        delivery_client=delivery_client,
        settings=config.dispatch,
        sleep=sleep,
        engagement=campaign.EngagementSimulator(rng),
    )
    maintenance.register(
        registry,
        settings=config.maintenance,
        metrics_source=metrics_source,
        clock=clock,
    )
    logger.info(f"Runtime built with {len(registry.steps)} steps")
    return registry


async def create_runtime(config: Optional[StepflowConfig] = None, **kwargs: Any) -> StepRegistry:
    """Build a runtime, connect its bus and bind every event step."""
    registry = build_runtime(config, **kwargs)
    await registry.bus.connect()
    await registry.bind()
    return registry
