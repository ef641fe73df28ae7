"""stepflow: event-driven orchestration of independently triggered steps."""

from .bus import BaseEventBus, InMemoryEventBus, get_bus
from .config import StepflowConfig, load_config
from .contracts import Event, Payload
from .dispatch import BatchDispatcher, DeliveryClient, DispatchResult
from .engine import build_runtime, create_runtime
from .runtime import (
    ApiStepConfig,
    CronScheduler,
    CronStepConfig,
    EventStepConfig,
    StepContext,
    StepRegistry,
)
from .state import InMemoryStateStore, StateStore, get_state_store

__version__ = "0.1.0"
__all__ = [
    "ApiStepConfig",
    "BaseEventBus",
    "BatchDispatcher",
    "CronScheduler",
    "CronStepConfig",
    "DeliveryClient",
    "DispatchResult",
    "Event",
    "EventStepConfig",
    "InMemoryEventBus",
    "InMemoryStateStore",
    "Payload",
    "StateStore",
    "StepContext",
    "StepRegistry",
    "StepflowConfig",
    "build_runtime",
    "create_runtime",
    "get_bus",
    "get_state_store",
    "load_config",
]
