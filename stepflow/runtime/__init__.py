"""Step runtime: registration, invocation, scheduling and HTTP surface."""

from .context import StepContext, StepLogger
from .registry import StepRegistry
from .scheduler import CronScheduler
from .steps import (
    ApiRequest,
    ApiResponse,
    ApiStepConfig,
    CronStepConfig,
    EventStepConfig,
    Step,
    StepConfig,
)

__all__ = [
    "ApiRequest",
    "ApiResponse",
    "ApiStepConfig",
    "CronScheduler",
    "CronStepConfig",
    "EventStepConfig",
    "Step",
    "StepConfig",
    "StepContext",
    "StepLogger",
    "StepRegistry",
]
