"""Step declarations: trigger configuration plus handler."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, field_validator


class _StepConfigBase(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(min_length=1)
    description: Optional[str] = None
    emits: List[str] = Field(default_factory=list)
    flows: List[str] = Field(default_factory=list)


class ApiStepConfig(_StepConfigBase):
    """Step invoked synchronously by an inbound request."""

    type: Literal["api"] = "api"
    path: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    body_schema: Optional[Type[BaseModel]] = None
    response_schema: Dict[int, Type[BaseModel]] = Field(default_factory=dict)

    @field_validator("path")
    @classmethod
    def _ensure_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v


class EventStepConfig(_StepConfigBase):
    """Step invoked by the bus for each event on a subscribed topic."""

    type: Literal["event"] = "event"
    subscribes: List[str] = Field(min_length=1)
    input_schema: Type[BaseModel]


class CronStepConfig(_StepConfigBase):
    """Step invoked by the scheduler at cron-specified instants."""

    type: Literal["cron"] = "cron"
    cron: str

    @field_validator("cron")
    @classmethod
    def _ensure_cron(cls, v: str) -> str:
        if len(v.split()) != 5 or not croniter.is_valid(v):
            raise ValueError(f"invalid five-field cron expression: {v!r}")
        return v


StepConfig = Union[ApiStepConfig, EventStepConfig, CronStepConfig]


class ApiRequest(BaseModel):
    """Inbound request handed to an api step after body validation."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    body: Any = None
    path_params: Dict[str, str] = Field(default_factory=dict)
    query_params: Dict[str, str] = Field(default_factory=dict)
    headers: Dict[str, str] = Field(default_factory=dict)


class ApiResponse(BaseModel):
    status: int = 200
    body: Any = None


Handler = Callable[..., Awaitable[Any]]


@dataclass(frozen=True)
class Step:
    config: StepConfig
    handler: Handler

    @property
    def name(self) -> str:
        return self.config.name
