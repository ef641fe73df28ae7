from __future__ import annotations

import os
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from .constants import (
    DEFAULT_BATCH_DELAY_SECONDS,
    DEFAULT_BATCH_SIZE,
    DEFAULT_RETENTION_DAYS,
)


class RedisConfig(BaseModel):
    """Configuration for the Redis event bus."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    channel_prefix: str = "stepflow"


class BusConfig(BaseModel):
    """Event bus configuration settings."""

    backend: Literal["inmemory", "redis"] = "inmemory"
    redis: RedisConfig = RedisConfig()


class DispatchConfig(BaseModel):
    """Throttling settings for batched email delivery."""

    batch_size: int = Field(default=DEFAULT_BATCH_SIZE, ge=1)
    batch_delay_seconds: float = Field(default=DEFAULT_BATCH_DELAY_SECONDS, ge=0)
    delivery_timeout_seconds: Optional[float] = Field(default=None, gt=0)
    simulated_success_rate: float = Field(default=0.95, ge=0, le=1)


class MaintenanceConfig(BaseModel):
    retention_days: int = Field(default=DEFAULT_RETENTION_DAYS, ge=1)


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class StepflowConfig(BaseModel):
    """Top-level configuration model."""

    bus: BusConfig = BusConfig()
    state_url: Optional[str] = None
    dispatch: DispatchConfig = DispatchConfig()
    maintenance: MaintenanceConfig = MaintenanceConfig()
    api: ApiConfig = ApiConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> StepflowConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to STEPFLOW_CONFIG env
            variable or 'stepflow.yaml' in the current directory.
    """

    config_path = path or os.getenv("STEPFLOW_CONFIG", "stepflow.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = StepflowConfig(**data)
    else:
        config = StepflowConfig()

    env_state_url = os.getenv("STEPFLOW_STATE_URL")
    if env_state_url:
        config.state_url = env_state_url
    env_bus = os.getenv("STEPFLOW_BUS")
    if env_bus:
        config.bus = config.bus.model_copy(update={"backend": env_bus.lower()})
    return config
