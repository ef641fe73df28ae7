"""Per-invocation collaborators handed to step handlers."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Tuple, Union

from pydantic import BaseModel

from ..bus import BaseEventBus
from ..contracts import Event, Payload
from ..errors import UndeclaredTopicError
from ..state import StateStore

_LOG_KWARGS = {"exc_info", "stack_info", "stacklevel", "extra"}


class StepLogger(logging.LoggerAdapter):
    """Logger adapter that renders keyword context as ``key=value`` pairs.

    ``ctx.logger.info("Data fetched", pipeline_id=pid, record_count=3)``
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = {k: kwargs.pop(k) for k in list(kwargs) if k not in _LOG_KWARGS}
        extra = dict(self.extra or {})
        extra.update(kwargs.pop("extra", None) or {})
        kwargs["extra"] = extra
        prefix = f"[{extra['step']}"
        if extra.get("trace_id"):
            prefix += f" {extra['trace_id'][:8]}"
        prefix += "]"
        if context:
            rendered = " ".join(f"{k}={v}" for k, v in context.items())
            return f"{prefix} {msg} {rendered}", kwargs
        return f"{prefix} {msg}", kwargs


EmitData = Union[Payload, BaseModel, Mapping[str, Any]]


@dataclass
class StepContext:
    """Scoped bundle of collaborators for one handler invocation."""

    step_name: str
    emits: Tuple[str, ...]
    bus: BaseEventBus
    state: StateStore
    trace_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    logger: StepLogger = field(init=False)

    def __post_init__(self) -> None:
        self.logger = StepLogger(
            logging.getLogger(f"stepflow.steps.{self.step_name}"),
            {"step": self.step_name, "trace_id": self.trace_id},
        )

    async def emit(self, topic: str, data: EmitData) -> Event:
        """Publish ``data`` on ``topic`` if this step declares it."""
        if topic not in self.emits:
            raise UndeclaredTopicError(self.step_name, topic)
        if isinstance(data, Payload):
            payload = data.to_wire()
        elif isinstance(data, BaseModel):
            payload = data.model_dump(mode="json")
        else:
            payload = dict(data)
        return await self.bus.publish(topic, payload)
