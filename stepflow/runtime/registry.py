"""Step registry: binds triggers to handlers and runs invocations."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ..bus import BaseEventBus
from ..contracts import Event
from ..errors import StepRegistrationError, flatten_validation_error
from ..state import StateStore
from .context import StepContext
from .steps import (
    ApiRequest,
    ApiResponse,
    ApiStepConfig,
    CronStepConfig,
    EventStepConfig,
    Handler,
    Step,
    StepConfig,
)

logger = logging.getLogger(__name__)


class StepRegistry:
    """Holds every step of a process and wires it to its trigger.

    The bus and the state store are injected once and handed to each
    invocation through a fresh :class:`StepContext`.
    """

    def __init__(self, bus: BaseEventBus, state: StateStore) -> None:
        self.bus = bus
        self.state = state
        self._steps: Dict[str, Step] = {}
        self._subscriptions: List[tuple[str, Callable]] = []

    # ------------------------------------------------------------------
    # Registration
    def register(self, config: StepConfig, handler: Handler) -> Step:
        """Register ``handler`` under ``config``."""
        if config.name in self._steps:
            raise StepRegistrationError(f"Step {config.name} is already registered")
        if isinstance(config, ApiStepConfig):
            for other in self.api_steps():
                if (other.config.method, other.config.path) == (config.method, config.path):
                    raise StepRegistrationError(
                        f"Route {config.method} {config.path} already served by {other.name}"
                    )
        step = Step(config=config, handler=handler)
        self._steps[config.name] = step
        logger.debug(f"Registered {config.type} step {config.name}")
        return step

    def step(self, config: StepConfig) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register`."""

        def decorator(handler: Handler) -> Handler:
            self.register(config, handler)
            return handler

        return decorator

    def get(self, name: str) -> Step:
        try:
            return self._steps[name]
        except KeyError:
            raise StepRegistrationError(f"Unknown step: {name}") from None

    @property
    def steps(self) -> List[Step]:
        return list(self._steps.values())

    def api_steps(self) -> List[Step]:
        return [s for s in self._steps.values() if isinstance(s.config, ApiStepConfig)]

    def event_steps(self) -> List[Step]:
        return [s for s in self._steps.values() if isinstance(s.config, EventStepConfig)]

    def cron_steps(self) -> List[Step]:
        return [s for s in self._steps.values() if isinstance(s.config, CronStepConfig)]

    def describe(self) -> List[Dict[str, Any]]:
        """Summarize each step's trigger and declared topics."""
        rows = []
        for step in self._steps.values():
            config = step.config
            if isinstance(config, ApiStepConfig):
                trigger = f"{config.method} {config.path}"
                subscribes: List[str] = []
            elif isinstance(config, EventStepConfig):
                trigger = "event"
                subscribes = list(config.subscribes)
            else:
                trigger = f"cron {config.cron}"
                subscribes = []
            rows.append(
                {
                    "name": config.name,
                    "type": config.type,
                    "trigger": trigger,
                    "subscribes": subscribes,
                    "emits": list(config.emits),
                    "flows": list(config.flows),
                }
            )
        return rows

    # ------------------------------------------------------------------
    # Wiring
    def _context(self, step: Step) -> StepContext:
        return StepContext(
            step_name=step.name,
            emits=tuple(step.config.emits),
            bus=self.bus,
            state=self.state,
        )

    async def bind(self) -> None:
        """Subscribe every event step to its topics. Safe to call twice."""
        if self._subscriptions:
            return
        for step in self.event_steps():
            for topic in step.config.subscribes:
                subscriber = self._make_subscriber(step)
                await self.bus.subscribe(topic, subscriber)
                self._subscriptions.append((topic, subscriber))
                logger.info(f"Step {step.name} subscribed to '{topic}'")

    async def unbind(self) -> None:
        for topic, subscriber in self._subscriptions:
            await self.bus.unsubscribe(topic, subscriber)
        self._subscriptions.clear()

    def _make_subscriber(self, step: Step) -> Callable[[Event], Any]:
        async def _on_event(event: Event) -> None:
            await self.deliver(step.name, event)

        _on_event.__qualname__ = f"{step.name}.on_event"
        return _on_event

    # ------------------------------------------------------------------
    # Invocation
    async def deliver(self, name: str, event: Event) -> bool:
        """Run an event step for ``event``.

        The payload is validated first; an invalid payload is logged and
        dropped without running the handler. Returns whether the handler ran.
        Handler and infrastructure errors propagate.
        """
        step = self.get(name)
        config = step.config
        if not isinstance(config, EventStepConfig):
            raise StepRegistrationError(f"Step {name} is not event-triggered")
        try:
            payload = config.input_schema.model_validate(event.data)
        except ValidationError as exc:
            logger.warning(
                f"Dropping event {event.event_id} on '{event.topic}' for {name}: "
                f"{flatten_validation_error(exc)}"
            )
            return False
        await step.handler(payload, self._context(step))
        return True

    async def invoke_api(
        self,
        name: str,
        body: Any = None,
        path_params: Optional[Mapping[str, str]] = None,
        query_params: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> ApiResponse:
        """Run an api step and map its outcome to a response.

        Bad input becomes a 400 with a flattened validation error; any
        failure inside the handler becomes a 500.
        """
        step = self.get(name)
        config = step.config
        if not isinstance(config, ApiStepConfig):
            raise StepRegistrationError(f"Step {name} is not request-triggered")

        parsed: Any = body
        if config.body_schema is not None:
            try:
                parsed = config.body_schema.model_validate(body if body is not None else {})
            except ValidationError as exc:
                logger.info(f"Rejected request for {name}: invalid body")
                return ApiResponse(
                    status=400,
                    body={"error": "validation_error", "details": flatten_validation_error(exc)},
                )

        request = ApiRequest(
            body=parsed,
            path_params=dict(path_params or {}),
            query_params=dict(query_params or {}),
            headers=dict(headers or {}),
        )
        try:
            response = await step.handler(request, self._context(step))
        except Exception as exc:
            logger.exception(f"Api step {name} failed")
            return ApiResponse(
                status=500,
                body={"error": "internal_error", "message": str(exc)},
            )
        if not isinstance(response, ApiResponse):
            response = ApiResponse(status=200, body=response)
        return response

    async def run_cron(self, name: str) -> None:
        """Run a cron step once. Errors propagate to the caller."""
        step = self.get(name)
        if not isinstance(step.config, CronStepConfig):
            raise StepRegistrationError(f"Step {name} is not cron-triggered")
        logger.info(f"Running scheduled step {name}")
        await step.handler(self._context(step))
