"""Exception hierarchy for stepflow."""

from __future__ import annotations

from typing import Any, Dict, List

from pydantic import ValidationError


class StepflowError(Exception):
    """Base class for all stepflow errors."""


class StateStoreError(StepflowError):
    """A state store operation failed. Fatal to the current invocation."""


class EventBusError(StepflowError):
    """The event bus could not accept or deliver an event."""


class UndeclaredTopicError(StepflowError):
    """A step emitted a topic it does not declare in ``emits``."""

    def __init__(self, step_name: str, topic: str) -> None:
        super().__init__(f"Step {step_name} is not allowed to emit topic '{topic}'")
        self.step_name = step_name
        self.topic = topic


class StepRegistrationError(StepflowError):
    """Invalid step configuration or lookup of an unknown step."""


class DeliveryError(StepflowError):
    """A single delivery attempt failed.

    Raised by delivery clients; the batch dispatcher counts it and moves on.
    """

    def __init__(self, recipient: str, reason: str = "delivery failed") -> None:
        super().__init__(f"{reason}: {recipient}")
        self.recipient = recipient
        self.reason = reason


def flatten_validation_error(exc: ValidationError) -> Dict[str, Any]:
    """Flatten a pydantic ``ValidationError`` into a machine-readable mapping.

    Errors without a location land in ``formErrors``; the rest are grouped by
    their dotted location under ``fieldErrors``.
    """
    form_errors: List[str] = []
    field_errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = ".".join(str(part) for part in error.get("loc", ()))
        if not loc:
            form_errors.append(error["msg"])
            continue
        field_errors.setdefault(loc, []).append(error["msg"])
    return {"formErrors": form_errors, "fieldErrors": field_errors}
