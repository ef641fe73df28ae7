"""Batched, rate-limited delivery with partial-failure accounting."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterator,
    List,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
)

from pydantic import BaseModel, Field, computed_field

from .constants import DEFAULT_BATCH_DELAY_SECONDS, DEFAULT_BATCH_SIZE
from .errors import DeliveryError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeliveryClient(Protocol):
    """Sends one unit of work to one recipient.

    Implementations raise :class:`DeliveryError` when the delivery fails.
    """

    async def deliver(self, recipient: str, message: Any) -> None: ...


class SimulatedDeliveryClient:
    """Placeholder client that fails a configurable share of deliveries."""

    def __init__(self, success_rate: float = 0.95, rng: Optional[random.Random] = None) -> None:
        self.success_rate = success_rate
        self._rng = rng or random.Random()

    async def deliver(self, recipient: str, message: Any) -> None:
        if self._rng.random() >= self.success_rate:
            raise DeliveryError(recipient, "simulated bounce")


class DispatchProgress(BaseModel):
    """Cumulative counters reported after each batch."""

    batch_number: int
    total_batches: int
    total_recipients: int
    sent_count: int = 0
    failed_count: int = 0

    @computed_field
    @property
    def processed(self) -> int:
        return self.sent_count + self.failed_count

    @computed_field
    @property
    def percent_complete(self) -> float:
        if not self.total_recipients:
            return 100.0
        return self.processed / self.total_recipients * 100


class DispatchResult(BaseModel):
    """Aggregate outcome of one dispatch run."""

    total_recipients: int
    sent_count: int = 0
    failed_count: int = 0
    batches: int = 0
    pauses: int = 0
    failed_recipients: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def success_rate(self) -> float:
        if not self.total_recipients:
            return 0.0
        return self.sent_count / self.total_recipients * 100


def iter_batches(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    """Yield contiguous slices of ``items`` of at most ``size`` elements."""
    if size < 1:
        raise ValueError(f"Batch size must be at least 1, got {size}")
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BatchDispatcher:
    """Deliver to a recipient list in fixed-size batches with a fixed pause.

    Within a batch recipients are attempted one after another. A failed
    delivery is counted and logged once, never retried, and never stops the
    remaining attempts. The pause is awaited between batches only, never
    after the last one.
    """

    def __init__(
        self,
        client: DeliveryClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
        batch_delay: float = DEFAULT_BATCH_DELAY_SECONDS,
        timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"Batch size must be at least 1, got {batch_size}")
        if batch_delay < 0:
            raise ValueError(f"Batch delay cannot be negative, got {batch_delay}")
        self.client = client
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self.timeout = timeout
        self._sleep = sleep

    def batch_count(self, total: int) -> int:
        return -(-total // self.batch_size)

    async def _attempt(self, recipient: str, message: Any) -> bool:
        try:
            if self.timeout is not None:
                await asyncio.wait_for(self.client.deliver(recipient, message), self.timeout)
            else:
                await self.client.deliver(recipient, message)
        except DeliveryError as exc:
            logger.warning(f"Delivery to {recipient} failed: {exc.reason}")
            return False
        except asyncio.TimeoutError:
            logger.warning(f"Delivery to {recipient} timed out after {self.timeout}s")
            return False
        return True

    async def dispatch(
        self,
        recipients: Sequence[str],
        message: Any,
        on_delivered: Optional[Callable[[str], Awaitable[Any]]] = None,
        on_batch_complete: Optional[Callable[[DispatchProgress], Awaitable[Any]]] = None,
    ) -> DispatchResult:
        """Deliver ``message`` to every recipient.

        Args:
            recipients: Ordered recipient list, possibly empty.
            message: Opaque unit of work handed to the client.
            on_delivered: Awaited after each successful delivery.
            on_batch_complete: Awaited with cumulative progress after each batch.

        Returns:
            Aggregate counters. ``sent_count + failed_count`` always equals
            the number of recipients.
        """
        total = len(recipients)
        total_batches = self.batch_count(total)
        result = DispatchResult(total_recipients=total)

        for index, batch in enumerate(iter_batches(recipients, self.batch_size)):
            if index > 0:
                await self._sleep(self.batch_delay)
                result.pauses += 1

            logger.info(f"Processing batch {index + 1}/{total_batches} ({len(batch)} recipients)")
            for recipient in batch:
                if await self._attempt(recipient, message):
                    result.sent_count += 1
                    if on_delivered is not None:
                        await on_delivered(recipient)
                else:
                    result.failed_count += 1
                    result.failed_recipients.append(recipient)

            result.batches += 1
            if on_batch_complete is not None:
                await on_batch_complete(
                    DispatchProgress(
                        batch_number=index + 1,
                        total_batches=total_batches,
                        total_recipients=total,
                        sent_count=result.sent_count,
                        failed_count=result.failed_count,
                    )
                )

        logger.info(
            f"Dispatch finished: {result.sent_count} sent, {result.failed_count} failed "
            f"of {total} ({result.success_rate:.2f}%)"
        )
        return result
