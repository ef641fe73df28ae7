"""Cron trigger loop."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from croniter import croniter

from ..utils.time import utc_now
from .registry import StepRegistry

logger = logging.getLogger(__name__)


class CronScheduler:
    """Invoke cron steps of a registry when their expression comes due.

    Expressions are evaluated in UTC by ``croniter``. Every due job runs as
    its own task so a slow job never delays the others. A job that fails is
    logged; it runs again at its next due instant.
    """

    def __init__(self, registry: StepRegistry, poll_interval: float = 1.0) -> None:
        self.registry = registry
        self.poll_interval = poll_interval
        self._next_due: Dict[str, datetime] = {}
        self._inflight: Set[asyncio.Task] = set()

    def next_run(self, name: str, after: datetime) -> datetime:
        config = self.registry.get(name).config
        return croniter(config.cron, after).get_next(datetime)

    def schedule(self, now: Optional[datetime] = None) -> Dict[str, datetime]:
        """Compute the next due instant for every cron step."""
        now = now or utc_now()
        self._next_due = {step.name: self.next_run(step.name, now) for step in self.registry.cron_steps()}
        return dict(self._next_due)

    def due_steps(self, since: datetime, now: datetime) -> List[str]:
        """Names of cron steps with at least one due instant in ``(since, now]``."""
        due = []
        for step in self.registry.cron_steps():
            if self.next_run(step.name, since) <= now:
                due.append(step.name)
        return due

    async def _run_one(self, name: str) -> None:
        try:
            await self.registry.run_cron(name)
        except Exception:
            logger.exception(f"Scheduled step {name} failed")

    def _launch(self, name: str) -> None:
        task = asyncio.create_task(self._run_one(name))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def tick(self, now: Optional[datetime] = None) -> List[str]:
        """Start every job whose next due instant is at or before ``now``.

        Jobs are started in the background; use :meth:`drain` to wait for them.
        """
        now = now or utc_now()
        if not self._next_due:
            self.schedule(now - timedelta(seconds=self.poll_interval))
        due = [name for name, at in self._next_due.items() if at <= now]
        for name in due:
            self._next_due[name] = self.next_run(name, now)
            self._launch(name)
        return due

    @property
    def running(self) -> int:
        return len(self._inflight)

    async def drain(self) -> None:
        """Wait until no job is running."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def cancel_running(self) -> None:
        for task in list(self._inflight):
            task.cancel()
        await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def run(self, lifespan: Optional[float] = None) -> None:
        """Poll until cancelled or ``lifespan`` seconds have elapsed.

        Jobs still running when the loop stops are cancelled.
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        self.schedule()
        logger.info(f"Scheduler started with {len(self._next_due)} cron step(s)")
        try:
            while lifespan is None or loop.time() - start < lifespan:
                await self.tick()
                await asyncio.sleep(self.poll_interval)
        finally:
            if self._inflight:
                logger.info(f"Scheduler stopping, cancelling {len(self._inflight)} running job(s)")
            await self.cancel_running()
