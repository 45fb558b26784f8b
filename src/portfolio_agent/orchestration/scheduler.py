"""
Decision Scheduler - runs a decision cycle on a fixed interval.

An aborted or failed cycle is logged and the loop waits for the next one.
``stop()`` wakes the loop out of its wait between cycles; a cycle already
in flight runs to completion first.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from portfolio_agent.core.base import AlwaysOnComponent
from portfolio_agent.core.errors import CycleAbortedError
from portfolio_agent.decision.models import DecisionRecord

logger = logging.getLogger(__name__)


class DecisionScheduler(AlwaysOnComponent):
    """Always-on component driving DecisionOrchestrator.run_decision_cycle()."""

    def __init__(
        self,
        orchestrator,
        interval_minutes: float = 240,
        run_on_start: bool = True,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        cycle_timeout: float = 600.0,
    ):
        # stop() waits up to cycle_timeout for an in-flight cycle before cancelling it
        super().__init__("decision_scheduler", stop_timeout=cycle_timeout)
        self.orchestrator = orchestrator
        self.interval_seconds = interval_minutes * 60
        self.run_on_start = run_on_start
        self._stop_requested = asyncio.Event()
        self._sleep = sleep or self._wait_interval

        self.cycles_completed = 0
        self.cycles_aborted = 0
        self.last_cycle_at: Optional[datetime] = None
        self.last_decision_id: Optional[str] = None

    async def run_once(self) -> Optional[DecisionRecord]:
        """Run one cycle; returns None if it was aborted or failed."""
        self.last_cycle_at = datetime.now(timezone.utc)
        try:
            record = await self.orchestrator.run_decision_cycle()
        except CycleAbortedError as e:
            self.cycles_aborted += 1
            logger.warning(f"Decision cycle aborted: {e.reason}", extra={'decision_id': e.decision_id})
            return None
        except Exception as e:
            self.cycles_aborted += 1
            logger.error(f"Error in decision cycle: {e}", exc_info=True)
            return None

        self.cycles_completed += 1
        self.last_decision_id = record.id
        return record

    async def _wait_interval(self, seconds: float) -> None:
        """Sleep ``seconds`` or until stop() is called, whichever comes first."""
        try:
            await asyncio.wait_for(self._stop_requested.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    async def start(self) -> None:
        self._stop_requested.clear()
        await super().start()

    async def stop(self) -> None:
        self._stop_requested.set()
        await super().stop()

    async def _run_loop(self) -> None:
        if not self.run_on_start:
            await self._sleep(self.interval_seconds)

        while self._running and not self._stop_requested.is_set():
            await self.run_once()
            if not self._running or self._stop_requested.is_set():
                break
            await self._sleep(self.interval_seconds)

    async def health_check(self) -> dict:
        health = await super().health_check()
        health.update({
            'cycles_completed': self.cycles_completed,
            'cycles_aborted': self.cycles_aborted,
            'last_cycle_at': self.last_cycle_at.isoformat() if self.last_cycle_at else None,
            'last_decision_id': self.last_decision_id,
        })
        return health
