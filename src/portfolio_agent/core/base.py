"""
Lifecycle base classes.

``Component`` tracks a started/stopped state and reports it through
``health_check()``. ``AlwaysOnComponent`` adds a background task running
``_run_loop()`` for as long as ``_running`` stays true; the decision
scheduler is built on it.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LifecycleState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class Component(ABC):
    """Named unit of the agent with start/stop and a health report."""

    def __init__(self, name: str):
        self.name = name
        self.state = LifecycleState.STOPPED
        self._since: Optional[datetime] = None
        self._logger = logging.getLogger(f"{type(self).__module__}.{name}")

    @property
    def is_started(self) -> bool:
        return self.state is LifecycleState.RUNNING

    @property
    def uptime_seconds(self) -> float:
        if self._since is None or not self.is_started:
            return 0.0
        return (datetime.now(timezone.utc) - self._since).total_seconds()

    async def start(self) -> None:
        if self.is_started:
            self._logger.debug(f"{self.name} is already running")
            return
        self.state = LifecycleState.RUNNING
        self._since = datetime.now(timezone.utc)
        self._logger.info(f"{self.name} started")

    async def stop(self) -> None:
        if not self.is_started:
            return
        self.state = LifecycleState.STOPPED
        self._logger.info(f"{self.name} stopped after {self.uptime_seconds:.0f}s")

    async def health_check(self) -> Dict[str, Any]:
        return {
            "component": self.name,
            "status": "healthy" if self.is_started else "stopped",
            "uptime_seconds": self.uptime_seconds,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name} {self.state.value}>"


class AlwaysOnComponent(Component):
    """
    Component with a background loop.

    ``stop()`` clears ``_running`` and gives the loop ``stop_timeout`` seconds
    to return before cancelling it.
    """

    def __init__(self, name: str, stop_timeout: float = 5.0):
        super().__init__(name)
        self.stop_timeout = stop_timeout
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @abstractmethod
    async def _run_loop(self) -> None:
        ...

    async def start(self) -> None:
        if self._task is not None and not self._task.done():
            self._logger.debug(f"{self.name} loop already scheduled")
            return
        await super().start()
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name=f"{self.name}-loop")

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        if task is not None and not task.done():
            done, _ = await asyncio.wait({task}, timeout=self.stop_timeout)
            if not done:
                self._logger.warning(f"{self.name} loop did not exit within {self.stop_timeout}s, cancelling")
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
        await super().stop()
