"""Decision cycle orchestration and scheduling."""

from .orchestrator import DecisionOrchestrator, MarketView
from .scheduler import DecisionScheduler

__all__ = ['DecisionOrchestrator', 'MarketView', 'DecisionScheduler']
