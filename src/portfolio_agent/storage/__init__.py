"""Decision, trade and lending history persistence."""

from .history_store import (
    HistoryStatus,
    HistoryStore,
    LendingHistoryRecord,
    TradeHistoryRecord,
)
from .schema import create_all_tables

__all__ = [
    'HistoryStatus',
    'HistoryStore',
    'LendingHistoryRecord',
    'TradeHistoryRecord',
    'create_all_tables',
]
