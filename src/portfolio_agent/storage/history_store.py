"""
History Store - DuckDB persistence for decisions, trades and lending actions.

One database file holds three append-only tables. Every trade attempt writes
exactly one trade_history row; every completed cycle writes one
decision_history row.
"""

import json
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import duckdb

from portfolio_agent.decision.models import DecisionRecord
from portfolio_agent.storage.schema import create_all_tables

logger = logging.getLogger(__name__)


class HistoryStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PENDING = "PENDING"


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _from_db_time(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _split(value: Optional[str]) -> List[str]:
    return [v for v in (value or "").split(",") if v]


@dataclass
class TradeHistoryRecord:
    """One executed (or attempted) swap."""
    pair: str
    action: str
    token_in: str
    token_out: str
    amount_in: int
    status: HistoryStatus
    decision_id: Optional[str] = None
    expected_amount_out: Optional[int] = None
    actual_amount_out: Optional[int] = None
    tx_hashes: List[str] = field(default_factory=list)
    unconfirmed_tx_hashes: List[str] = field(default_factory=list)
    error: Optional[str] = None
    message: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "decisionId": self.decision_id,
            "pair": self.pair,
            "action": self.action,
            "tokenIn": self.token_in,
            "tokenOut": self.token_out,
            "amountIn": self.amount_in,
            "expectedAmountOut": self.expected_amount_out,
            "actualAmountOut": self.actual_amount_out,
            "txHash": ",".join(self.tx_hashes) or None,
            "unconfirmedTxHashes": list(self.unconfirmed_tx_hashes),
            "status": self.status.value,
            "error": self.error,
            "message": self.message,
        }


@dataclass
class LendingHistoryRecord:
    """One lending action taken on a lending decision."""
    token: str
    action: str
    amount: float
    apy: float
    status: HistoryStatus
    platform: str = "KAMINO"
    decision_id: Optional[str] = None
    amount_usd: Optional[float] = None
    message: Optional[str] = None
    id: str = field(default_factory=_new_id)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "decisionId": self.decision_id,
            "token": self.token,
            "action": self.action,
            "amount": self.amount,
            "amountUsd": self.amount_usd,
            "apy": self.apy,
            "platform": self.platform,
            "status": self.status.value,
            "message": self.message,
        }


# Query filter name -> column, per table
DECISION_FILTERS = {
    "action": "trading_action",
    "pair": "trading_pair",
    "confidence": "trading_confidence",
    "should_execute": "should_execute",
    "lending_action": "lending_action",
    "lending_token": "lending_token",
}

TRADE_FILTERS = {
    "decision_id": "decision_id",
    "pair": "pair",
    "action": "action",
    "status": "status",
}

LENDING_FILTERS = {
    "decision_id": "decision_id",
    "token": "token",
    "action": "action",
    "status": "status",
}


def _where_clause(filters: Optional[Dict[str, Any]], allowed: Dict[str, str]) -> Tuple[str, List[Any]]:
    """Equality WHERE clause over whitelisted columns."""
    clauses = []
    params: List[Any] = []
    for name, value in (filters or {}).items():
        column = allowed.get(name)
        if column is None:
            raise ValueError(f"Unsupported filter: {name}")
        if isinstance(value, Enum):
            value = value.value
        clauses.append(f"{column} = ?")
        params.append(value)
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    return where, params


class HistoryStore:
    """
    DuckDB-backed history of decisions, trades and lending actions.

    Example:
        store = HistoryStore("data/history.duckdb")
        store.save_decision(record)
        count, records = store.get_decision_history({"action": "BUY"}, limit=10)
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self.conn = duckdb.connect(self.db_path)
        create_all_tables(self.conn)
        logger.info(f"HistoryStore initialized with db_path: {self.db_path}")

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_decision(self, record: DecisionRecord) -> str:
        trading = record.trading
        lending = record.lending
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO decision_history VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    _to_db_time(record.created_at),
                    trading.action.kind,
                    trading.pair,
                    trading.confidence.value,
                    trading.should_execute,
                    lending.action.kind if lending else None,
                    lending.token if lending else None,
                    json.dumps(record.to_dict(), default=str),
                ],
            )
        logger.debug(f"Saved decision {record.id}")
        return record.id

    def save_trade(self, record: TradeHistoryRecord) -> str:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO trade_history VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    _to_db_time(record.timestamp),
                    record.decision_id,
                    record.pair,
                    record.action,
                    record.token_in,
                    record.token_out,
                    int(record.amount_in),
                    record.expected_amount_out,
                    record.actual_amount_out,
                    ",".join(record.tx_hashes) or None,
                    ",".join(record.unconfirmed_tx_hashes) or None,
                    record.status.value,
                    record.error,
                    record.message,
                ],
            )
        logger.debug(f"Saved trade {record.id} ({record.status.value})")
        return record.id

    def save_lending(self, record: LendingHistoryRecord) -> str:
        with self._lock:
            self.conn.execute(
                """
                INSERT INTO lending_history VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.id,
                    _to_db_time(record.timestamp),
                    record.decision_id,
                    record.token,
                    record.action,
                    float(record.amount),
                    record.amount_usd,
                    float(record.apy),
                    record.platform,
                    record.status.value,
                    record.message,
                ],
            )
        logger.debug(f"Saved lending action {record.id} ({record.status.value})")
        return record.id

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _page(
        self,
        table: str,
        order_column: str,
        columns: str,
        filters: Optional[Dict[str, Any]],
        allowed: Dict[str, str],
        limit: int,
        offset: int,
    ) -> Tuple[int, List[tuple]]:
        if limit < 0 or offset < 0:
            raise ValueError("limit and offset must be non-negative")

        where, params = _where_clause(filters, allowed)
        with self._lock:
            count = self.conn.execute(f"SELECT COUNT(*) FROM {table} {where}", params).fetchone()[0]
            rows = self.conn.execute(
                f"SELECT {columns} FROM {table} {where} ORDER BY {order_column} DESC LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()
        return int(count), rows

    def get_decision_history(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[DecisionRecord]]:
        """Newest-first page of decision records plus the total matching count."""
        count, rows = self._page(
            "decision_history", "created_at", "payload", filters, DECISION_FILTERS, limit, offset
        )
        return count, [DecisionRecord.from_dict(json.loads(row[0])) for row in rows]

    def get_decision(self, decision_id: str) -> Optional[DecisionRecord]:
        with self._lock:
            row = self.conn.execute(
                "SELECT payload FROM decision_history WHERE id = ?", [decision_id]
            ).fetchone()
        return DecisionRecord.from_dict(json.loads(row[0])) if row else None

    def get_trade_history(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[TradeHistoryRecord]]:
        count, rows = self._page(
            "trade_history",
            "timestamp",
            "id, timestamp, decision_id, pair, action, token_in, token_out, amount_in, "
            "expected_amount_out, actual_amount_out, tx_hashes, unconfirmed_tx_hashes, status, error, message",
            filters,
            TRADE_FILTERS,
            limit,
            offset,
        )
        records = [
            TradeHistoryRecord(
                id=row[0],
                timestamp=_from_db_time(row[1]),
                decision_id=row[2],
                pair=row[3],
                action=row[4],
                token_in=row[5],
                token_out=row[6],
                amount_in=int(row[7]),
                expected_amount_out=int(row[8]) if row[8] is not None else None,
                actual_amount_out=int(row[9]) if row[9] is not None else None,
                tx_hashes=_split(row[10]),
                unconfirmed_tx_hashes=_split(row[11]),
                status=HistoryStatus(row[12]),
                error=row[13],
                message=row[14],
            )
            for row in rows
        ]
        return count, records

    def get_lending_history(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> Tuple[int, List[LendingHistoryRecord]]:
        count, rows = self._page(
            "lending_history",
            "timestamp",
            "id, timestamp, decision_id, token, action, amount, amount_usd, apy, platform, status, message",
            filters,
            LENDING_FILTERS,
            limit,
            offset,
        )
        records = [
            LendingHistoryRecord(
                id=row[0],
                timestamp=_from_db_time(row[1]),
                decision_id=row[2],
                token=row[3],
                action=row[4],
                amount=row[5],
                amount_usd=row[6],
                apy=row[7],
                platform=row[8],
                status=HistoryStatus(row[9]),
                message=row[10],
            )
            for row in rows
        ]
        return count, records

    def close(self) -> None:
        with self._lock:
            self.conn.close()
        logger.info("HistoryStore closed")
