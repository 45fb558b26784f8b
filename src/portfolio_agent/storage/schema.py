"""
DuckDB schema for decision, trade and lending history.

All timestamps are stored as naive UTC.
"""

import logging

import duckdb

logger = logging.getLogger(__name__)


DECISION_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS decision_history (
    id VARCHAR PRIMARY KEY,
    created_at TIMESTAMP NOT NULL,
    trading_action VARCHAR NOT NULL,
    trading_pair VARCHAR,
    trading_confidence VARCHAR NOT NULL,
    should_execute BOOLEAN NOT NULL,
    lending_action VARCHAR,
    lending_token VARCHAR,
    payload VARCHAR NOT NULL  -- DecisionRecord as JSON
);
"""

DECISION_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_decision_history_created_at ON decision_history(created_at);
"""

TRADE_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS trade_history (
    id VARCHAR PRIMARY KEY,
    timestamp TIMESTAMP NOT NULL,
    decision_id VARCHAR,
    pair VARCHAR NOT NULL,
    action VARCHAR NOT NULL,  -- 'BUY' or 'SELL'
    token_in VARCHAR NOT NULL,
    token_out VARCHAR NOT NULL,
    amount_in HUGEINT NOT NULL,
    expected_amount_out HUGEINT,
    actual_amount_out HUGEINT,
    tx_hashes VARCHAR,  -- comma separated, broadcast order
    unconfirmed_tx_hashes VARCHAR,
    status VARCHAR NOT NULL,
    error VARCHAR,
    message VARCHAR
);
"""

TRADE_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_trade_history_timestamp ON trade_history(timestamp);
"""

LENDING_HISTORY_TABLE = """
CREATE TABLE IF NOT EXISTS lending_history (
    id VARCHAR PRIMARY KEY,
    timestamp TIMESTAMP NOT NULL,
    decision_id VARCHAR,
    token VARCHAR NOT NULL,
    action VARCHAR NOT NULL,
    amount DOUBLE NOT NULL,
    amount_usd DOUBLE,
    apy DOUBLE NOT NULL,
    platform VARCHAR NOT NULL,
    status VARCHAR NOT NULL,
    message VARCHAR
);
"""

LENDING_HISTORY_INDEX = """
CREATE INDEX IF NOT EXISTS idx_lending_history_timestamp ON lending_history(timestamp);
"""


def create_all_tables(conn: duckdb.DuckDBPyConnection) -> None:
    """Create all history tables and indexes."""
    try:
        conn.execute(DECISION_HISTORY_TABLE)
        conn.execute(DECISION_HISTORY_INDEX)
        conn.execute(TRADE_HISTORY_TABLE)
        conn.execute(TRADE_HISTORY_INDEX)
        conn.execute(LENDING_HISTORY_TABLE)
        conn.execute(LENDING_HISTORY_INDEX)
        logger.debug("Created history tables and indexes")
    except Exception as e:
        logger.error(f"Error creating history tables: {e}")
        raise
