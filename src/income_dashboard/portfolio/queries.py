from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone

from income_dashboard.config import LAST_SYNC_KEY, MARKET_DATA_KEY, TRANSACTIONS_KEY
from income_dashboard.portfolio.models import AssetMarketData, Transaction

logger = logging.getLogger(__name__)


# --- Key-value store ---

def get_value(conn: sqlite3.Connection, key: str, default=None):
    """Return the JSON value stored under key, or default when absent/unreadable."""
    row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    try:
        value = json.loads(row[0])
    except json.JSONDecodeError:
        logger.warning("Unreadable JSON under store key %r, using default", key)
        return default
    return value if value is not None else default


def set_value(conn: sqlite3.Connection, key: str, value) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO kv_store (key, value, updated_at) "
        "VALUES (?, ?, datetime('now'))",
        (key, json.dumps(value)),
    )


def delete_value(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))


# --- Transactions ---

def load_transactions(conn: sqlite3.Connection) -> list[Transaction]:
    transactions = []
    for raw in get_value(conn, TRANSACTIONS_KEY, []):
        try:
            transactions.append(Transaction.from_dict(raw))
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed stored transaction: %r", raw)
    return transactions


def save_transactions(conn: sqlite3.Connection, transactions: list[Transaction]) -> None:
    set_value(conn, TRANSACTIONS_KEY, [tx.to_dict() for tx in transactions])


def insert_transaction(conn: sqlite3.Connection, tx: Transaction) -> None:
    transactions = load_transactions(conn)
    transactions.append(tx)
    save_transactions(conn, transactions)


def update_transaction(conn: sqlite3.Connection, tx: Transaction) -> bool:
    """Replace the transaction with the same id. Returns False if none matched."""
    transactions = load_transactions(conn)
    replaced = [tx if t.tx_id == tx.tx_id else t for t in transactions]
    if not any(t.tx_id == tx.tx_id for t in transactions):
        return False
    save_transactions(conn, replaced)
    return True


def delete_transaction(conn: sqlite3.Connection, tx_id: str) -> None:
    """Delete a single transaction by id."""
    transactions = load_transactions(conn)
    save_transactions(conn, [t for t in transactions if t.tx_id != tx_id])


def import_transactions(conn: sqlite3.Connection, new_transactions: list[Transaction]) -> int:
    """Append transactions whose ids are not stored yet. Returns the number added."""
    transactions = load_transactions(conn)
    known = {t.tx_id for t in transactions}
    to_add = []
    for tx in new_transactions:
        if tx.tx_id in known:
            continue
        known.add(tx.tx_id)
        to_add.append(tx)
    if to_add:
        save_transactions(conn, transactions + to_add)
    return len(to_add)


# --- Market data cache ---

def load_market_data(conn: sqlite3.Connection) -> dict[str, AssetMarketData]:
    raw = get_value(conn, MARKET_DATA_KEY, {})
    if not isinstance(raw, dict):
        logger.warning("Cached market data is not a mapping, ignoring it")
        return {}
    result = {}
    for ticker, data in raw.items():
        try:
            result[ticker] = AssetMarketData.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("Skipping malformed cached market data for %s", ticker)
    return result


def save_market_data(conn: sqlite3.Connection, market_data: dict[str, AssetMarketData]) -> None:
    set_value(conn, MARKET_DATA_KEY, {t: d.to_dict() for t, d in market_data.items()})


def get_last_sync(conn: sqlite3.Connection) -> datetime | None:
    raw = get_value(conn, LAST_SYNC_KEY)
    if not raw:
        return None
    when = datetime.fromisoformat(raw)
    # naive timestamps are taken as UTC
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when


def set_last_sync(conn: sqlite3.Connection, when: datetime | None = None) -> None:
    when = when or datetime.now(tz=timezone.utc)
    set_value(conn, LAST_SYNC_KEY, when.isoformat())


def clear_market_data(conn: sqlite3.Connection) -> None:
    delete_value(conn, MARKET_DATA_KEY)
    delete_value(conn, LAST_SYNC_KEY)
