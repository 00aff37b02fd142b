from __future__ import annotations

import logging
from collections.abc import Iterable

from income_dashboard.portfolio.models import EPSILON, Position, Transaction, TxType

logger = logging.getLogger(__name__)


def sort_transactions(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Chronological order, Buy before Sell within the same day."""
    return sorted(transactions, key=lambda tx: tx.sort_key)


def process_buy(position: Position, tx: Transaction) -> Position:
    return Position(
        quantity=position.quantity + tx.quantity,
        total_cost=position.total_cost + tx.gross_amount + tx.costs,
    )


def process_sell(position: Position, tx: Transaction) -> Position:
    held = position.quantity
    sell_qty = min(tx.quantity, held)
    if tx.quantity - held > EPSILON:
        logger.warning(
            "Insufficient shares for SELL: %s on %s, short %.6f shares",
            tx.ticker, tx.trade_date, tx.quantity - held,
        )
    avg_price = position.total_cost / held if held > EPSILON else 0.0
    return Position(
        quantity=held - sell_qty,
        total_cost=max(position.total_cost - sell_qty * avg_price, 0.0),
    )


_TX_HANDLERS = {
    TxType.BUY: process_buy,
    TxType.SELL: process_sell,
}


def apply_transaction(position: Position, tx: Transaction) -> Position:
    """Apply one transaction using weighted-average cost, then clamp dust to zero."""
    position = _TX_HANDLERS[tx.tx_type](position, tx)
    if position.quantity < EPSILON:
        return Position(0.0, 0.0)
    return position


def compute_positions(transactions: Iterable[Transaction]) -> dict[str, Position]:
    """Replay the transaction log into open positions keyed by ticker.

    Closed positions (quantity within EPSILON of zero) are left out.
    """
    positions: dict[str, Position] = {}
    for tx in sort_transactions(transactions):
        positions[tx.ticker] = apply_transaction(positions.get(tx.ticker, Position()), tx)

    return {
        ticker: pos for ticker, pos in positions.items() if pos.quantity > EPSILON
    }


def total_cost_basis(positions: dict[str, Position]) -> float:
    return sum(pos.total_cost for pos in positions.values())
