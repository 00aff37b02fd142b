from __future__ import annotations

from collections.abc import Iterable
from datetime import date

import pyxirr

from income_dashboard.portfolio.models import Asset, Position, Transaction, TxType


def portfolio_xirr(
    transactions: Iterable[Transaction],
    current_value: float,
    as_of_date: date,
) -> float | None:
    """Money-weighted annual return of the transaction log.

    Buys are outflows (price * quantity + costs), sells are inflows net of
    costs, and the current portfolio value closes the series on as_of_date.
    """
    dates = []
    amounts = []
    for tx in sorted(transactions, key=lambda t: t.sort_key):
        if tx.tx_type is TxType.BUY:
            amounts.append(-(tx.gross_amount + tx.costs))
        else:
            amounts.append(tx.gross_amount - tx.costs)
        dates.append(tx.trade_date)

    if not dates:
        return None

    dates.append(as_of_date)
    amounts.append(current_value)

    try:
        return pyxirr.xirr(dates, amounts)
    except Exception:
        return None


def total_return(current_value: float, total_cost_basis: float) -> float | None:
    if total_cost_basis == 0:
        return None
    return (current_value - total_cost_basis) / total_cost_basis


def unrealized_gain(
    positions: dict[str, Position],
    current_prices: dict[str, float],
) -> dict[str, float]:
    """Unrealized gain per ticker plus a '_total' key.

    Tickers without a current price are valued at cost (zero gain).
    """
    gains: dict[str, float] = {}
    for ticker, pos in positions.items():
        if pos.quantity <= 0:
            continue
        price = current_prices.get(ticker, pos.average_cost)
        gains[ticker] = pos.quantity * price - pos.total_cost

    gains["_total"] = sum(gains.values())
    return gains


def current_allocation(assets: Iterable[Asset]) -> dict[str, float]:
    """Share of total market value per ticker; fractions sum to ~1.0."""
    values: dict[str, float] = {}
    for asset in assets:
        if asset.quantity <= 0:
            continue
        values[asset.ticker] = values.get(asset.ticker, 0.0) + asset.market_value

    total = sum(values.values())
    if total == 0:
        return {}
    return {ticker: val / total for ticker, val in values.items()}


def segment_allocation(assets: Iterable[Asset]) -> dict[str, float]:
    values: dict[str, float] = {}
    for asset in assets:
        if asset.quantity <= 0:
            continue
        values[asset.segment] = values.get(asset.segment, 0.0) + asset.market_value

    total = sum(values.values())
    if total == 0:
        return {}
    return {seg: val / total for seg, val in values.items()}
