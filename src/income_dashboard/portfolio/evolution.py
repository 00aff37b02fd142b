from __future__ import annotations

from bisect import bisect_right
from collections.abc import Iterable, Mapping
from datetime import date, timedelta

import pandas as pd
from dateutil.relativedelta import relativedelta

from income_dashboard.config import segment_for
from income_dashboard.portfolio.models import (
    EPSILON,
    AssetMarketData,
    EvolutionPoint,
    Position,
    PricePoint,
    Transaction,
)
from income_dashboard.portfolio.positions import apply_transaction, compute_positions, sort_transactions

PriceIndex = tuple[list[date], list[float]]


def build_price_index(history: Iterable[PricePoint]) -> PriceIndex:
    """Sort a price history into parallel (dates, prices) lists.

    Duplicate dates keep the last price seen.
    """
    by_date = {p.price_date: p.price for p in history}
    dates = sorted(by_date)
    return dates, [by_date[d] for d in dates]


def resolve_price(index: PriceIndex, on: date, fallback: float | None) -> float | None:
    """Price on the exact date, else the latest one before it, else the fallback."""
    dates, prices = index
    pos = bisect_right(dates, on)
    if pos:
        return prices[pos - 1]
    return fallback


def _market_data_for(
    market_data_by_ticker: Mapping[str, AssetMarketData], ticker: str
) -> AssetMarketData | None:
    return market_data_by_ticker.get(ticker.upper()) or market_data_by_ticker.get(ticker)


def compute_evolution(
    transactions: Iterable[Transaction],
    market_data_by_ticker: Mapping[str, AssetMarketData],
) -> list[EvolutionPoint]:
    """Replay transactions over every known date into invested vs market value.

    The date axis is the union of the transaction dates and the price-history
    dates of every traded ticker. A day's transactions are applied before
    that day is valued. Days where both totals are zero are not emitted.
    """
    txs = sort_transactions(transactions)
    if not txs:
        return []

    tickers = {tx.ticker for tx in txs}
    indexes: dict[str, PriceIndex] = {}
    for ticker in tickers:
        data = _market_data_for(market_data_by_ticker, ticker)
        indexes[ticker] = build_price_index(data.price_history if data else ())

    all_dates: set[date] = {tx.trade_date for tx in txs}
    for dates, _ in indexes.values():
        all_dates.update(dates)

    txs_by_date: dict[date, list[Transaction]] = {}
    for tx in txs:
        txs_by_date.setdefault(tx.trade_date, []).append(tx)

    holdings: dict[str, Position] = {}
    points: list[EvolutionPoint] = []
    for current in sorted(all_dates):
        for tx in txs_by_date.get(current, ()):
            holdings[tx.ticker] = apply_transaction(holdings.get(tx.ticker, Position()), tx)

        total_invested = 0.0
        total_market = 0.0
        for ticker, pos in holdings.items():
            if pos.quantity <= EPSILON:
                continue
            total_invested += pos.total_cost
            price = resolve_price(indexes[ticker], current, pos.average_cost)
            total_market += pos.quantity * price

        if total_invested or total_market:
            points.append(EvolutionPoint(current.isoformat(), total_invested, total_market))

    return points


def _month_end(month_start: date) -> date:
    return month_start + relativedelta(months=1) - timedelta(days=1)


def compute_segment_evolution(
    transactions: Iterable[Transaction],
    market_data_by_ticker: Mapping[str, AssetMarketData],
    as_of: date | None = None,
) -> dict[str, list[EvolutionPoint]]:
    """Month-end invested vs market value, overall and per segment.

    Returns {"all_types": [...], segment: [...]}; each point is dated at the
    month end. Holdings without a price on or before the month end are valued
    at cost.
    """
    txs = sort_transactions(transactions)
    if not txs:
        return {}

    as_of = as_of or date.today()
    indexes: dict[str, PriceIndex] = {}
    segments: dict[str, str] = {}
    for ticker in {tx.ticker for tx in txs}:
        data = _market_data_for(market_data_by_ticker, ticker)
        indexes[ticker] = build_price_index(data.price_history if data else ())
        segments[ticker] = segment_for(ticker, data.segment if data else None)

    results: dict[str, list[EvolutionPoint]] = {"all_types": []}
    first = txs[0].trade_date
    current = date(first.year, first.month, 1)
    while current <= as_of:
        month_end = _month_end(current)
        positions = compute_positions(tx for tx in txs if tx.trade_date <= month_end)

        invested_total = 0.0
        market_total = 0.0
        seg_invested: dict[str, float] = {}
        seg_market: dict[str, float] = {}
        for ticker, pos in positions.items():
            price = resolve_price(indexes[ticker], month_end, None)
            market_value = pos.quantity * price if price is not None else pos.total_cost
            seg = segments[ticker]
            invested_total += pos.total_cost
            market_total += market_value
            seg_invested[seg] = seg_invested.get(seg, 0.0) + pos.total_cost
            seg_market[seg] = seg_market.get(seg, 0.0) + market_value

        date_iso = month_end.isoformat()
        results["all_types"].append(EvolutionPoint(date_iso, invested_total, market_total))
        for seg, invested in seg_invested.items():
            results.setdefault(seg, []).append(EvolutionPoint(date_iso, invested, seg_market[seg]))

        current += relativedelta(months=1)

    return results


def evolution_frame(points: list[EvolutionPoint]) -> pd.DataFrame:
    """Evolution points as a DataFrame indexed by date."""
    if not points:
        return pd.DataFrame(columns=["invested", "market_value"])
    df = pd.DataFrame(
        [{"date": p.date_iso, "invested": p.invested, "market_value": p.market_value} for p in points]
    )
    df["date"] = pd.to_datetime(df["date"])
    return df.set_index("date")
