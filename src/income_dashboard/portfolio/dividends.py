"""Dividend attribution by ex-date ownership.

Every dividend event is credited to the portfolio for the shares held on its
ex-date, replayed from the transaction log. Paid events become received
income bucketed by payment month; provisioned (announced, unpaid) events only
feed the payer's projected amount. Forward-looking figures come from the
asset's quoted yield, not from trailing dividends.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date

from dateutil.relativedelta import relativedelta

from income_dashboard.config import segment_for
from income_dashboard.portfolio.models import (
    EPSILON,
    Asset,
    AssetMarketData,
    DividendEvent,
    DividendStats,
    MonthlyIncome,
    PayerData,
    Transaction,
    TxType,
)
from income_dashboard.portfolio.positions import compute_positions

WINDOW_MONTHS = 12


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def owned_on(ticker_txs: Iterable[Transaction], ex_date: date) -> float:
    """Shares held on ex_date: buys minus sells dated on or before it, floored at 0."""
    qty = 0.0
    for tx in ticker_txs:
        if tx.trade_date > ex_date:
            continue
        if tx.tx_type is TxType.BUY:
            qty += tx.quantity
        else:
            qty -= tx.quantity
    return max(qty, 0.0)


def average_nonzero_months(totals: Iterable[float]) -> float:
    """Mean over the months that actually had income."""
    paid = [t for t in totals if t > 0]
    if not paid:
        return 0.0
    return sum(paid) / len(paid)


def annual_forecast_for(asset: Asset) -> float:
    if not asset.dy:
        return 0.0
    return asset.quantity * asset.current_price * (asset.dy / 100)


def build_assets(
    transactions: Iterable[Transaction],
    market_data_by_ticker: Mapping[str, AssetMarketData],
) -> list[Asset]:
    """Join open positions with their market data snapshot.

    Without a quoted price the asset is valued at its average cost.
    """
    assets = []
    for ticker, pos in compute_positions(transactions).items():
        data = market_data_by_ticker.get(ticker.upper()) or AssetMarketData(ticker=ticker)
        avg_price = pos.average_cost
        current_price = data.current_price or avg_price

        # one event per ex-date, newest first
        by_ex_date = {d.ex_date: d for d in data.dividends_history}
        history = tuple(sorted(by_ex_date.values(), key=lambda d: d.ex_date, reverse=True))

        dy = data.dy or 0.0
        yoc = (current_price * (dy / 100)) / avg_price * 100 if avg_price > 0 else 0.0

        assets.append(Asset(
            ticker=ticker,
            quantity=pos.quantity,
            avg_price=avg_price,
            current_price=current_price,
            dy=data.dy,
            segment=segment_for(ticker, data.segment),
            yield_on_cost=yoc,
            price_history=data.price_history,
            dividends_history=history,
        ))
    return assets


def _display_event(history: list[DividendEvent], as_of: date) -> DividendEvent | None:
    """Earliest upcoming or provisioned event, else the most recent one."""
    upcoming = [d for d in history if d.is_provisioned or d.payment_date >= as_of]
    if upcoming:
        return min(upcoming, key=lambda d: (d.payment_date, d.ex_date))
    return history[0] if history else None


def compute_dividend_stats(
    transactions: Iterable[Transaction],
    assets: Iterable[Asset],
    as_of: date | None = None,
) -> DividendStats:
    as_of = as_of or date.today()

    txs_by_ticker: dict[str, list[Transaction]] = {}
    for tx in transactions:
        txs_by_ticker.setdefault(tx.ticker, []).append(tx)
    for ticker_txs in txs_by_ticker.values():
        ticker_txs.sort(key=lambda tx: tx.sort_key)

    total_received = 0.0
    total_invested = 0.0
    annual_forecast = 0.0
    monthly: dict[str, float] = {}
    annual_distribution: dict[str, dict[str, float]] = {}
    payers: list[PayerData] = []

    for asset in assets:
        forecast = annual_forecast_for(asset)
        annual_forecast += forecast
        total_invested += asset.total_cost

        ticker_txs = txs_by_ticker.get(asset.ticker)
        if not ticker_txs or not asset.dividends_history:
            continue

        history = sorted(asset.dividends_history, key=lambda d: d.ex_date, reverse=True)
        first_tx_date = ticker_txs[0].trade_date
        payer = PayerData(
            ticker=asset.ticker,
            yield_on_cost=forecast / asset.total_cost * 100 if asset.total_cost > 0 else 0.0,
        )

        for event in history:
            if event.ex_date < first_tx_date:
                continue
            owned = owned_on(ticker_txs, event.ex_date)
            if owned <= EPSILON:
                continue
            amount = owned * event.value_per_share
            if event.is_provisioned:
                payer.projected_amount += amount
                continue

            total_received += amount
            payer.total_paid += amount
            payer.count += 1
            key = month_key(event.payment_date)
            monthly[key] = monthly.get(key, 0.0) + amount
            year = annual_distribution.setdefault(str(event.payment_date.year), {})
            year[asset.ticker] = year.get(asset.ticker, 0.0) + amount

        shown = _display_event(history, as_of)
        if shown is not None:
            payer.last_ex_date = shown.ex_date
            payer.next_payment_date = shown.payment_date
            payer.is_provisioned = shown.is_provisioned
        payer.average_monthly = payer.total_paid / payer.count if payer.count else 0.0
        payers.append(payer)

    month_start = date(as_of.year, as_of.month, 1)
    monthly_data = []
    for offset in range(WINDOW_MONTHS - 1, -1, -1):
        key = month_key(month_start - relativedelta(months=offset))
        monthly_data.append(MonthlyIncome(key, monthly.get(key, 0.0)))

    payers = [p for p in payers if p.total_paid > 0 or p.projected_amount > 0]
    payers.sort(key=lambda p: p.total_paid, reverse=True)

    return DividendStats(
        total_received=total_received,
        monthly_data=monthly_data,
        payers_data=payers,
        current_month_value=monthly.get(month_key(as_of), 0.0),
        average_income=average_nonzero_months(m.total for m in monthly_data),
        annual_forecast=annual_forecast,
        yield_on_cost=annual_forecast / total_invested * 100 if total_invested > 0 else 0.0,
        full_history=dict(sorted(monthly.items())),
        annual_distribution=annual_distribution,
    )
