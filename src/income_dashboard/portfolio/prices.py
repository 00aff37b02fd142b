from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta, timezone

import pandas as pd
import yfinance as yf

from income_dashboard.config import Settings
from income_dashboard.portfolio import queries
from income_dashboard.portfolio.models import AssetMarketData, DividendEvent, PricePoint

logger = logging.getLogger(__name__)


def yahoo_symbol(ticker: str, suffix: str) -> str:
    """Map a B3 ticker (HGLG11) to its Yahoo symbol (HGLG11.SA)."""
    ticker = ticker.strip().upper()
    if not suffix or "." in ticker:
        return ticker
    return f"{ticker}{suffix}"


def _price_history(hist: pd.DataFrame) -> tuple[PricePoint, ...]:
    if hist is None or hist.empty:
        return ()

    # yfinance may return MultiIndex columns (Price, Ticker)
    if isinstance(hist.columns, pd.MultiIndex):
        hist.columns = hist.columns.get_level_values(0)
        hist = hist.loc[:, ~hist.columns.duplicated()]

    if "Close" not in hist.columns:
        return ()

    points = []
    for dt_idx, close in hist["Close"].dropna().items():
        points.append(PricePoint(dt_idx.date(), float(close)))
    return tuple(points)


def _dividend_history(divs: pd.Series | None) -> tuple[DividendEvent, ...]:
    if divs is None or divs.empty:
        return ()
    # Yahoo only exposes the ex-date; the payment date is taken to be the same day.
    return tuple(
        DividendEvent(ex_date=dt.date(), payment_date=dt.date(), value_per_share=float(v))
        for dt, v in divs.items()
        if v and v > 0
    )


def _trailing_yield(
    dividends: tuple[DividendEvent, ...], price: float | None, as_of: datetime
) -> float | None:
    """Trailing 12-month dividend yield in percent, None when it can't be known."""
    if not price or not dividends:
        return None
    cutoff = (as_of - timedelta(days=365)).date()
    trailing = sum(d.value_per_share for d in dividends if d.ex_date > cutoff)
    return trailing / price * 100


def fetch_asset_data(ticker: str, settings: Settings) -> AssetMarketData:
    symbol = yahoo_symbol(ticker, settings.yahoo_suffix)
    yt = yf.Ticker(symbol)

    history = _price_history(yt.history(period=settings.history_period, auto_adjust=False))
    dividends = _dividend_history(yt.dividends)

    current_price = None
    try:
        info = yt.fast_info
        price = info.get("lastPrice") or info.get("last_price")
        if price and price > 0:
            current_price = float(price)
    except Exception:
        logger.debug("No live quote for %s", symbol, exc_info=True)
    if current_price is None and history:
        current_price = history[-1].price

    now = datetime.now(tz=timezone.utc)
    return AssetMarketData(
        ticker=ticker.upper(),
        current_price=current_price,
        dy=_trailing_yield(dividends, current_price, now),
        last_dividend=dividends[-1].value_per_share if dividends else None,
        price_history=history,
        dividends_history=dividends,
    )


def fetch_market_data(
    tickers: list[str],
    settings: Settings | None = None,
) -> dict[str, AssetMarketData]:
    """Fetch quotes, price and dividend history per ticker. Failures are skipped."""
    settings = settings or Settings()
    result: dict[str, AssetMarketData] = {}
    errors = 0
    for ticker in tickers:
        try:
            result[ticker.upper()] = fetch_asset_data(ticker, settings)
        except Exception:
            logger.warning("Failed to fetch market data for %s", ticker)
            errors += 1
    if errors:
        logger.warning("Failed to fetch market data for %d/%d tickers", errors, len(tickers))
    return result


def refresh_market_data(
    conn: sqlite3.Connection,
    tickers: list[str],
    force: bool = False,
    settings: Settings | None = None,
) -> dict[str, AssetMarketData]:
    """Refresh the cached market data snapshot unless it is still fresh.

    Newly fetched tickers are merged over the cached ones.
    """
    settings = settings or Settings()
    cached = queries.load_market_data(conn)
    last_sync = queries.get_last_sync(conn)
    now = datetime.now(tz=timezone.utc)

    if not force and last_sync is not None:
        age = (now - last_sync).total_seconds()
        if age < settings.price_ttl_seconds:
            logger.debug("Market data is %.0fs old, skipping refresh", age)
            return cached

    if not tickers:
        queries.save_market_data(conn, {})
        queries.set_last_sync(conn, now)
        conn.commit()
        return {}

    fetched = fetch_market_data(tickers, settings)
    merged = {**cached, **fetched}
    queries.save_market_data(conn, merged)
    queries.set_last_sync(conn, now)
    conn.commit()
    logger.info("Refreshed market data for %d/%d tickers", len(fetched), len(tickers))
    return merged
