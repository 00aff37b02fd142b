from datetime import date

import pytest

from income_dashboard.portfolio.metrics import (
    current_allocation,
    portfolio_xirr,
    segment_allocation,
    total_return,
    unrealized_gain,
)
from income_dashboard.portfolio.models import Asset, Position, Transaction, TxType


def _tx(tx_id, tx_type, quantity, price, trade_date, costs=0.0):
    return Transaction(tx_id, "HGLG11", tx_type, quantity, price, trade_date, costs)


# --- XIRR ---

def test_xirr_simple():
    """Invest 1000 on Jan 1, worth 1100 on Dec 31 -> ~10% IRR."""
    txs = [_tx("1", TxType.BUY, 10, 100.0, date(2024, 1, 1))]
    result = portfolio_xirr(txs, 1100.0, date(2024, 12, 31))
    assert result is not None
    assert result == pytest.approx(0.10, abs=0.02)


def test_xirr_with_sell_is_positive():
    txs = [
        _tx("1", TxType.BUY, 10, 100.0, date(2024, 1, 1), costs=5.0),
        _tx("2", TxType.BUY, 5, 100.0, date(2024, 4, 1)),
        _tx("3", TxType.SELL, 5, 120.0, date(2024, 7, 1), costs=2.0),
    ]
    result = portfolio_xirr(txs, 1150.0, date(2024, 12, 31))
    assert result is not None
    assert result > 0


def test_xirr_no_transactions():
    assert portfolio_xirr([], 0.0, date(2024, 12, 31)) is None


# --- Simple metrics ---

def test_total_return():
    assert total_return(1100.0, 1000.0) == pytest.approx(0.1)
    assert total_return(900.0, 1000.0) == pytest.approx(-0.1)
    assert total_return(100.0, 0.0) is None


def test_unrealized_gain():
    positions = {
        "HGLG11": Position(quantity=15, total_cost=1550.0),
        "MXRF11": Position(quantity=100, total_cost=1000.0),
        "KNRI11": Position(quantity=2, total_cost=300.0),
    }
    prices = {"HGLG11": 120.0, "MXRF11": 9.5}
    gains = unrealized_gain(positions, prices)

    assert gains["HGLG11"] == pytest.approx(250.0)
    assert gains["MXRF11"] == pytest.approx(-50.0)
    # no price: valued at cost
    assert gains["KNRI11"] == pytest.approx(0.0)
    assert gains["_total"] == pytest.approx(200.0)


def test_current_allocation():
    assets = [
        Asset("HGLG11", quantity=10, avg_price=90.0, current_price=100.0, segment="Logística"),
        Asset("MXRF11", quantity=100, avg_price=9.0, current_price=10.0, segment="Papel"),
        Asset("KNCR11", quantity=20, avg_price=95.0, current_price=100.0, segment="Papel"),
    ]
    alloc = current_allocation(assets)
    assert alloc["HGLG11"] == pytest.approx(0.25)
    assert alloc["MXRF11"] == pytest.approx(0.25)
    assert alloc["KNCR11"] == pytest.approx(0.5)

    by_segment = segment_allocation(assets)
    assert by_segment == {"Logística": pytest.approx(0.25), "Papel": pytest.approx(0.75)}


def test_current_allocation_empty():
    assert current_allocation([]) == {}
    assert segment_allocation([]) == {}
