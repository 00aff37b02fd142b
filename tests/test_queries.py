import logging
from datetime import date, datetime, timezone

from income_dashboard.config import MARKET_DATA_KEY, TRANSACTIONS_KEY
from income_dashboard.portfolio import queries
from income_dashboard.portfolio.models import (
    AssetMarketData,
    DividendEvent,
    PricePoint,
    Transaction,
    TxType,
)
from income_dashboard.portfolio.schema import initialize_store_schema


def _tx(tx_id, quantity=10.0, price=100.0, tx_type=TxType.BUY):
    return Transaction(
        tx_id=tx_id,
        ticker="HGLG11",
        tx_type=tx_type,
        quantity=quantity,
        price=price,
        trade_date=date(2024, 1, 15),
        costs=4.9,
        notes="corretora X",
    )


def test_schema_is_idempotent(store_db):
    initialize_store_schema(store_db)
    initialize_store_schema(store_db)
    assert queries.get_value(store_db, "missing", "default") == "default"


def test_empty_store_has_no_transactions(store_db):
    assert queries.load_transactions(store_db) == []


def test_insert_and_load(store_db):
    tx = _tx("a")
    queries.insert_transaction(store_db, tx)
    assert queries.load_transactions(store_db) == [tx]


def test_update_replaces_by_id(store_db):
    queries.insert_transaction(store_db, _tx("a"))
    queries.insert_transaction(store_db, _tx("b"))

    edited = _tx("a", quantity=12.0)
    assert queries.update_transaction(store_db, edited) is True

    stored = queries.load_transactions(store_db)
    assert [t.tx_id for t in stored] == ["a", "b"]
    assert stored[0].quantity == 12.0


def test_update_unknown_id(store_db):
    queries.insert_transaction(store_db, _tx("a"))
    assert queries.update_transaction(store_db, _tx("zzz")) is False
    assert [t.tx_id for t in queries.load_transactions(store_db)] == ["a"]


def test_delete_by_id(store_db):
    queries.insert_transaction(store_db, _tx("a"))
    queries.insert_transaction(store_db, _tx("b"))
    queries.delete_transaction(store_db, "a")
    assert [t.tx_id for t in queries.load_transactions(store_db)] == ["b"]


def test_import_skips_known_ids(store_db):
    queries.insert_transaction(store_db, _tx("a"))
    added = queries.import_transactions(store_db, [_tx("a"), _tx("b"), _tx("c"), _tx("b")])
    assert added == 2
    assert [t.tx_id for t in queries.load_transactions(store_db)] == ["a", "b", "c"]


def test_legacy_type_labels_are_read(store_db):
    queries.set_value(store_db, TRANSACTIONS_KEY, [
        {"id": "1", "ticker": "hglg11", "type": "Compra", "quantity": 10,
         "price": 100, "date": "2024-01-02"},
        {"id": "2", "ticker": "HGLG11", "type": "Venda", "quantity": 5,
         "price": 110, "date": "2024-02-02", "costs": 1.5},
    ])
    txs = queries.load_transactions(store_db)
    assert [t.tx_type for t in txs] == [TxType.BUY, TxType.SELL]
    assert txs[0].ticker == "HGLG11"
    assert txs[0].costs == 0.0
    assert txs[1].costs == 1.5


def test_malformed_entries_are_skipped(store_db, caplog):
    queries.set_value(store_db, TRANSACTIONS_KEY, [
        {"id": "1", "ticker": "HGLG11", "type": "Buy", "quantity": 10,
         "price": 100, "date": "2024-01-02"},
        {"id": "2", "ticker": "HGLG11", "type": "Dividend", "quantity": 1,
         "price": 1, "date": "2024-01-02"},
        {"id": "3"},
    ])
    with caplog.at_level(logging.WARNING):
        txs = queries.load_transactions(store_db)
    assert [t.tx_id for t in txs] == ["1"]
    assert "malformed" in caplog.text


def test_corrupt_json_falls_back_to_default(store_db, caplog):
    store_db.execute(
        "INSERT INTO kv_store (key, value) VALUES (?, ?)", (TRANSACTIONS_KEY, "{not json")
    )
    with caplog.at_level(logging.WARNING):
        assert queries.load_transactions(store_db) == []
    assert "Unreadable JSON" in caplog.text


def test_market_data_round_trip(store_db):
    data = {
        "HGLG11": AssetMarketData(
            ticker="HGLG11",
            current_price=160.5,
            dy=8.4,
            segment="Logística",
            price_history=(PricePoint(date(2024, 1, 2), 158.0),),
            dividends_history=(
                DividendEvent(date(2024, 1, 31), date(2024, 2, 14), 1.1, False),
                DividendEvent(date(2024, 2, 29), date(2024, 3, 14), 1.1, True),
            ),
        ),
    }
    queries.save_market_data(store_db, data)
    assert queries.load_market_data(store_db) == data


def test_last_sync_and_clear(store_db):
    assert queries.get_last_sync(store_db) is None
    when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    queries.set_last_sync(store_db, when)
    assert queries.get_last_sync(store_db) == when

    queries.save_market_data(store_db, {"HGLG11": AssetMarketData(ticker="HGLG11")})
    queries.clear_market_data(store_db)
    assert queries.load_market_data(store_db) == {}
    assert queries.get_last_sync(store_db) is None


def test_app_connection_creates_store(monkeypatch, tmp_path):
    from income_dashboard.database.connection import get_app_connection

    db_path = tmp_path / "nested" / "store.db"
    monkeypatch.setenv("INCOME_DB_PATH", str(db_path))
    conn = get_app_connection()
    try:
        queries.insert_transaction(conn, _tx("a"))
        conn.commit()
    finally:
        conn.close()
    assert db_path.exists()


def test_naive_last_sync_is_read_as_utc(store_db):
    queries.set_last_sync(store_db, datetime(2024, 5, 1, 12, 0))
    assert queries.get_last_sync(store_db) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def test_market_data_that_is_not_a_mapping_is_ignored(store_db, caplog):
    queries.set_value(store_db, MARKET_DATA_KEY, [{"ticker": "HGLG11"}])
    with caplog.at_level(logging.WARNING):
        assert queries.load_market_data(store_db) == {}
    assert "not a mapping" in caplog.text
