from __future__ import annotations

import io
import json
import logging
from pathlib import Path

import pandas as pd

from income_dashboard.portfolio.models import Transaction, TxType, as_date

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["ID", "Ticker", "Type", "Quantity", "Price", "Date", "Costs", "Notes"]


def _col(row, *names: str) -> str:
    """Read the first matching column name from a row, return stripped string."""
    for name in names:
        val = row.get(name)
        if val is not None:
            s = str(val).strip()
            if s and s != "nan":
                return s
    return ""


def _number(val: str) -> float:
    """Parse '1.234,56' (pt-BR) or '1234.56' into a float."""
    val = val.replace("R$", "").replace(" ", "")
    if "," in val and "." in val:
        val = val.replace(".", "").replace(",", ".")
    elif "," in val:
        val = val.replace(",", ".")
    return float(val) if val else 0.0


def parse_transactions_csv(
    file_path: Path | str | io.StringIO,
    sep: str = ",",
) -> list[Transaction]:
    """Parse a transaction export (ID,Ticker,Type,Quantity,Price,Date,Costs,Notes).

    Rows with an unknown type, unreadable numbers, a non-positive
    quantity/price or negative costs are skipped.
    """
    df = pd.read_csv(file_path, dtype=str, sep=sep)
    df.columns = df.columns.str.strip()

    transactions: list[Transaction] = []
    for idx, row in df.iterrows():
        try:
            tx_type = TxType.parse(_col(row, "Type"))
            quantity = _number(_col(row, "Quantity"))
            price = _number(_col(row, "Price"))
            trade_date = as_date(_col(row, "Date"))
            costs_str = _col(row, "Costs")
            costs = _number(costs_str) if costs_str else 0.0
        except ValueError:
            logger.warning("Skipping unreadable CSV row %d: %s", idx, dict(row))
            continue

        ticker = _col(row, "Ticker").upper()
        if not ticker or quantity <= 0 or price <= 0 or costs < 0:
            logger.warning("Skipping invalid CSV row %d: %s", idx, dict(row))
            continue

        transactions.append(Transaction(
            tx_id=_col(row, "ID") or f"csv-{idx}-{ticker}-{trade_date.isoformat()}",
            ticker=ticker,
            tx_type=tx_type,
            quantity=quantity,
            price=price,
            trade_date=trade_date,
            costs=costs,
            notes=_col(row, "Notes"),
        ))

    return transactions


def transactions_to_csv(transactions: list[Transaction], sep: str = ",") -> str:
    rows = [
        {
            "ID": tx.tx_id,
            "Ticker": tx.ticker,
            "Type": tx.tx_type.value,
            "Quantity": tx.quantity,
            "Price": tx.price,
            "Date": tx.trade_date.isoformat(),
            "Costs": tx.costs,
            "Notes": tx.notes,
        }
        for tx in transactions
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS).to_csv(index=False, sep=sep)


def parse_backup_json(text: str) -> list[Transaction]:
    """Read a {"transactions": [...]} backup file."""
    data = json.loads(text)
    if not isinstance(data, dict) or not isinstance(data.get("transactions"), list):
        raise ValueError("Backup file has no 'transactions' list")
    return [Transaction.from_dict(raw) for raw in data["transactions"]]


def transactions_to_backup_json(transactions: list[Transaction]) -> str:
    return json.dumps({"transactions": [tx.to_dict() for tx in transactions]}, indent=2)
