from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date

EPSILON = 1e-6


def as_date(val: date | str) -> date:
    if isinstance(val, date):
        return val
    return date.fromisoformat(str(val).strip()[:10])


def _opt_float(val) -> float | None:
    if val is None or val == "":
        return None
    return float(val)


class TxType(enum.Enum):
    BUY = "Buy"
    SELL = "Sell"

    @classmethod
    def parse(cls, raw: str | TxType) -> TxType:
        """Accept enum members, English labels and the legacy Compra/Venda labels."""
        if isinstance(raw, TxType):
            return raw
        label = str(raw).strip().lower()
        if label in ("buy", "compra"):
            return cls.BUY
        if label in ("sell", "venda"):
            return cls.SELL
        raise ValueError(f"Unknown transaction type: {raw!r}")


@dataclass(frozen=True)
class Transaction:
    tx_id: str
    ticker: str
    tx_type: TxType
    quantity: float
    price: float
    trade_date: date
    costs: float = 0.0
    notes: str = ""

    @property
    def sort_key(self) -> tuple[date, int]:
        # Buy before Sell on the same day
        return (self.trade_date, 0 if self.tx_type is TxType.BUY else 1)

    @property
    def gross_amount(self) -> float:
        return self.quantity * self.price

    def to_dict(self) -> dict:
        return {
            "id": self.tx_id,
            "ticker": self.ticker,
            "type": self.tx_type.value,
            "quantity": self.quantity,
            "price": self.price,
            "date": self.trade_date.isoformat(),
            "costs": self.costs,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Transaction:
        return cls(
            tx_id=str(data["id"]),
            ticker=str(data["ticker"]).strip().upper(),
            tx_type=TxType.parse(data["type"]),
            quantity=float(data["quantity"]),
            price=float(data["price"]),
            trade_date=as_date(data["date"]),
            costs=float(data.get("costs") or 0.0),
            notes=str(data.get("notes") or ""),
        )


@dataclass(frozen=True)
class Position:
    quantity: float = 0.0
    total_cost: float = 0.0

    @property
    def average_cost(self) -> float:
        return self.total_cost / self.quantity if self.quantity > 0 else 0.0


@dataclass(frozen=True)
class PricePoint:
    price_date: date
    price: float


@dataclass(frozen=True)
class DividendEvent:
    ex_date: date
    payment_date: date
    value_per_share: float
    is_provisioned: bool = False


@dataclass(frozen=True)
class AssetMarketData:
    """Market snapshot for one ticker as returned by the quotes provider.

    Fundamentals are optional: None means unknown, which is not the same as 0.
    """
    ticker: str
    current_price: float | None = None
    dy: float | None = None
    pvp: float | None = None
    segment: str | None = None
    last_dividend: float | None = None
    next_payment_date: date | None = None
    price_history: tuple[PricePoint, ...] = ()
    dividends_history: tuple[DividendEvent, ...] = ()

    def to_dict(self) -> dict:
        return {
            "ticker": self.ticker,
            "currentPrice": self.current_price,
            "dy": self.dy,
            "pvp": self.pvp,
            "segment": self.segment,
            "lastDividend": self.last_dividend,
            "nextPaymentDate": self.next_payment_date.isoformat() if self.next_payment_date else None,
            "priceHistory": [
                {"date": p.price_date.isoformat(), "price": p.price} for p in self.price_history
            ],
            "dividendsHistory": [
                {
                    "exDate": d.ex_date.isoformat(),
                    "paymentDate": d.payment_date.isoformat(),
                    "value": d.value_per_share,
                    "isProvisioned": d.is_provisioned,
                }
                for d in self.dividends_history
            ],
        }

    @classmethod
    def from_dict(cls, data: dict) -> AssetMarketData:
        next_pay = data.get("nextPaymentDate")
        return cls(
            ticker=str(data["ticker"]).upper(),
            current_price=_opt_float(data.get("currentPrice")),
            dy=_opt_float(data.get("dy")),
            pvp=_opt_float(data.get("pvp")),
            segment=data.get("segment") or None,
            last_dividend=_opt_float(data.get("lastDividend")),
            next_payment_date=as_date(next_pay) if next_pay else None,
            price_history=tuple(
                PricePoint(as_date(p["date"]), float(p["price"]))
                for p in data.get("priceHistory") or []
            ),
            dividends_history=tuple(
                DividendEvent(
                    ex_date=as_date(d["exDate"]),
                    payment_date=as_date(d.get("paymentDate") or d["exDate"]),
                    value_per_share=float(d["value"]),
                    is_provisioned=bool(d.get("isProvisioned", False)),
                )
                for d in data.get("dividendsHistory") or []
            ),
        )


@dataclass(frozen=True)
class Asset:
    ticker: str
    quantity: float
    avg_price: float
    current_price: float
    dy: float | None = None
    segment: str = "Outros"
    yield_on_cost: float = 0.0
    price_history: tuple[PricePoint, ...] = ()
    dividends_history: tuple[DividendEvent, ...] = ()

    @property
    def total_cost(self) -> float:
        return self.quantity * self.avg_price

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price


@dataclass(frozen=True)
class EvolutionPoint:
    date_iso: str
    invested: float
    market_value: float


@dataclass(frozen=True)
class MonthlyIncome:
    month_key: str
    total: float


@dataclass
class PayerData:
    ticker: str
    total_paid: float = 0.0
    count: int = 0
    last_ex_date: date | None = None
    next_payment_date: date | None = None
    is_provisioned: bool = False
    yield_on_cost: float = 0.0
    average_monthly: float = 0.0
    projected_amount: float = 0.0


@dataclass(frozen=True)
class DividendStats:
    total_received: float
    monthly_data: list[MonthlyIncome]
    payers_data: list[PayerData]
    current_month_value: float
    average_income: float
    annual_forecast: float
    yield_on_cost: float
    full_history: dict[str, float] = field(default_factory=dict)
    annual_distribution: dict[str, dict[str, float]] = field(default_factory=dict)
