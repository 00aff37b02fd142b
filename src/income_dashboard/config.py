from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_DEFAULT_DB_PATH = _PROJECT_ROOT / "data" / "income_dashboard.db"

# -- Store keys ------------------------------------------------------------------

TRANSACTIONS_KEY = "transactions"
MARKET_DATA_KEY = "market_data"
LAST_SYNC_KEY = "last_sync"

# -- Segments --------------------------------------------------------------------

DEFAULT_SEGMENT = "Outros"

# Fallback segment for well-known FIIs when the quotes provider has none.
STATIC_SEGMENTS: dict[str, str] = {
    "HGLG11": "Logística",
    "BTLG11": "Logística",
    "XPLG11": "Logística",
    "VILG11": "Logística",
    "LVBI11": "Logística",
    "KNRI11": "Híbrido",
    "HGRU11": "Híbrido",
    "ALZR11": "Híbrido",
    "XPML11": "Shoppings",
    "VISC11": "Shoppings",
    "HGBS11": "Shoppings",
    "HSML11": "Shoppings",
    "MXRF11": "Papel",
    "KNCR11": "Papel",
    "KNIP11": "Papel",
    "CPTS11": "Papel",
    "IRDM11": "Papel",
    "RECR11": "Papel",
    "HGCR11": "Papel",
    "VGIR11": "Papel",
    "HGRE11": "Lajes Corporativas",
    "PVBI11": "Lajes Corporativas",
    "JSRE11": "Lajes Corporativas",
    "BCFF11": "Fundo de Fundos",
    "HFOF11": "Fundo de Fundos",
    "KFOF11": "Fundo de Fundos",
}

_DEFAULT_PRICE_TTL = 6 * 60 * 60


def _load_env_file() -> dict[str, str]:
    """Read key=value pairs from .env at project root."""
    env_path = _PROJECT_ROOT / ".env"
    if not env_path.exists():
        return {}
    result = {}
    for line in env_path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        result[key.strip()] = value.strip()
    return result


def _env(name: str) -> str | None:
    """Return a setting from the environment, falling back to .env."""
    value = os.environ.get(name)
    if value:
        return value
    return _load_env_file().get(name)


def segment_for(ticker: str, segment: str | None = None) -> str:
    """Resolve the display segment for a ticker."""
    if segment and segment != DEFAULT_SEGMENT:
        return segment
    return STATIC_SEGMENTS.get(ticker.upper(), DEFAULT_SEGMENT)


@dataclass(frozen=True)
class Settings:
    db_path: Path = field(default_factory=lambda: Path(
        _env("INCOME_DB_PATH") or str(_DEFAULT_DB_PATH)
    ))
    yahoo_suffix: str = field(default_factory=lambda: _env("INCOME_YAHOO_SUFFIX") or ".SA")
    history_period: str = "5y"
    price_ttl_seconds: int = field(default_factory=lambda: int(
        _env("INCOME_PRICE_TTL") or _DEFAULT_PRICE_TTL
    ))
