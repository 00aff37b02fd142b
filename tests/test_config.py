from pathlib import Path

from income_dashboard.config import DEFAULT_SEGMENT, STATIC_SEGMENTS, Settings, segment_for


def test_static_segments_cover_known_funds():
    assert STATIC_SEGMENTS["HGLG11"] == "Logística"
    assert STATIC_SEGMENTS["MXRF11"] == "Papel"
    assert all(ticker == ticker.upper() for ticker in STATIC_SEGMENTS)


def test_segment_for_prefers_provider_segment():
    assert segment_for("HGLG11", "Galpões") == "Galpões"


def test_segment_for_falls_back_to_static_map():
    assert segment_for("hglg11") == "Logística"
    assert segment_for("HGLG11", DEFAULT_SEGMENT) == "Logística"


def test_segment_for_unknown_ticker():
    assert segment_for("ZZZZ11") == DEFAULT_SEGMENT


def test_settings_defaults(monkeypatch):
    monkeypatch.setenv("INCOME_YAHOO_SUFFIX", ".SA")
    monkeypatch.setenv("INCOME_PRICE_TTL", "21600")
    settings = Settings()
    assert settings.yahoo_suffix == ".SA"
    assert settings.history_period == "5y"
    assert settings.price_ttl_seconds == 6 * 60 * 60


def test_settings_env_override(monkeypatch, tmp_path):
    db_path = tmp_path / "custom.db"
    monkeypatch.setenv("INCOME_DB_PATH", str(db_path))
    monkeypatch.setenv("INCOME_PRICE_TTL", "60")
    settings = Settings()
    assert settings.db_path == Path(db_path)
    assert settings.price_ttl_seconds == 60
