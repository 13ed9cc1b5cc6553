import pytest

from core.catalog import Catalog, default_catalog, round_price
from core.schemas import ControlCommand
from core.state import ControlStore, MarketState, SnapshotStore, load_state_for_ui
from services.currency import RateConverter, converter_for, parse_rates


def test_load_state_for_ui_defaults_when_missing(tmp_path):
    d = load_state_for_ui(tmp_path / "nope.json")
    assert d["ts_ms"] == 0
    assert d["currency"] == "USD"
    assert d["assets"] == {"crypto": [], "forex": [], "commodity": [], "equity": []}
    assert d["history"] == {}


def test_load_state_for_ui_tolerates_corrupt_file(tmp_path):
    p = tmp_path / "bad.json"
    p.write_text("{not json", encoding="utf-8")
    assert load_state_for_ui(p)["assets"]["forex"] == []


def test_snapshot_roundtrip(tmp_path, make_asset):
    st = MarketState(currency="KES")
    a = make_asset("eur-usd", price=1.1)
    st.assets[a.instrument_id] = a
    st.history.seed(a.instrument_id, 1.1)
    store = SnapshotStore(tmp_path / "sub" / "state.json")
    assert store.write(st) is True
    d = load_state_for_ui(store.path)
    assert d["currency"] == "KES"
    assert d["assets"]["forex"][0]["instrument_id"] == "eur-usd"
    assert d["history"]["eur-usd"] == [1.1]


def test_by_category_returns_copies(make_asset):
    st = MarketState()
    a = make_asset("apple", price=10.0)
    st.assets[a.instrument_id] = a
    view = st.by_category()
    view["equity"][0].current_price = 0.0
    assert st.assets["apple"].current_price == 10.0


def test_catalog_shape():
    cat = default_catalog()
    assert len(cat) == 28
    assert len(cat.in_category("crypto")) == 10
    assert len(cat.in_category("forex")) == 8
    assert cat.get("bitcoin").chart_url.endswith("BINANCE:BTCUSDT")
    assert "gold" in cat


def test_catalog_rejects_duplicate_ids():
    inst = default_catalog().get("gold")
    with pytest.raises(ValueError):
        Catalog([inst, inst])


def test_round_price_table():
    assert round_price("forex", 1.234567) == 1.2346
    assert round_price("equity", 1.234567) == 1.23


def test_rate_converter():
    conv = RateConverter("kes", 129.5)
    assert conv.code == "KES"
    assert conv(2) == 259.0
    assert conv(0) == 0.0
    with pytest.raises(ValueError):
        RateConverter("EUR", 0)


def test_parse_rates_skips_malformed_pairs():
    rates = parse_rates("eur:0.92, GBP : 0.79,bad,JPY:x,NGN:-1,KES:129.5")
    assert rates == {"EUR": 0.92, "GBP": 0.79, "KES": 129.5, "USD": 1.0}
    assert parse_rates("") == {"USD": 1.0}


def test_converter_for_explicit_and_unknown_codes():
    assert converter_for("usd")(10.0) == 10.0
    assert converter_for("zzz", 3.0).code == "ZZZ"
    with pytest.raises(ValueError):
        converter_for("zzz")
    with pytest.raises(ValueError):
        converter_for("EUR", -1.0)


def test_control_commands_are_taken_once_in_order(tmp_path):
    store = ControlStore(tmp_path / "ctl")
    assert store.take() == []
    store.submit(ControlCommand(action="currency", code="EUR", ts_ms=1))
    store.submit(ControlCommand(action="refresh", ts_ms=2))
    assert len(store.pending()) == 2

    cmds = store.take()
    assert [c.action for c in cmds] == ["currency", "refresh"]
    assert cmds[0].code == "EUR"
    assert store.pending() == []
    assert store.take() == []


def test_unreadable_control_file_is_dropped(tmp_path):
    store = ControlStore(tmp_path)
    (tmp_path / "cmd.1.0.000001.json").write_text("{oops", encoding="utf-8")
    (tmp_path / "cmd.2.0.000001.json").write_text('{"action": "explode"}', encoding="utf-8")
    store.submit(ControlCommand(action="refresh", ts_ms=3))
    assert [c.action for c in store.take()] == ["refresh"]
    assert store.pending() == []
