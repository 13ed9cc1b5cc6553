# core/catalog.py
from __future__ import annotations
from core.schemas import Instrument, CATEGORIES

# decimals for displayed prices / averages, per category
PRICE_DECIMALS = {
    "crypto": 2,
    "forex": 4,
    "commodity": 2,
    "equity": 2,
}
INCOME_DECIMALS = 4
CHANGE_DECIMALS = 2

def round_price(category: str, value: float) -> float:
    return round(float(value), PRICE_DECIMALS[category])

# (id, name, symbol, feed_key, baseline_price, baseline_change_pct,
#  min_investment, hourly_income, duration_hours, chart_ref)
_CRYPTO = [
    ("bitcoin",      "Bitcoin",      "BTC",  "bitcoin",      45000.0,  2.34, 600, 120.0, 20, "BINANCE:BTCUSDT"),
    ("ethereum",     "Ethereum",     "ETH",  "ethereum",      3000.0,  1.23, 500,  95.0, 12, "BINANCE:ETHUSDT"),
    ("tether",       "Tether",       "USDT", "tether",           1.0,  0.01, 450,  90.0,  6, "BINANCE:USDTUSD"),
    ("usd-coin",     "USD Coin",     "USDC", "usd-coin",         1.0,  0.02, 550, 110.0, 10, "BINANCE:USDCUSD"),
    ("binance-coin", "Binance Coin", "BNB",  "binancecoin",    312.67, -0.45, 500, 100.0,  4, "BINANCE:BNBUSDT"),
    ("ripple",       "Ripple",       "XRP",  "ripple",         0.6234,  3.21, 475,  95.0,  6, "BINANCE:XRPUSDT"),
    ("cardano",      "Cardano",      "ADA",  "cardano",        0.4523,  1.89, 525, 105.0, 10, "BINANCE:ADAUSDT"),
    ("solana",       "Solana",       "SOL",  "solana",          98.76,  4.56, 600, 135.0, 12, "BINANCE:SOLUSDT"),
    ("polkadot",     "Polkadot",     "DOT",  "polkadot",         6.78, -1.23, 450,  90.0,  4, "BINANCE:DOTUSDT"),
    ("dogecoin",     "Dogecoin",     "DOGE", "dogecoin",       0.0789,  5.67, 400,  92.5,  6, "BINANCE:DOGEUSDT"),
]

_FOREX = [
    ("eur-usd", "EUR/USD", "EURUSD", "EURUSD", 1.0856,  0.12, 600, 125.0, 10, "FX:EURUSD"),
    ("gbp-usd", "GBP/USD", "GBPUSD", "GBPUSD", 1.2678, -0.23, 600, 150.0, 12, "FX:GBPUSD"),
    ("usd-jpy", "USD/JPY", "USDJPY", "USDJPY", 148.34,  0.45, 600, 165.0, 20, "FX:USDJPY"),
    ("usd-chf", "USD/CHF", "USDCHF", "USDCHF", 0.8790, -0.15, 550, 130.0, 12, "FX:USDCHF"),
    ("aud-usd", "AUD/USD", "AUDUSD", "AUDUSD", 0.6523,  0.34, 500, 115.0, 10, "FX:AUDUSD"),
    ("usd-cad", "USD/CAD", "USDCAD", "USDCAD", 1.3546, -0.28, 600, 140.0, 12, "FX:USDCAD"),
    ("nzd-usd", "NZD/USD", "NZDUSD", "NZDUSD", 0.6123,  0.67, 500, 110.0, 10, "FX:NZDUSD"),
    ("eur-gbp", "EUR/GBP", "EURGBP", "EURGBP", 0.8567, -0.12, 600, 135.0, 12, "FX:EURGBP"),
]

_COMMODITY = [
    ("gold",        "Gold Futures",   "XAUUSD", "GOLD",       1987.45,  0.89, 600, 160.0, 20, "TVC:GOLD"),
    ("silver",      "Silver Futures", "XAGUSD", "SILVER",       23.45,  1.23, 500, 120.0, 12, "TVC:SILVER"),
    ("oil",         "Crude Oil",      "USOIL",  "OIL",          78.90, -1.45, 600, 155.0, 12, "TVC:USOIL"),
    ("natural-gas", "Natural Gas",    "NGAS",   "NATURALGAS",    2.89,  2.34, 500, 105.0, 10, "TVC:NATURALGAS"),
    ("copper",      "Copper Futures", "COPPER", "COPPER",        3.78, -0.56, 550, 125.0, 12, "TVC:COPPER"),
]

_EQUITY = [
    ("apple",     "Apple Inc",      "AAPL",  "AAPL",  189.45,  1.23, 600, 165.0, 20, "NASDAQ:AAPL"),
    ("tesla",     "Tesla Inc",      "TSLA",  "TSLA",  245.67, -2.34, 600, 150.0, 12, "NASDAQ:TSLA"),
    ("amazon",    "Amazon.com",     "AMZN",  "AMZN",  145.67,  0.89, 600, 140.0, 12, "NASDAQ:AMZN"),
    ("google",    "Google LLC",     "GOOGL", "GOOGL", 138.90,  1.45, 550, 135.0, 12, "NASDAQ:GOOGL"),
    ("microsoft", "Microsoft Corp", "MSFT",  "MSFT",  378.45,  0.67, 600, 160.0, 20, "NASDAQ:MSFT"),
]

def _build(category: str, rows: list[tuple]) -> list[Instrument]:
    out = []
    for (iid, name, sym, key, px, chg, min_inv, hourly, dur, ref) in rows:
        out.append(Instrument(
            id=iid, name=name, symbol=sym, category=category, feed_key=key,
            baseline_price=px, baseline_change_pct=chg,
            min_investment=float(min_inv), hourly_income=float(hourly),
            duration_hours=dur, chart_ref=ref,
        ))
    return out

class Catalog:
    """Static, read-only instrument reference data, grouped by category."""

    def __init__(self, instruments: list[Instrument]):
        ids = [i.id for i in instruments]
        if len(ids) != len(set(ids)):
            raise ValueError("instrument ids must be unique")
        self._by_id = {i.id: i for i in instruments}
        self._by_cat: dict[str, tuple[Instrument, ...]] = {
            c: tuple(i for i in instruments if i.category == c) for c in CATEGORIES
        }

    def __iter__(self):
        for c in CATEGORIES:
            yield from self._by_cat[c]

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, instrument_id: str) -> bool:
        return instrument_id in self._by_id

    def get(self, instrument_id: str) -> Instrument:
        return self._by_id[instrument_id]

    def in_category(self, category: str) -> tuple[Instrument, ...]:
        return self._by_cat.get(category, ())

def default_catalog() -> Catalog:
    return Catalog(
        _build("crypto", _CRYPTO)
        + _build("forex", _FOREX)
        + _build("commodity", _COMMODITY)
        + _build("equity", _EQUITY)
    )
