from pydantic import BaseModel, ConfigDict
from typing import Callable, Literal

Category = Literal["crypto", "forex", "commodity", "equity"]
Trend = Literal["up", "down"]

CATEGORIES: tuple[str, ...] = ("crypto", "forex", "commodity", "equity")

class Instrument(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    symbol: str
    category: Category
    feed_key: str               # coingecko id, fx pair, or sim key
    baseline_price: float       # USD
    baseline_change_pct: float
    min_investment: float       # USD
    hourly_income: float        # USD
    duration_hours: int
    chart_ref: str              # TradingView symbol, e.g. "BINANCE:BTCUSDT"

    @property
    def chart_url(self) -> str:
        return f"https://www.tradingview.com/chart/?symbol={self.chart_ref}"

class Quote(BaseModel):
    price: float
    change_pct: float

class AssetState(BaseModel):
    instrument_id: str
    name: str
    symbol: str
    category: Category
    current_price: float        # USD, rounded per category
    price_usd: float            # USD, unrounded; what the clock perturbs
    change_pct: float
    moving_average: float
    trend: Trend
    min_investment: float       # display currency
    hourly_income: float        # display currency
    duration_hours: int
    chart_url: str

# ---- messages funnelled through the single writer ----

class RefreshResult(BaseModel):
    fetched_ms: int
    quotes: dict[str, dict[str, Quote]]   # {category: {feed_key: Quote}}
    ok: bool = True                       # False -> conversion-only pass

class TickRequest(BaseModel):
    ts_ms: int

class CurrencyChange(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    code: str
    convert: Callable[[float], float]

# ---- UI -> engine commands ----

class ControlCommand(BaseModel):
    action: Literal["refresh", "currency"]
    code: str | None = None      # currency action only
    rate: float | None = None    # optional; config rate when omitted
    ts_ms: int = 0
