# services/currency.py
from __future__ import annotations
import math

from core.config import CFG

class RateConverter:
    """convert(usd_amount) -> amount in `code` at a fixed rate (code per 1 USD)."""

    def __init__(self, code: str = "USD", rate: float = 1.0):
        if not math.isfinite(rate) or rate <= 0:
            raise ValueError(f"rate must be a positive finite number, got {rate!r}")
        self.code = code.upper()
        self.rate = float(rate)

    def __call__(self, amount: float) -> float:
        return float(amount) * self.rate

    def __repr__(self) -> str:
        return f"RateConverter({self.code!r}, {self.rate})"

def parse_rates(spec: str) -> dict[str, float]:
    """'USD:1,EUR:0.92' -> {'USD': 1.0, 'EUR': 0.92}; malformed pairs are skipped."""
    out: dict[str, float] = {}
    for part in (spec or "").split(","):
        if ":" not in part:
            continue
        code, raw = part.split(":", 1)
        try:
            rate = float(raw)
        except ValueError:
            continue
        if code.strip() and math.isfinite(rate) and rate > 0:
            out[code.strip().upper()] = rate
    out.setdefault("USD", 1.0)
    return out

def configured_rates() -> dict[str, float]:
    rates = parse_rates(CFG.CURRENCY_RATES)
    rates.setdefault(CFG.DISPLAY_CURRENCY, CFG.DISPLAY_RATE)
    return rates

def converter_for(code: str, rate: float | None = None) -> RateConverter:
    """Converter for `code`, taking the rate from config when none is given."""
    code = code.upper()
    if rate is None:
        rates = configured_rates()
        if code not in rates:
            raise ValueError(f"no rate configured for {code}")
        rate = rates[code]
    return RateConverter(code, rate)

def from_config() -> RateConverter:
    return RateConverter(CFG.DISPLAY_CURRENCY, CFG.DISPLAY_RATE)
