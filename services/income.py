# services/income.py
from __future__ import annotations
import math
from functools import lru_cache

from core.catalog import INCOME_DECIMALS
from core.schemas import AssetState

class InvalidInvestment(ValueError):
    pass

@lru_cache(maxsize=512)
def _projection(hourly_income: float, duration_hours: int, min_investment: float,
                amount: float) -> tuple[float, float]:
    scale = amount / min_investment
    hourly = hourly_income * scale
    return hourly, hourly * duration_hours

def projected_income(asset: AssetState, amount: float) -> float:
    """
    Total payout over the asset's duration for `amount` invested:
    hourly_income * duration_hours * (amount / min_investment).
    Linear in amount; the minimum-investment check belongs to the caller.
    """
    return _projection(asset.hourly_income, asset.duration_hours, asset.min_investment, float(amount))[1]

def projected_hourly_income(asset: AssetState, amount: float) -> float:
    return _projection(asset.hourly_income, asset.duration_hours, asset.min_investment, float(amount))[0]

def validate_investment(asset: AssetState, raw_amount) -> float:
    """Caller-side check before a purchase request. Returns the amount as float."""
    try:
        amount = float(raw_amount)
    except (TypeError, ValueError):
        raise InvalidInvestment(f"amount {raw_amount!r} is not a number") from None
    if not math.isfinite(amount):
        raise InvalidInvestment("amount must be finite")
    if amount < asset.min_investment:
        raise InvalidInvestment(
            f"minimum investment for {asset.name} is {asset.min_investment:,.2f}"
        )
    return amount

def income_summary(asset: AssetState, amount: float) -> dict:
    return {
        "hourly": round(projected_hourly_income(asset, amount), INCOME_DECIMALS),
        "total": round(projected_income(asset, amount), INCOME_DECIMALS),
        "duration_hours": asset.duration_hours,
    }

def units_for(asset: AssetState, amount: float, min_investment_usd: float) -> float:
    """
    Instrument units bought with `amount` in the display currency. The
    display rate is recovered from the catalog's USD minimum, since prices
    stay in USD while economics fields are converted.
    """
    rate = asset.min_investment / min_investment_usd    # display units per USD
    return (float(amount) / rate) / asset.price_usd
