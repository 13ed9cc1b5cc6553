# services/synthesizer.py
"""
Merge feed quotes with the catalog into AssetState rows.

Prices and % changes are USD and are never passed through `convert`;
only the economics fields (minimum investment, hourly income) are.
"""
from __future__ import annotations
import logging
from typing import Callable, Mapping

from core.catalog import Catalog, CHANGE_DECIMALS, INCOME_DECIMALS, round_price
from core.schemas import AssetState, Instrument, Quote, CATEGORIES
from services.feed_base import baseline_quote

log = logging.getLogger(__name__)

Converter = Callable[[float], float]

MA_SMOOTHING = 0.1   # proxy average until real history accumulates

def _economics(inst: Instrument, convert: Converter) -> dict:
    return {
        "min_investment": float(convert(inst.min_investment)),
        "hourly_income": round(float(convert(inst.hourly_income)), INCOME_DECIMALS),
    }

def build_state(inst: Instrument, quote: Quote, convert: Converter) -> AssetState:
    px = float(quote.price)
    chg = float(quote.change_pct)
    return AssetState(
        instrument_id=inst.id,
        name=inst.name,
        symbol=inst.symbol,
        category=inst.category,
        current_price=round_price(inst.category, px),
        price_usd=px,
        change_pct=round(chg, CHANGE_DECIMALS),
        moving_average=round_price(inst.category, px * (1 - (chg / 100) * MA_SMOOTHING)),
        trend="up" if chg >= 0 else "down",
        duration_hours=inst.duration_hours,
        chart_url=inst.chart_url,
        **_economics(inst, convert),
    )

def synthesize(quotes: Mapping[str, Mapping[str, Quote]], catalog: Catalog,
               convert: Converter) -> dict[str, list[AssetState]]:
    """
    quotes: {category: {feed_key: Quote}} as returned by the adapters.
    Returns {category: [AssetState, ...]} in catalog order, all categories present.
    """
    out: dict[str, list[AssetState]] = {}
    for cat in CATEGORIES:
        feed = quotes.get(cat) or {}
        rows = []
        for inst in catalog.in_category(cat):
            q = feed.get(inst.feed_key)
            if q is None:
                log.debug("no quote for %s (%s), baseline used", inst.id, inst.feed_key)
                q = baseline_quote(inst)
            rows.append(build_state(inst, q, convert))
        out[cat] = rows
    return out

def reconvert(states: Mapping[str, AssetState], catalog: Catalog,
              convert: Converter) -> dict[str, AssetState]:
    """
    Re-derive only the monetary fields from catalog USD baselines.
    Price, change, average, trend are copied untouched.
    """
    out = {}
    for iid, a in states.items():
        inst = catalog.get(iid)
        out[iid] = a.model_copy(update=_economics(inst, convert))
    return out

def baseline_states(catalog: Catalog, convert: Converter) -> dict[str, list[AssetState]]:
    """States straight from catalog baselines (no feeds at all)."""
    return synthesize({}, catalog, convert)
