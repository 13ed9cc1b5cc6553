# services/simulation.py
"""
Simulation clock step: small multiplicative noise on each asset's USD price,
recorded into the history buffer, with change / average / trend re-derived
from the buffer.
"""
from __future__ import annotations
import random

from core.catalog import CHANGE_DECIMALS, round_price
from core.config import CFG
from core.history import HistoryBuffer
from core.schemas import AssetState

def perturb(px: float, rng: random.Random, jitter: float = CFG.TICK_JITTER) -> float:
    return max(1e-9, px * (1.0 + rng.uniform(-jitter, jitter)))

def next_trend(new_px: float, prev_px: float, prev_trend: str) -> str:
    # equal prices keep whatever the previous tick decided
    if new_px > prev_px:
        return "up"
    if new_px < prev_px:
        return "down"
    return prev_trend

def change_from_epoch(latest: float, epoch: float | None) -> float:
    if not epoch:
        return 0.0
    return round((latest - epoch) / epoch * 100.0, CHANGE_DECIMALS)

def apply_price(asset: AssetState, new_px: float, history: HistoryBuffer,
                ma_window: int = CFG.MA_WINDOW) -> AssetState:
    """Record new_px for asset and re-derive its analytics. Mutates asset in place."""
    iid = asset.instrument_id
    prev_px = asset.price_usd

    history.append(iid, new_px)

    asset.change_pct = change_from_epoch(new_px, history.epoch(iid))
    asset.moving_average = round_price(asset.category, history.moving_average(iid, ma_window))
    asset.trend = next_trend(new_px, prev_px, asset.trend)
    asset.price_usd = new_px
    asset.current_price = round_price(asset.category, new_px)
    return asset

def simulate_tick(asset: AssetState, history: HistoryBuffer, rng: random.Random,
                  jitter: float = CFG.TICK_JITTER, ma_window: int = CFG.MA_WINDOW) -> AssetState:
    return apply_price(asset, perturb(asset.price_usd, rng, jitter), history, ma_window)
