# services/sim_feed.py
"""
Stand-in feeds for commodities and equities.

No free source is reliable enough here, so each refresh jitters the catalog
baseline. Kept behind FeedAdapter so a real feed can replace it one-for-one.
"""
from __future__ import annotations
import random
from typing import Iterable

from core.schemas import Instrument, Quote
from services.feed_base import FeedAdapter

# category -> (price jitter as a fraction, change jitter in % points)
SIM_JITTER = {
    "commodity": (0.01, 0.25),
    "equity": (0.005, 0.15),
}

def step_quote(inst: Instrument, rng: random.Random, price_jitter: float, change_jitter: float) -> Quote:
    variation = rng.uniform(-price_jitter, price_jitter)
    return Quote(
        price=max(0.0001, inst.baseline_price * (1.0 + variation)),
        change_pct=inst.baseline_change_pct + rng.uniform(-change_jitter, change_jitter),
    )

class SimulatedFeed(FeedAdapter):
    source = "simulated"

    def __init__(self, category: str, instruments: Iterable[Instrument],
                 rng: random.Random | None = None):
        self.category = category
        super().__init__(instruments)
        self.price_jitter, self.change_jitter = SIM_JITTER[category]
        self.rng = rng or random.Random()

    async def _fetch_live(self) -> dict[str, Quote]:
        return {
            inst.feed_key: step_quote(inst, self.rng, self.price_jitter, self.change_jitter)
            for inst in self.instruments
        }

def commodity_feed(instruments: Iterable[Instrument], rng: random.Random | None = None) -> SimulatedFeed:
    return SimulatedFeed("commodity", instruments, rng)

def equity_feed(instruments: Iterable[Instrument], rng: random.Random | None = None) -> SimulatedFeed:
    return SimulatedFeed("equity", instruments, rng)
