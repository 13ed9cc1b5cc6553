# services/feed_frankfurter.py
from __future__ import annotations
from typing import Iterable
import httpx

from core.config import CFG
from core.schemas import Instrument, Quote
from services.feed_base import FeedAdapter, valid_number

class FrankfurterFeed(FeedAdapter):
    """
    FX pairs from Frankfurter /latest?from=USD (units of each currency per 1 USD).
    A pair BASEQUOTE is priced as rates[QUOTE] / rates[BASE]. The endpoint
    carries no change figure, so change_pct stays at the catalog baseline.
    """

    category = "forex"
    source = "frankfurter"

    def __init__(self, instruments: Iterable[Instrument], client: httpx.AsyncClient,
                 base_url: str = CFG.FRANKFURTER_URL):
        super().__init__(instruments)
        self.client = client
        self.base_url = base_url.rstrip("/")

    @staticmethod
    def pair_price(pair: str, rates: dict[str, float]) -> float | None:
        base, quote = pair[:3].upper(), pair[3:6].upper()
        r_base, r_quote = rates.get(base), rates.get(quote)
        if not valid_number(r_base) or not valid_number(r_quote) or float(r_base) <= 0:
            return None
        return float(r_quote) / float(r_base)

    async def _fetch_live(self) -> dict[str, Quote]:
        resp = await self.client.get(f"{self.base_url}/latest", params={"from": "USD"})
        resp.raise_for_status()
        data = resp.json()
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise ValueError("response has no 'rates' object")
        rates = dict(rates)
        rates["USD"] = 1.0

        out: dict[str, Quote] = {}
        for inst in self.instruments:
            px = self.pair_price(inst.feed_key, rates)
            if px is None:
                continue
            out[inst.feed_key] = Quote(price=px, change_pct=inst.baseline_change_pct)
        return out
