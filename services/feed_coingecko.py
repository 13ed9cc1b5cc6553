# services/feed_coingecko.py
from __future__ import annotations
from typing import Iterable
import httpx

from core.config import CFG
from core.schemas import Instrument, Quote
from services.feed_base import FeedAdapter, valid_number

class CoinGeckoFeed(FeedAdapter):
    """Crypto spot prices and 24h change from CoinGecko /coins/markets."""

    category = "crypto"
    source = "coingecko"

    def __init__(self, instruments: Iterable[Instrument], client: httpx.AsyncClient,
                 base_url: str = CFG.COINGECKO_URL):
        super().__init__(instruments)
        self.client = client
        self.base_url = base_url.rstrip("/")

    def params(self) -> dict:
        return {
            "vs_currency": "usd",
            "ids": ",".join(i.feed_key for i in self.instruments),
            "order": "market_cap_desc",
            "per_page": 100,
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h",
        }

    async def _fetch_live(self) -> dict[str, Quote]:
        resp = await self.client.get(f"{self.base_url}/coins/markets", params=self.params())
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, list):
            raise ValueError(f"unexpected payload type {type(data).__name__}")

        out: dict[str, Quote] = {}
        for coin in data:
            if not isinstance(coin, dict):
                continue
            key = coin.get("id")
            px = coin.get("current_price")
            chg = coin.get("price_change_percentage_24h")
            if not key or not valid_number(px):
                continue
            out[key] = Quote(price=float(px), change_pct=float(chg) if valid_number(chg) else 0.0)
        return out
