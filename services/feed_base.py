# services/feed_base.py
"""
Feed adapter contract.

Every adapter returns a complete {feed_key: Quote} mapping for its category.
Live failures (HTTP status, transport, bad JSON, missing fields) never escape
fetch(): the whole call falls back to catalog baselines, and individual keys
missing from an otherwise good response fall back one by one.
"""
from __future__ import annotations
import logging
import math
from abc import ABC, abstractmethod
from typing import Iterable

from core.schemas import Instrument, Quote

log = logging.getLogger(__name__)

def baseline_quote(inst: Instrument) -> Quote:
    return Quote(price=inst.baseline_price, change_pct=inst.baseline_change_pct)

def valid_number(x) -> bool:
    if isinstance(x, bool):
        return False
    try:
        return math.isfinite(float(x))
    except (TypeError, ValueError):
        return False


class FeedAdapter(ABC):
    category: str = ""
    source: str = ""

    def __init__(self, instruments: Iterable[Instrument]):
        self.instruments = tuple(instruments)
        for inst in self.instruments:
            if inst.category != self.category:
                raise ValueError(f"{type(self).__name__} cannot serve {inst.id!r} ({inst.category})")

    @abstractmethod
    async def _fetch_live(self) -> dict[str, Quote]:
        """Return whatever the source produced; may be partial, may raise."""

    async def fetch(self) -> dict[str, Quote]:
        try:
            live = await self._fetch_live()
        except Exception as e:
            log.warning("[%s] %s feed failed, using baselines: %r", self.category, self.source, e)
            return self.fallback()
        return self.complete(live)

    def fallback(self) -> dict[str, Quote]:
        return {inst.feed_key: baseline_quote(inst) for inst in self.instruments}

    def complete(self, partial: dict[str, Quote]) -> dict[str, Quote]:
        out = {}
        missing = []
        for inst in self.instruments:
            q = partial.get(inst.feed_key)
            if q is None or not (valid_number(q.price) and q.price > 0 and valid_number(q.change_pct)):
                missing.append(inst.feed_key)
                q = baseline_quote(inst)
            out[inst.feed_key] = q
        if missing:
            log.info("[%s] %d key(s) missing from %s, baseline used: %s",
                     self.category, len(missing), self.source, ",".join(missing))
        return out
