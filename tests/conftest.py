import random

import pytest

from core.catalog import default_catalog
from core.schemas import Quote
from services.feed_base import FeedAdapter
from services.synthesizer import build_state


class FixedRng:
    """Stands in for random.Random: uniform() always returns `value`."""

    def __init__(self, value: float = 0.0):
        self.value = value

    def uniform(self, a, b):
        return self.value


class StaticFeed(FeedAdapter):
    """Deterministic adapter: fixed quotes, optionally raising instead."""

    source = "static"

    def __init__(self, category, instruments, quotes=None, error=None):
        self.category = category
        super().__init__(instruments)
        self.quotes = quotes or {}
        self.error = error
        self.calls = 0

    async def _fetch_live(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.quotes)


class SpyConverter:
    def __init__(self, rate: float = 1.0):
        self.rate = rate
        self.seen: list[float] = []

    def __call__(self, amount):
        self.seen.append(amount)
        return amount * self.rate


@pytest.fixture
def catalog():
    return default_catalog()


@pytest.fixture
def fixed_rng():
    return FixedRng


@pytest.fixture
def spy_converter():
    return SpyConverter


@pytest.fixture
def static_feeds(catalog):
    """Factory: one StaticFeed per category; `prices` maps instrument id -> price."""
    def make(prices=None, change=0.5, errors=None):
        prices = prices or {}
        errors = errors or {}
        feeds = []
        for cat in ("crypto", "forex", "commodity", "equity"):
            insts = catalog.in_category(cat)
            quotes = {
                i.feed_key: Quote(price=prices.get(i.id, i.baseline_price), change_pct=change)
                for i in insts
            }
            feeds.append(StaticFeed(cat, insts, quotes, error=errors.get(cat)))
        return feeds
    return make


@pytest.fixture
def make_asset(catalog):
    """Factory: AssetState for a catalog id at a given USD price."""
    def make(instrument_id="bitcoin", price=100.0, change=0.0):
        inst = catalog.get(instrument_id)
        return build_state(inst, Quote(price=price, change_pct=change), lambda x: x)
    return make


@pytest.fixture
def rng():
    return random.Random(1234)
