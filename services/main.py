# services/main.py
import asyncio, logging
import random

import httpx

from core.catalog import Catalog, default_catalog
from core.config import CFG
from core.state import ControlStore, SnapshotStore
from services.currency import from_config
from services.engine import MarketEngine
from services.feed_coingecko import CoinGeckoFeed
from services.feed_frankfurter import FrankfurterFeed
from services.sim_feed import commodity_feed, equity_feed


logging.basicConfig(level=CFG.LOG_LEVEL, format="%(asctime)s %(levelname)s %(message)s")

def build_engine(catalog: Catalog | None = None, client: httpx.AsyncClient | None = None,
                 store: SnapshotStore | None = None, rng: random.Random | None = None,
                 control: ControlStore | None = None) -> MarketEngine:
    """Wire catalog, feeds, converter, snapshot store and UI control dir into one engine."""
    catalog = catalog or default_catalog()
    client = client or httpx.AsyncClient(timeout=CFG.HTTP_TIMEOUT)
    rng = rng or random.Random()
    convert = from_config()
    feeds = [
        CoinGeckoFeed(catalog.in_category("crypto"), client),
        FrankfurterFeed(catalog.in_category("forex"), client),
        commodity_feed(catalog.in_category("commodity"), rng),
        equity_feed(catalog.in_category("equity"), rng),
    ]
    return MarketEngine(
        catalog, feeds, convert, convert.code,
        rng=rng,
        store=store if store is not None else SnapshotStore(),
        control=control if control is not None else ControlStore(),
        client=client,
    )

async def main():
    engine = build_engine()
    logging.info("Booting market engine (currency=%s, snapshot=%s, control=%s)",
                 engine.state.currency, engine.store.path if engine.store else "-",
                 engine.control.root if engine.control else "-")
    await engine.start()
    try:
        await asyncio.Event().wait()
    finally:
        await engine.stop()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[main] interrupted")
