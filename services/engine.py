# services/engine.py
"""
MarketEngine: owns MarketState and drives it with two timers.

  refresh loop  (every REFRESH_SEC, first run immediately)  -> RefreshResult
  tick loop     (every TICK_SEC)                            -> TickRequest
  set_converter (display currency switch)                   -> CurrencyChange
  control loop  (UI commands from ControlStore)             -> either of the above

All of them only *publish* onto the bus topic "market". A single writer task
drains that queue and is the only code that mutates state, so a tick always
sees the latest refresh and no update is dropped or interleaved. Network
fetches happen in the refresh loop, outside the writer, and snapshot writes
for the UI are throttled and done on a worker thread.
"""
from __future__ import annotations
import asyncio, logging, random, time
from typing import Callable, Iterable

import httpx

from core.bus import EventBus
from core.catalog import Catalog
from core.config import CFG
from core.history import HistoryBuffer
from core.schemas import AssetState, ControlCommand, CurrencyChange, Quote, RefreshResult, TickRequest
from core.state import ControlStore, MarketState, SnapshotStore, now_ms
from services.currency import converter_for
from services.feed_base import FeedAdapter
from services.simulation import simulate_tick
from services.synthesizer import baseline_states, reconvert, synthesize

log = logging.getLogger(__name__)

TOPIC = "market"

class MarketEngine:
    def __init__(
        self,
        catalog: Catalog,
        feeds: Iterable[FeedAdapter],
        convert: Callable[[float], float],
        currency: str = "USD",
        *,
        refresh_sec: float = CFG.REFRESH_SEC,
        tick_sec: float = CFG.TICK_SEC,
        tick_jitter: float = CFG.TICK_JITTER,
        ma_window: int = CFG.MA_WINDOW,
        history_len: int = CFG.HISTORY_LEN,
        rng: random.Random | None = None,
        store: SnapshotStore | None = None,
        snapshot_min_sec: float = CFG.SNAPSHOT_MIN_SEC,
        control: ControlStore | None = None,
        control_poll_sec: float = CFG.CONTROL_POLL_SEC,
        bus: EventBus | None = None,
        client: httpx.AsyncClient | None = None,   # closed on stop()
    ):
        self.catalog = catalog
        self.feeds = list(feeds)
        self.convert = convert
        self.refresh_sec = refresh_sec
        self.tick_sec = tick_sec
        self.tick_jitter = tick_jitter
        self.ma_window = ma_window
        self.rng = rng or random.Random()
        self.store = store
        self.snapshot_min_sec = snapshot_min_sec
        self.control = control
        self.control_poll_sec = control_poll_sec
        self.bus = bus or EventBus()
        self.client = client

        self.state = MarketState(history=HistoryBuffer(history_len), currency=currency.upper())

        self._queue: asyncio.Queue | None = None
        self._tasks: list[asyncio.Task] = []
        self._stopped = False
        self._dirty = False            # state changed since the last snapshot write
        self._last_write = float("-inf")   # monotonic
        self.refresh_count = 0
        self.tick_count = 0

    # ------------------------------------------------------------------ lifecycle
    @property
    def running(self) -> bool:
        return bool(self._tasks) and not self._stopped

    async def start(self) -> None:
        if self.running:
            return
        if self._stopped:
            raise RuntimeError("engine was stopped; build a new one")
        self._queue = asyncio.Queue()
        self.bus.subscribe(TOPIC, self._queue)
        self._tasks = [
            asyncio.create_task(self._writer(), name="market-writer"),
            asyncio.create_task(self._refresh_loop(), name="market-refresh"),
            asyncio.create_task(self._tick_loop(), name="market-tick"),
        ]
        if self.control is not None:
            self._tasks.append(asyncio.create_task(self._control_loop(), name="market-control"))
        log.info("market engine started (refresh=%ss tick=%ss, %d instruments)",
                 self.refresh_sec, self.tick_sec, len(self.catalog))

    async def stop(self) -> None:
        """Cancel all timers and the writer; nothing mutates state afterwards."""
        if self._stopped:
            return
        self._stopped = True
        for t in self._tasks:
            t.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        if self._queue is not None:
            self.bus.unsubscribe(TOPIC, self._queue)
            self._queue = None
        if self.store is not None and self._dirty:
            await asyncio.to_thread(self.store.write_payload, self.state.to_dict())
            self._dirty = False
        if self.client is not None:
            await self.client.aclose()
        log.info("market engine stopped (refreshes=%d ticks=%d)", self.refresh_count, self.tick_count)

    # ------------------------------------------------------------------ producers
    async def fetch_all(self) -> RefreshResult:
        """Run every adapter concurrently; one failing adapter never blocks the rest."""
        results = await asyncio.gather(*(f.fetch() for f in self.feeds), return_exceptions=True)
        quotes: dict[str, dict[str, Quote]] = {}
        for feed, res in zip(self.feeds, results):
            if isinstance(res, BaseException):
                if not isinstance(res, Exception):
                    raise res
                log.error("[%s] adapter raised despite fallback contract: %r", feed.category, res)
                res = feed.fallback()
            quotes.setdefault(feed.category, {}).update(res)
        return RefreshResult(fetched_ms=now_ms(), quotes=quotes)

    async def refresh_once(self) -> None:
        try:
            msg = await self.fetch_all()
        except Exception:
            log.exception("refresh fetch failed")
            msg = RefreshResult(fetched_ms=now_ms(), quotes={}, ok=False)
        if self._stopped:
            log.debug("refresh finished after stop; dropped")
            return
        await self._submit(msg)

    async def tick_once(self) -> None:
        await self._submit(TickRequest(ts_ms=now_ms()))

    async def set_converter(self, convert: Callable[[float], float], code: str) -> None:
        await self._submit(CurrencyChange(code=code.upper(), convert=convert))

    async def handle_control(self, cmd: ControlCommand) -> None:
        """Turn a UI command into a refresh or a currency switch."""
        if cmd.action == "refresh":
            log.info("refresh requested")
            await self.refresh_once()
        elif cmd.action == "currency":
            try:
                convert = converter_for(cmd.code or "", cmd.rate)
            except ValueError as e:
                log.warning("ignoring currency request %r: %s", cmd.code, e)
                return
            await self.set_converter(convert, convert.code)

    async def _submit(self, msg) -> None:
        if self._stopped:
            return
        if self.running:
            await self.bus.publish(TOPIC, msg)
        else:
            self.apply(msg)
            if self.store is not None:
                self.store.write(self.state)
                self._dirty = False

    async def _refresh_loop(self):
        while True:
            await self.refresh_once()
            await asyncio.sleep(self.refresh_sec)

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.tick_sec)
            await self.tick_once()

    async def _control_loop(self):
        while True:
            try:
                cmds = await asyncio.to_thread(self.control.take)
            except OSError as e:
                log.warning("control dir unreadable: %s", e)
                cmds = []
            for cmd in cmds:
                await self.handle_control(cmd)
            await asyncio.sleep(self.control_poll_sec)

    async def _writer(self):
        q = self._queue
        while True:
            msg = await q.get()
            try:
                self.apply(msg)
                await self._persist(force=not isinstance(msg, TickRequest))
            except Exception:
                log.exception("failed to apply %s", type(msg).__name__)
            finally:
                q.task_done()

    async def _persist(self, force: bool = False) -> None:
        """Write the UI snapshot off the loop thread; ticks at most once per snapshot_min_sec."""
        if self.store is None or not self._dirty:
            return
        t = time.monotonic()
        if not force and t - self._last_write < self.snapshot_min_sec:
            return
        payload = self.state.to_dict()   # serialised here; the writer owns state
        self._last_write = t
        self._dirty = False
        await asyncio.to_thread(self.store.write_payload, payload)

    async def drain(self) -> None:
        """Wait until every queued update has been applied."""
        if self._queue is not None:
            await self._queue.join()

    # ------------------------------------------------------------------ the writer
    def apply(self, msg) -> None:
        if self._stopped:
            return
        if isinstance(msg, RefreshResult):
            self._apply_refresh(msg)
        elif isinstance(msg, TickRequest):
            self._apply_tick()
        elif isinstance(msg, CurrencyChange):
            self._apply_currency(msg)
        else:
            raise TypeError(f"unknown market message {type(msg).__name__}")
        self.state.ts_ms = now_ms()
        self._dirty = True

    def _seed_history(self) -> None:
        for iid, a in self.state.assets.items():
            self.state.history.seed(iid, a.price_usd)

    def _apply_refresh(self, msg: RefreshResult) -> None:
        self.refresh_count += 1
        try:
            if not msg.ok:
                raise RuntimeError("all feeds failed")
            grouped = synthesize(msg.quotes, self.catalog, self.convert)
        except Exception:
            log.exception("refresh pass failed; reusing last state with fresh conversion")
            self._conversion_only()
            return
        self.state.replace_assets(grouped)
        self._seed_history()
        self.state.last_update_ms = msg.fetched_ms
        log.info("refresh #%d: %d assets across %d categories",
                 self.refresh_count, len(self.state.assets), sum(1 for v in grouped.values() if v))

    def _conversion_only(self) -> None:
        if self.state.assets:
            self.state.assets = reconvert(self.state.assets, self.catalog, self.convert)
        else:
            self.state.replace_assets(baseline_states(self.catalog, self.convert))
            self._seed_history()

    def _apply_tick(self) -> None:
        self.tick_count += 1
        for asset in self.state.assets.values():
            simulate_tick(asset, self.state.history, self.rng, self.tick_jitter, self.ma_window)
        log.debug("tick #%d on %d assets", self.tick_count, len(self.state.assets))

    def _apply_currency(self, msg: CurrencyChange) -> None:
        self.convert = msg.convert
        self.state.currency = msg.code
        if self.state.assets:
            self.state.assets = reconvert(self.state.assets, self.catalog, self.convert)
        log.info("display currency -> %s", msg.code)

    # ------------------------------------------------------------------ readers
    def assets_by_category(self) -> dict[str, list[AssetState]]:
        return self.state.by_category()

    def asset(self, instrument_id: str) -> AssetState | None:
        a = self.state.assets.get(instrument_id)
        return a.model_copy() if a is not None else None

    def history(self, instrument_id: str) -> tuple[float, ...]:
        return self.state.history.snapshot(instrument_id)

    @property
    def last_update_ms(self) -> int:
        return self.state.last_update_ms

    def is_stale(self, max_age_ms: int | None = None) -> bool:
        if not self.state.last_update_ms:
            return True
        max_age_ms = max_age_ms if max_age_ms is not None else int(self.refresh_sec * 2 * 1000)
        return now_ms() - self.state.last_update_ms > max_age_ms
