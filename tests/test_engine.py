import asyncio
import random
import threading

import pytest

from core.schemas import ControlCommand, CurrencyChange, RefreshResult
from core.state import ControlStore, SnapshotStore, load_state_for_ui
from services.engine import MarketEngine, TOPIC


def _engine(catalog, feeds, convert=lambda x: x, **kw):
    kw.setdefault("rng", random.Random(11))
    return MarketEngine(catalog, feeds, convert, **kw)


def _all_states(engine):
    return {a.instrument_id: a for rows in engine.assets_by_category().values() for a in rows}


def test_first_refresh_seeds_every_buffer(catalog, static_feeds):
    eng = _engine(catalog, static_feeds())
    asyncio.run(eng.refresh_once())
    assert len(eng.state.assets) == len(catalog)
    for inst in catalog:
        hist = eng.history(inst.id)
        assert len(hist) == 1
        assert hist[0] == inst.baseline_price
    assert eng.last_update_ms > 0
    assert not eng.is_stale()


def test_refresh_does_not_reset_epoch(catalog, static_feeds, fixed_rng):
    eng = _engine(catalog, static_feeds(), rng=fixed_rng(0.0005))

    async def go():
        await eng.refresh_once()
        await eng.tick_once()
        await eng.refresh_once()
    asyncio.run(go())

    hist = eng.history("bitcoin")
    assert len(hist) == 2
    assert hist[0] == catalog.get("bitcoin").baseline_price


def test_tick_reads_the_latest_refresh(catalog, static_feeds, fixed_rng):
    eng = _engine(catalog, static_feeds(prices={"gold": 100.0}), rng=fixed_rng(0.0005))
    asyncio.run(eng.refresh_once())
    eng.feeds = static_feeds(prices={"gold": 200.0})

    async def go():
        await eng.refresh_once()
        await eng.tick_once()
    asyncio.run(go())

    gold = eng.asset("gold")
    assert gold.price_usd == pytest.approx(200.1)
    assert gold.change_pct == 100.1                  # epoch is still the first seeded price
    assert eng.history("gold") == (100.0, pytest.approx(200.1))


def test_tick_properties_hold_for_all_instruments(catalog, static_feeds):
    eng = _engine(catalog, static_feeds())

    async def go():
        await eng.refresh_once()
        for _ in range(60):
            await eng.tick_once()
    asyncio.run(go())

    for inst in catalog:
        hist = eng.history(inst.id)
        a = eng.asset(inst.id)
        assert 0 < len(hist) <= 50
        assert a.current_price == round(hist[-1], 4 if inst.category == "forex" else 2)
        tail = hist[-5:]
        dp = 4 if inst.category == "forex" else 2
        assert a.moving_average == round(sum(tail) / len(tail), dp)
        assert a.change_pct == round((hist[-1] - hist[0]) / hist[0] * 100, 2)


def test_crypto_failure_is_isolated(catalog, static_feeds):
    feeds = static_feeds(prices={"eur-usd": 1.2, "gold": 2100.0}, errors={"crypto": RuntimeError("503")})
    eng = _engine(catalog, feeds)
    asyncio.run(eng.refresh_once())
    for inst in catalog.in_category("crypto"):
        assert eng.asset(inst.id).price_usd == inst.baseline_price
    assert eng.asset("eur-usd").price_usd == 1.2
    assert eng.asset("gold").price_usd == 2100.0


def test_adapter_raising_past_its_contract_uses_its_fallback(catalog, static_feeds):
    feeds = static_feeds(prices={"apple": 999.0})

    async def boom():
        raise RuntimeError("adapter bug")
    feeds[3].fetch = boom            # equity
    eng = _engine(catalog, feeds)
    asyncio.run(eng.refresh_once())
    assert eng.asset("apple").price_usd == catalog.get("apple").baseline_price
    assert eng.refresh_count == 1


def test_identical_feeds_give_identical_state(catalog, static_feeds):
    eng = _engine(catalog, static_feeds(prices={"bitcoin": 60000.0}))
    asyncio.run(eng.refresh_once())
    first = {k: v.model_dump() for k, v in _all_states(eng).items()}
    asyncio.run(eng.refresh_once())
    second = {k: v.model_dump() for k, v in _all_states(eng).items()}
    assert first == second


def test_total_failure_before_any_pass_serves_baselines(catalog, static_feeds):
    eng = _engine(catalog, static_feeds())
    eng.apply(RefreshResult(fetched_ms=1, quotes={}, ok=False))
    assert len(eng.state.assets) == len(catalog)
    assert eng.asset("bitcoin").price_usd == catalog.get("bitcoin").baseline_price
    assert eng.last_update_ms == 0
    assert eng.is_stale()
    assert len(eng.history("bitcoin")) == 1


def test_total_failure_reuses_last_state(catalog, static_feeds, spy_converter):
    conv = spy_converter(1.0)
    eng = _engine(catalog, static_feeds(prices={"bitcoin": 61000.0}), convert=conv)
    asyncio.run(eng.refresh_once())
    stamp = eng.last_update_ms
    eng.apply(RefreshResult(fetched_ms=stamp + 1, quotes={}, ok=False))
    assert eng.asset("bitcoin").price_usd == 61000.0
    assert eng.last_update_ms == stamp


def test_currency_switch_touches_only_economics(catalog, static_feeds, spy_converter):
    eng = _engine(catalog, static_feeds())

    async def go():
        await eng.refresh_once()
        await eng.tick_once()
        before = _all_states(eng)
        hist_before = eng.history("eur-usd")
        conv = spy_converter(2.0)
        await eng.set_converter(conv, "eur")
        return before, hist_before, conv
    before, hist_before, conv = asyncio.run(go())

    economics = {i.min_investment for i in catalog} | {i.hourly_income for i in catalog}
    assert set(conv.seen) <= economics
    after = _all_states(eng)
    for iid, a in after.items():
        b = before[iid]
        assert a.current_price == b.current_price
        assert a.price_usd == b.price_usd
        assert a.trend == b.trend
        assert a.min_investment == 2 * b.min_investment
    assert eng.history("eur-usd") == hist_before
    assert eng.state.currency == "EUR"


def test_snapshot_written_for_ui(catalog, static_feeds, tmp_path):
    path = tmp_path / "state.json"
    eng = _engine(catalog, static_feeds(), store=SnapshotStore(path))
    asyncio.run(eng.refresh_once())
    d = load_state_for_ui(path)
    assert len(d["assets"]["crypto"]) == len(catalog.in_category("crypto"))
    assert d["history"]["bitcoin"] == [catalog.get("bitcoin").baseline_price]
    assert d["last_update_ms"] == eng.last_update_ms


def test_running_engine_and_teardown(catalog, static_feeds):
    eng = _engine(catalog, static_feeds(), refresh_sec=0.05, tick_sec=0.01)

    async def go():
        await eng.start()
        await asyncio.sleep(0.25)
        await eng.drain()
        await eng.stop()
        frozen = ({k: v.model_dump() for k, v in _all_states(eng).items()},
                  eng.state.history.snapshot_all(), eng.tick_count, eng.refresh_count)
        # late producers after teardown are ignored
        await eng.refresh_once()
        await eng.tick_once()
        await asyncio.sleep(0.05)
        return frozen
    frozen = asyncio.run(go())

    assert eng.refresh_count >= 1
    assert eng.tick_count >= 1
    assert not eng.running
    assert eng.bus.subscribers(TOPIC) == 0
    assert frozen == ({k: v.model_dump() for k, v in _all_states(eng).items()},
                      eng.state.history.snapshot_all(), eng.tick_count, eng.refresh_count)
    for inst in catalog:
        assert 0 < len(eng.history(inst.id)) <= 50


def test_stopped_engine_cannot_restart(catalog, static_feeds):
    eng = _engine(catalog, static_feeds(), refresh_sec=10, tick_sec=10)

    async def go():
        await eng.start()
        await eng.stop()
        with pytest.raises(RuntimeError):
            await eng.start()
    asyncio.run(go())


def test_unknown_message_rejected(catalog, static_feeds):
    eng = _engine(catalog, static_feeds())
    with pytest.raises(TypeError):
        eng.apply(object())


async def _until(cond, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not cond():
        assert asyncio.get_running_loop().time() < deadline, "condition not reached"
        await asyncio.sleep(0.01)


def test_control_commands_become_market_messages(catalog, static_feeds):
    eng = _engine(catalog, static_feeds(), refresh_sec=60, tick_sec=60)

    async def go():
        await eng.start()
        await _until(lambda: eng.refresh_count == 1)
        seen = asyncio.Queue()
        eng.bus.subscribe(TOPIC, seen)
        await eng.handle_control(ControlCommand(action="currency", code="eur", rate=0.5))
        currency_msg = await asyncio.wait_for(seen.get(), 1)
        await eng.handle_control(ControlCommand(action="refresh"))
        refresh_msg = await asyncio.wait_for(seen.get(), 1)
        await eng.drain()
        eng.bus.unsubscribe(TOPIC, seen)
        await eng.stop()
        return currency_msg, refresh_msg
    currency_msg, refresh_msg = asyncio.run(go())

    assert isinstance(currency_msg, CurrencyChange) and currency_msg.code == "EUR"
    assert isinstance(refresh_msg, RefreshResult) and refresh_msg.ok
    assert eng.state.currency == "EUR"
    assert eng.refresh_count == 2
    btc = eng.asset("bitcoin")
    assert btc.min_investment == pytest.approx(catalog.get("bitcoin").min_investment * 0.5)


def test_unknown_currency_request_is_ignored(catalog, static_feeds):
    eng = _engine(catalog, static_feeds())

    async def go():
        await eng.refresh_once()
        await eng.handle_control(ControlCommand(action="currency", code="ZZZ"))
        await eng.handle_control(ControlCommand(action="currency"))
    asyncio.run(go())

    assert eng.state.currency == "USD"
    assert eng.asset("bitcoin").min_investment == catalog.get("bitcoin").min_investment


def test_control_dir_is_polled_while_running(catalog, static_feeds, tmp_path):
    control = ControlStore(tmp_path / "ctl")
    control.submit(ControlCommand(action="currency", code="GBP", rate=0.8))
    eng = _engine(catalog, static_feeds(), refresh_sec=60, tick_sec=60,
                  control=control, control_poll_sec=0.01)

    async def go():
        await eng.start()
        await _until(lambda: eng.state.currency == "GBP")
        control.submit(ControlCommand(action="refresh"))
        await _until(lambda: eng.refresh_count >= 2)
        await eng.drain()
        await eng.stop()
    asyncio.run(go())

    assert control.pending() == []
    assert eng.asset("bitcoin").min_investment == pytest.approx(catalog.get("bitcoin").min_investment * 0.8)


class CountingStore(SnapshotStore):
    def __init__(self, path):
        super().__init__(path)
        self.writes = 0
        self.threads = set()

    def write_payload(self, payload):
        self.writes += 1
        self.threads.add(threading.get_ident())
        return super().write_payload(payload)


def test_snapshot_writes_are_throttled_and_off_the_loop(catalog, static_feeds, tmp_path):
    store = CountingStore(tmp_path / "state.json")
    eng = _engine(catalog, static_feeds(), refresh_sec=60, tick_sec=0.005,
                  store=store, snapshot_min_sec=30)

    async def go():
        await eng.start()
        await _until(lambda: eng.tick_count >= 20)
        await eng.drain()
        await eng.stop()
        return threading.get_ident()
    loop_thread = asyncio.run(go())

    assert store.writes <= 3
    assert loop_thread not in store.threads
    # stop() flushes the final state
    d = load_state_for_ui(store.path)
    assert d["ts_ms"] == eng.state.ts_ms
    assert len(d["history"]["bitcoin"]) == len(eng.history("bitcoin"))
