from __future__ import annotations
from datetime import datetime, timezone
import time
import streamlit as st
import pandas as pd
import altair as alt

# === use the state utilities from core.state (do NOT redefine in this file) ===

from core.catalog import PRICE_DECIMALS, default_catalog
from core.schemas import AssetState, ControlCommand
from core.state import ControlStore, load_state_for_ui as load_state
from services.chart import chart_rows
from services.currency import configured_rates
from services.income import InvalidInvestment, income_summary, units_for, validate_investment


# ---------- page ----------
st.set_page_config(page_title="Markets — Live Prices", layout="wide")
st.title("Markets — Live Prices")

TABS = {"crypto": "Crypto", "forex": "Forex", "commodity": "Futures", "equity": "Stocks"}
STALE_MS = 60_000

# ---------- helpers ----------
def _now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)

def fmt_ts(ts_ms: int) -> str:
    if not ts_ms:
        return "—"
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc)
    return dt.strftime("%Y-%m-%d %H:%M:%S") + "Z"

def fmt_px(category: str, px: float) -> str:
    d = PRICE_DECIMALS.get(category, 2)
    return f"${px:,.{d}f}"


def wait_for_refresh(since_ms: int, timeout: float = 5.0) -> bool:
    """Poll the snapshot until the engine publishes a newer refresh pass."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if load_state()["last_update_ms"] != since_ms:
            return True
        time.sleep(0.25)
    return False


CATALOG = default_catalog()
control = ControlStore()

state = load_state()
currency = state["currency"]
last_update = state["last_update_ms"]

# ---------- display currency (applied by the engine) ----------
codes = sorted(configured_rates(), key=lambda c: (c != "USD", c))
if currency not in codes:
    codes.append(currency)
pick = st.sidebar.selectbox("Display currency", codes, index=codes.index(currency), key="currency_pick")
if pick == currency:
    st.session_state.pop("currency_requested", None)
elif st.session_state.get("currency_requested") != pick:
    control.submit(ControlCommand(action="currency", code=pick))
    st.session_state.currency_requested = pick
if st.session_state.get("currency_requested"):
    st.sidebar.caption(f"Switching to {st.session_state.currency_requested}…")

st.caption(f"Prices in USD • Income in {currency} • last update {fmt_ts(last_update)}")
if not last_update or _now_ms() - last_update > STALE_MS:
    st.warning("Market data is stale; showing the last known or simulated prices.")

# remember last chosen category / asset
if "category" not in st.session_state:
    st.session_state.category = "crypto"
st.session_state.category = st.radio(
    "Market", list(TABS.keys()), format_func=TABS.get, horizontal=True,
    index=list(TABS.keys()).index(st.session_state.category),
)
cat = st.session_state.category
rows = state["assets"].get(cat) or []

if not rows:
    st.caption("Waiting for the first refresh…")
    st.stop()

assets = [AssetState(**r) for r in rows]
by_id = {a.instrument_id: a for a in assets}

# ---------- market table ----------
df = pd.DataFrame([{
    "Asset": a.name,
    "Symbol": a.symbol,
    "Price (USD)": a.current_price,
    "Change %": a.change_pct,
    "Moving Avg": a.moving_average,
    "Trend": a.trend.upper(),
    f"Min ({currency})": a.min_investment,
    f"Hourly ({currency})": a.hourly_income,
    "Hours": a.duration_hours,
} for a in assets])
d = PRICE_DECIMALS.get(cat, 2)
st.dataframe(df, width="stretch", height=300,
             column_config={
                 "Price (USD)": st.column_config.NumberColumn(format=f"%.{d}f"),
                 "Moving Avg": st.column_config.NumberColumn(format=f"%.{d}f"),
                 "Change %": st.column_config.NumberColumn(format="%.2f"),
                 f"Hourly ({currency})": st.column_config.NumberColumn(format="%.4f"),
             })

ids = list(by_id.keys())
if st.session_state.get("asset") not in by_id:
    st.session_state.asset = ids[0]
st.session_state.asset = st.selectbox(
    "Asset", ids, format_func=lambda i: f"{by_id[i].name} ({by_id[i].symbol})",
    index=ids.index(st.session_state.asset),
)
sel = by_id[st.session_state.asset]

left, right = st.columns([1, 2])

# ---------- price block ----------
with left:
    st.subheader(sel.name)
    st.metric(sel.symbol, fmt_px(cat, sel.current_price), f"{sel.change_pct:+.2f}%")
    st.caption(f"Moving average {fmt_px(cat, sel.moving_average)} • trend {sel.trend.upper()}")
    st.link_button("Open chart", sel.chart_url)

# ---------- price history (bounded buffer) ----------
hist = [float(p) for p in (state["history"].get(sel.instrument_id) or [])]
right.subheader("Price History")
if hist:
    # canvas coordinates: 10% headroom top and bottom, flat series drawn mid-height
    dfh = pd.DataFrame(chart_rows(hist, width=100, height=100))
    color = "#22c55e" if sel.trend == "up" else "#ef4444"
    base = alt.Chart(dfh).encode(
        x=alt.X("x:Q", title="", axis=None, scale=alt.Scale(domain=[0, 100])),
        y=alt.Y("y:Q", title="", axis=None, scale=alt.Scale(domain=[0, 100])),
        tooltip=[alt.Tooltip("price:Q", title="Price", format=f",.{d}f")],
    )
    chart = base.mark_point(color=color, filled=True) if len(hist) == 1 else base.mark_line(color=color)
    right.altair_chart(chart.properties(height=220, width="container"), width="stretch")
    right.caption(f"High {fmt_px(cat, max(hist))} • Low {fmt_px(cat, min(hist))} • {len(hist)} samples")
else:
    right.caption("No history yet…")

# ---------- income projection ----------
st.subheader("Invest")
raw = st.text_input(f"Amount ({currency})", value=f"{sel.min_investment:.2f}",
                    key=f"amount-{sel.instrument_id}")
try:
    amount = validate_investment(sel, raw)
except InvalidInvestment as e:
    st.error(str(e))
else:
    inc = income_summary(sel, amount)
    c1, c2, c3 = st.columns(3)
    units = units_for(sel, amount, CATALOG.get(sel.instrument_id).min_investment)
    c1.metric("Units", f"{units:,.6f}")
    c2.metric(f"Hourly income ({currency})", f"{inc['hourly']:,.4f}")
    c3.metric(f"Total income ({currency})", f"{inc['total']:,.4f}", help=f"over {inc['duration_hours']} h")

# ---------- controls ----------
if "auto_refresh" not in st.session_state:
    st.session_state.auto_refresh = True

c1, c2 = st.columns(2)
with c1:
    if st.button("Refresh now"):
        control.submit(ControlCommand(action="refresh"))
        with st.spinner("Fetching market data…"):
            fresh = wait_for_refresh(last_update)
        if fresh:
            st.rerun()
        st.warning("No new data yet; feeds may be unavailable or the engine is not running.")
with c2:
    st.session_state.auto_refresh = st.toggle("Auto-refresh every 3s", value=st.session_state.auto_refresh)

if st.session_state.auto_refresh:
    time.sleep(3)
    st.rerun()
