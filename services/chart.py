# services/chart.py
"""Scaling helpers for drawing a history snapshot as a line."""
from __future__ import annotations
from typing import Sequence

def price_bounds(prices: Sequence[float]) -> tuple[float, float, float]:
    """(min, max, span); span is never zero."""
    lo, hi = float(min(prices)), float(max(prices))
    return lo, hi, (hi - lo) or 1.0

def chart_points(prices: Sequence[float], width: float, height: float,
                 pad: float = 0.1) -> list[tuple[float, float]]:
    """
    Map prices onto a width x height canvas (y grows downward), leaving
    `pad` of the height free at top and bottom. One sample -> one point
    in the horizontal centre; no samples -> [].
    """
    if not prices:
        return []
    lo, _, span = price_bounds(prices)
    usable = height * (1.0 - 2 * pad)

    def y_of(p: float) -> float:
        return height - ((p - lo) / span) * usable - height * pad

    n = len(prices)
    if n == 1:
        return [(width / 2.0, y_of(prices[0]))]
    step = width / (n - 1)
    return [(i * step, y_of(p)) for i, p in enumerate(prices)]

def chart_rows(prices: Sequence[float], width: float = 100.0, height: float = 100.0,
               pad: float = 0.1) -> list[dict]:
    """chart_points as plot rows with y growing upward; each row keeps its price for tooltips."""
    pts = chart_points(prices, width, height, pad)
    return [{"x": x, "y": height - y, "price": float(p)} for (x, y), p in zip(pts, prices)]
