# core/history.py
from __future__ import annotations
import collections
from itertools import islice
import numpy as np

from core.config import CFG

class HistoryBuffer:
    """
    Per-instrument ring of recent USD prices (oldest first).
      - bounded to `maxlen` samples; appending past it drops the oldest,
      - the first retained sample is the epoch price for % change,
      - never empty for an instrument once it has been seeded.
    """

    def __init__(self, maxlen: int = CFG.HISTORY_LEN):
        if maxlen < 1:
            raise ValueError("maxlen must be >= 1")
        self.maxlen = maxlen
        self._series: dict[str, collections.deque] = {}

    def __len__(self) -> int:
        return len(self._series)

    def __contains__(self, instrument_id: str) -> bool:
        return bool(self._series.get(instrument_id))

    def ids(self) -> list[str]:
        return list(self._series.keys())

    def seed(self, instrument_id: str, price: float) -> bool:
        """Start a series with a single sample; no-op if one already exists."""
        if instrument_id in self:
            return False
        self._series[instrument_id] = collections.deque([float(price)], maxlen=self.maxlen)
        return True

    def append(self, instrument_id: str, price: float) -> None:
        buf = self._series.get(instrument_id)
        if buf is None:
            buf = self._series[instrument_id] = collections.deque(maxlen=self.maxlen)
        buf.append(float(price))

    def epoch(self, instrument_id: str) -> float | None:
        buf = self._series.get(instrument_id)
        return buf[0] if buf else None

    def last(self, instrument_id: str) -> float | None:
        buf = self._series.get(instrument_id)
        return buf[-1] if buf else None

    def length(self, instrument_id: str) -> int:
        return len(self._series.get(instrument_id) or ())

    def tail(self, instrument_id: str, n: int) -> list[float]:
        buf = self._series.get(instrument_id) or ()
        if n <= 0:
            return []
        start = max(0, len(buf) - n)
        return list(islice(buf, start, None))

    def moving_average(self, instrument_id: str, n: int = CFG.MA_WINDOW) -> float | None:
        """Arithmetic mean of the last <= n samples."""
        win = self.tail(instrument_id, n)
        if not win:
            return None
        return float(np.asarray(win, dtype=float).mean())

    def snapshot(self, instrument_id: str) -> tuple[float, ...]:
        return tuple(self._series.get(instrument_id) or ())

    def snapshot_all(self) -> dict[str, list[float]]:
        return {k: list(v) for k, v in self._series.items()}

    def clear(self) -> None:
        self._series.clear()
