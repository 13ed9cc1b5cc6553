from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
import json, logging, os, time, threading

from core.config import CFG
from core.history import HistoryBuffer
from core.schemas import AssetState, ControlCommand, CATEGORIES

ROOT = Path(__file__).resolve().parents[1]

log = logging.getLogger(__name__)

def now_ms() -> int:
    return int(time.time() * 1000)

@dataclass
class MarketState:
    """Everything the engine's writer owns. Readers only get copies."""
    assets: dict[str, AssetState] = field(default_factory=dict)   # {instrument_id: state}, catalog order
    history: HistoryBuffer = field(default_factory=HistoryBuffer)
    currency: str = "USD"
    last_update_ms: int = 0      # last successful refresh pass
    ts_ms: int = 0               # last mutation of any kind

    def by_category(self) -> dict[str, list[AssetState]]:
        out: dict[str, list[AssetState]] = {c: [] for c in CATEGORIES}
        for a in self.assets.values():
            out[a.category].append(a.model_copy())
        return out

    def replace_assets(self, grouped: dict[str, list[AssetState]]) -> None:
        assets = {}
        for c in CATEGORIES:
            for a in grouped.get(c, []):
                assets[a.instrument_id] = a
        self.assets = assets

    def to_dict(self) -> dict:
        return {
            "ts_ms": self.ts_ms,
            "last_update_ms": self.last_update_ms,
            "currency": self.currency,
            "assets": {c: [a.model_dump() for a in rows] for c, rows in self.by_category().items()},
            "history": self.history.snapshot_all(),
        }


class SnapshotStore:
    """Atomic JSON handoff of the current window to out-of-process readers (the UI)."""

    def __init__(self, path: Path | str = CFG.SNAPSHOT_PATH):
        path = Path(path)
        self.path = path if path.is_absolute() else ROOT / path
        self._lock = threading.Lock()

    def read(self) -> dict:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError):
            return {}

    def write(self, st: MarketState) -> bool:
        return self.write_payload(st.to_dict())

    def write_payload(self, payload: dict) -> bool:
        """Write an already-serialised snapshot; safe to call from a worker thread."""
        with self._lock:
            try:
                _write_json_atomic(self.path, payload)
                return True
            except (OSError, TypeError, ValueError) as e:
                log.warning("snapshot write failed for %s: %s", self.path, e)
                return False


def _write_json_atomic(path: Path, payload: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(payload, f, separators=(",", ":"), ensure_ascii=False)
    tmp.replace(path)


class ControlStore:
    """
    UI -> engine command drop box: one JSON file per command in `root`.
    The UI submits, the engine takes (oldest first) and deletes what it read.
    """

    def __init__(self, root: Path | str = CFG.CONTROL_DIR):
        root = Path(root)
        self.root = root if root.is_absolute() else ROOT / root
        self._seq = 0

    def submit(self, cmd: ControlCommand) -> Path:
        if not cmd.ts_ms:
            cmd = cmd.model_copy(update={"ts_ms": now_ms()})
        self._seq += 1
        path = self.root / f"cmd.{cmd.ts_ms}.{os.getpid()}.{self._seq:06d}.json"
        _write_json_atomic(path, cmd.model_dump())
        return path

    def pending(self) -> list[Path]:
        if not self.root.exists():
            return []
        return sorted(self.root.glob("cmd.*.json"))

    def take(self) -> list[ControlCommand]:
        out = []
        for p in self.pending():
            try:
                with p.open("r", encoding="utf-8") as f:
                    out.append(ControlCommand(**json.load(f)))
            except (OSError, ValueError) as e:
                log.warning("dropping unreadable control file %s: %s", p.name, e)
            finally:
                p.unlink(missing_ok=True)
        return out


# =========================
# Public API for UI imports
# =========================
def load_state_for_ui(path: Path | str = CFG.SNAPSHOT_PATH) -> dict:
    """
    Return the last snapshot as a plain dict, always with the keys
    ts_ms, last_update_ms, currency, assets ({category: [...]}) and history.
    """
    d = SnapshotStore(path).read()
    assets = d.get("assets") if isinstance(d.get("assets"), dict) else {}
    return {
        "ts_ms": int(d.get("ts_ms", 0) or 0),
        "last_update_ms": int(d.get("last_update_ms", 0) or 0),
        "currency": d.get("currency") or "USD",
        "assets": {c: list(assets.get(c) or []) for c in CATEGORIES},
        "history": d.get("history") if isinstance(d.get("history"), dict) else {},
    }
