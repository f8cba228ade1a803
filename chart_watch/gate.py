import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

from .config import GATE_COOLDOWN_SECONDS, GATE_STABLE_COUNT, GATE_WINDOW_SECONDS
from .types import CandleObject

logger = logging.getLogger(__name__)


class GateStatus(str, Enum):
    WARMING_UP = "warmingUp"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


@dataclass(frozen=True)
class CandleGateResult:
    status: GateStatus
    candle: CandleObject | None
    reason: str


def signature(candle: CandleObject) -> str:
    """Stability key over the identity fields (no price range, no trajectory)."""
    parts = [
        candle.ticker,
        candle.timeframe,
        candle.source_app,
        candle.time_start,
        candle.time_end,
        candle.date_start,
        candle.date_end,
    ]
    return "|".join(p or "-" for p in parts)


class CandleGate:
    """Accepts a candle only after the same signature recurs across frames.

    Parameters
    ----------
    stable_count : int
        Most recent candles that must share one signature (minimum 2).
    cooldown : float
        Seconds during which an already emitted signature is rejected.
    window : float
        Max age in seconds of buffered candles.
    """

    def __init__(
        self,
        stable_count: int = GATE_STABLE_COUNT,
        cooldown: float = GATE_COOLDOWN_SECONDS,
        window: float = GATE_WINDOW_SECONDS,
    ):
        self.stable_count = max(2, stable_count)
        self.cooldown = timedelta(seconds=cooldown)
        self.window = timedelta(seconds=window)
        self._buffer: list[tuple[CandleObject, datetime]] = []
        self._last_signature: str | None = None
        self._last_emit: datetime | None = None
        self._lock = threading.Lock()

    def reset(self):
        """Drop buffered history; the emission record is kept for cooldown."""
        with self._lock:
            self._buffer.clear()

    def process(self, candle: CandleObject, now: datetime | None = None) -> CandleGateResult:
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._buffer.append((candle, now))
            self._buffer = [(c, ts) for c, ts in self._buffer if now - ts <= self.window]

            sig = signature(candle)
            recent = self._buffer[-self.stable_count :]
            stable = len(recent) == self.stable_count and all(signature(c) == sig for c, _ in recent)

            if not stable:
                progress = min(len(recent), self.stable_count)
                return CandleGateResult(
                    GateStatus.WARMING_UP,
                    None,
                    f"Waiting for stability ({progress}/{self.stable_count})",
                )

            if (
                self._last_signature == sig
                and self._last_emit is not None
                and now - self._last_emit < self.cooldown
            ):
                return CandleGateResult(GateStatus.REJECTED, None, "Stable but recently emitted")

            self._last_signature = sig
            self._last_emit = now
            logger.info("Candle gate accepted %s", sig)
            return CandleGateResult(
                GateStatus.ACCEPTED, candle, f"Stable across {self.stable_count} frames"
            )
