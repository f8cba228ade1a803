"""Where accepted candles go: a local JSONL store and an append-only row log."""

import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Protocol

from .types import CandleObject, NormRect

logger = logging.getLogger(__name__)


class CandleStore(Protocol):
    def record(self, candle: CandleObject, chart_box: NormRect | None, thumbnail: bytes | None) -> None: ...


def dedup_key(candle: CandleObject, chart_box: NormRect | None) -> str:
    if chart_box is None:
        box = "no-box"
    else:
        box = "|".join(f"{v:.2f}" for v in chart_box.as_tuple())
    return f"{candle.ticker or '-'}|{candle.timeframe or '-'}|{box}"


class JsonlCandleStore:
    """Appends accepted candles to a JSONL file, thumbnails next to it.

    A candle whose dedup key was stored less than ``dedup_seconds`` ago is
    skipped unless it is more confident than the stored one.
    """

    def __init__(self, path: str | Path, thumbnail_dir: str | Path | None = None, dedup_seconds: float = 120):
        self.path = Path(path)
        self.thumbnail_dir = Path(thumbnail_dir) if thumbnail_dir else self.path.parent / "thumbnails"
        self.dedup = timedelta(seconds=dedup_seconds)
        self._recent: dict[str, tuple] = {}

    def record(self, candle, chart_box=None, thumbnail=None):
        key = dedup_key(candle, chart_box)
        self._recent = {k: v for k, v in self._recent.items() if candle.timestamp - v[0] < self.dedup}
        prev = self._recent.get(key)
        if prev is not None:
            prev_ts, prev_conf = prev
            if candle.timestamp - prev_ts < self.dedup and candle.confidence <= prev_conf:
                logger.debug("Skipping duplicate candle %s", key)
                return None
        self._recent[key] = (candle.timestamp, candle.confidence)

        row = candle.to_dict()
        row["dedup_key"] = key
        row["chart_box"] = list(chart_box.as_tuple()) if chart_box else None
        row["thumbnail"] = self._write_thumbnail(candle, thumbnail)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(row, ensure_ascii=False) + "\n")
        return row

    def _write_thumbnail(self, candle, thumbnail):
        if not thumbnail:
            return None
        self.thumbnail_dir.mkdir(parents=True, exist_ok=True)
        name = f"{candle.timestamp.strftime('%Y%m%dT%H%M%S%f')}_{candle.ticker or 'unknown'}.jpg"
        out = self.thumbnail_dir / name
        out.write_bytes(thumbnail)
        return str(out)


def make_row(candle: CandleObject) -> list[str]:
    def fmt(v):
        return "" if v is None else f"{v:.2f}"

    return [
        candle.timestamp.isoformat(),
        candle.ticker or "",
        candle.timeframe or "",
        candle.source_app or "",
        fmt(candle.price_low),
        fmt(candle.price_high),
        candle.trajectory.value,
        f"{candle.confidence:.2f}",
        candle.raw_snippet,
    ]


class RowLogger:
    """Builds the ``{"values": [row]}`` payload for an append-only sheet.

    With ``dry_run`` the payload is only logged; otherwise it is handed to
    ``sink`` (any callable taking the payload dict).
    """

    def __init__(self, dry_run: bool = True, sink=None):
        self.dry_run = dry_run
        self.sink = sink

    def log(self, candle: CandleObject) -> dict:
        payload = {"values": [make_row(candle)]}
        if self.dry_run or self.sink is None:
            logger.info("DRY RUN row: %s", json.dumps(payload, ensure_ascii=False))
            return payload
        self.sink(payload)
        return payload
