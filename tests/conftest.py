from datetime import datetime, timezone

import cv2
import numpy as np
import pytest

from chart_watch.types import CandleObject, NormRect, OcrLine, OcrResult, Trajectory

T0 = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)


def ocr(*texts, conf=0.9):
    """OcrResult with one full-width line per text, stacked top to bottom."""
    n = max(len(texts), 1)
    lines = [OcrLine(t, conf, NormRect(0.0, i / n, 1.0, 1.0 / n)) for i, t in enumerate(texts)]
    return OcrResult.from_lines(lines)


@pytest.fixture
def make_candle():
    def factory(**kw):
        values = dict(
            ticker="AAPL",
            timeframe="1h",
            source_app=None,
            price_low=150.0,
            price_high=153.0,
            time_start="10:00",
            time_end="12:00",
            date_start=None,
            date_end=None,
            trajectory=Trajectory.UP,
            slope_metric=None,
            confidence=0.8,
            raw_snippet="AAPL 1h",
            timestamp=T0,
        )
        values.update(kw)
        return CandleObject(**values)

    return factory


@pytest.fixture
def chart_frame():
    """White 320x240 frame with a few dark candles and right-side labels."""
    im = np.full((240, 320, 3), 255, np.uint8)
    for i, x in enumerate(range(40, 260, 20)):
        top = 60 + (i * 7) % 50
        cv2.line(im, (x + 4, top - 15), (x + 4, top + 55), (0, 0, 0), 1)
        cv2.rectangle(im, (x, top), (x + 8, top + 40), (30, 30, 30), -1)
    for i, y in enumerate(range(50, 210, 30)):
        cv2.putText(im, f"{150 + i}.00", (268, y), cv2.FONT_HERSHEY_SIMPLEX, 0.35, (0, 0, 0), 1)
    return im
