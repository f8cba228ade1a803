import logging

import numpy as np

from ..config import AXIS_SIDE_MARGIN, DARK_LUMA, GATE_MIN_CONFIDENCE, GATE_WEIGHTS
from ..types import AxisSide, ChartGateResult, NormRect
from .heuristic import detect_text_boxes

logger = logging.getLogger(__name__)

_NO_TEXT = {"axis": 0.0, "textPenalty": 0.0, "axisLeft": 0.0, "axisRight": 0.0}


def _variance_score(values: np.ndarray) -> float:
    """Variance relative to the squared mean, capped at 1."""
    if values.size == 0:
        return 0.0
    mean = float(values.mean())
    var = float(((values - mean) ** 2).mean())
    return min(var / max(mean * mean, 1e-6), 1.0)


def low_res_signals(gray: np.ndarray) -> dict[str, float]:
    """OCR-free signals from the low-res grayscale frame."""
    h, w = gray.shape[:2]
    if w < 2 or h < 2:
        return {"wick": 0.0, "grid": 0.0, "ink": 0.0, "linePenalty": 0.0}

    luma = gray.astype(np.float64) / 255.0
    total = float(w * h)

    v_edge = min(float(np.abs(np.diff(luma, axis=1)).sum()) / total, 1.0)
    h_edge = min(float(np.abs(np.diff(luma, axis=0)).sum()) / total, 1.0)

    wick = min(v_edge * 2.0, 1.0)
    ink = min(float((luma < DARK_LUMA).sum()) / total / 0.35, 1.0)

    # horizontal-dominant frames look like lists/tables, not candles
    ratio = v_edge / h_edge if h_edge > 0 else 0.0
    line_penalty = 0.15 if ratio < 0.6 else 0.0

    darkness = 1.0 - luma
    grid = min((_variance_score(darkness.sum(axis=1)) + _variance_score(darkness.sum(axis=0))) * 1.4, 1.0)

    return {"wick": wick, "grid": grid, "ink": ink, "linePenalty": line_penalty}


def text_signals(boxes) -> dict[str, float]:
    """Margin vs. center text distribution of detected text rectangles."""
    if not boxes:
        return dict(_NO_TEXT)

    left = right = center = 0
    for box in boxes:
        if box.mid_x < 0.20:
            left += 1
        elif box.mid_x > 0.80:
            right += 1
        else:
            center += 1

    total = max(left + right + center, 1)
    return {
        "axis": min((left + right) / 8.0, 1.0),
        "textPenalty": 0.18 if center / total > 0.6 else 0.0,
        "axisLeft": min(left / 6.0, 1.0),
        "axisRight": min(right / 6.0, 1.0),
    }


def default_chart_box(axis_side: AxisSide) -> NormRect:
    top = bottom = 0.12
    left = 0.16 if axis_side == AxisSide.LEFT else 0.06
    right = 0.16 if axis_side == AxisSide.RIGHT else 0.06
    return NormRect(left, top, max(0.05, 1 - left - right), max(0.05, 1 - top - bottom))


class VisualChartGate:
    """Cheap "is this a candlestick chart" score from pixel statistics.

    Parameters
    ----------
    min_confidence : float
        Confidence at or above which ``is_chart`` is set.
    text_detector : callable | None
        ``f(image_bgr) -> list[NormRect]`` run on the mid-res frame. Defaults
        to the contour heuristic.
    """

    def __init__(self, min_confidence: float = GATE_MIN_CONFIDENCE, text_detector=None):
        self.min_confidence = min_confidence
        self.text_detector = text_detector or detect_text_boxes

    def _text_signals(self, snapshot) -> dict[str, float]:
        mid = snapshot.mid_res_image()
        if mid is None:
            return dict(_NO_TEXT)
        try:
            boxes = self.text_detector(mid)
        except Exception:
            logger.warning("Text rectangle detection failed", exc_info=True)
            return dict(_NO_TEXT)
        return text_signals(boxes)

    def evaluate(self, snapshot) -> ChartGateResult:
        signals = low_res_signals(snapshot.low_res_array())
        signals.update(self._text_signals(snapshot))

        confidence = sum(weight * signals[name] for name, weight in GATE_WEIGHTS.items())
        confidence -= signals["textPenalty"] + signals["linePenalty"]
        confidence = min(max(confidence, 0.0), 1.0)

        left, right = signals["axisLeft"], signals["axisRight"]
        if abs(left - right) > AXIS_SIDE_MARGIN:
            axis_side = AxisSide.LEFT if left > right else AxisSide.RIGHT
        else:
            axis_side = AxisSide.UNKNOWN

        signals["confidence"] = confidence
        return ChartGateResult(
            is_chart=confidence >= self.min_confidence,
            confidence=confidence,
            chart_box=default_chart_box(axis_side),
            axis_side=axis_side,
            signals=signals,
        )
