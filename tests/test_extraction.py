import cv2
import numpy as np
import pytest

from chart_watch.chart_extractor import CandleChartExtractor
from chart_watch.crop import CropPlanner
from chart_watch.detectors.candle import CandleChartDetector
from chart_watch.parsers.platforms import KrakenAdapter
from chart_watch.snapshot import FrameSnapshot
from chart_watch.trajectory import TrajectoryAnalyzer
from chart_watch.types import NormRect, OcrLine, OcrResult, RegionOcrBundle, Trajectory
from chart_watch.validators import normalize_and_validate

from conftest import T0, ocr

AXIS = ocr("153.00", "152.00", "151.00", "150.00")


def _footer(*labels):
    lines = [OcrLine(t, 0.9, NormRect(0.1 + 0.3 * i, 0.2, 0.1, 0.6)) for i, t in enumerate(labels)]
    return OcrResult.from_lines(lines)


def _regions(header, y_axis=AXIS, footer=None):
    return RegionOcrBundle(header=ocr(header), y_axis=y_axis, footer=footer or _footer("09:00", "12:00", "15:00"))


# ---------- Detector ----------
def test_detector_accepts_chart_text():
    det = CandleChartDetector().detect(_regions("AAPL 1h NASDAQ"), gate_confidence=0.8)
    assert det.is_candle_chart
    assert det.reason == "Detected"
    assert det.context.signals.ticker == "AAPL"
    assert det.context.signals.timeframe == "1h"
    assert det.context.signals.axis_prices == (153.0, 152.0, 151.0, 150.0)
    assert {"ticker", "timeframe", "axis_prices(4)", "time_labels(3)"} <= set(det.reasons)


def test_detector_empty_text():
    empty = RegionOcrBundle(OcrResult.empty(), OcrResult.empty(), OcrResult.empty())
    det = CandleChartDetector().detect(empty, gate_confidence=0.8)
    assert not det.is_candle_chart
    assert det.reason == "No OCR text"
    assert det.confidence == pytest.approx(0.32)
    assert det.context is None


def test_detector_below_threshold():
    weak = RegionOcrBundle(ocr("hello world", conf=0.5), OcrResult.empty(), OcrResult.empty())
    det = CandleChartDetector().detect(weak, gate_confidence=0.2)
    assert not det.is_candle_chart
    assert det.reason == "Chart confidence below threshold"
    assert 0.0 <= det.confidence < 0.55


def test_detector_score_is_clamped():
    det = CandleChartDetector().detect(
        _regions("AAPL 1h TradingView OHLC volume high low up +1.2%"), gate_confidence=1.0
    )
    assert det.confidence == 1.0


def test_single_letter_ticker_only_with_strong_evidence():
    weak = RegionOcrBundle(ocr("F"), OcrResult.empty(), OcrResult.empty())
    assert CandleChartDetector().signals(weak).ticker is None
    strong = _regions("F 1d")
    assert CandleChartDetector().signals(strong).ticker == "F"


# ---------- Extractor ----------
def _extract(header, footer=None, snapshot=None, adapter=None, y_axis=AXIS):
    det = CandleChartDetector().detect(_regions(header, y_axis, footer), gate_confidence=0.8)
    assert det.is_candle_chart
    plan = CropPlanner().plan(None)
    return CandleChartExtractor().extract(det.context, plan, snapshot, det.confidence, adapter)


def test_extractor_fields_from_regions():
    candle = _extract("BTCUSD 4h +2.5%")
    assert candle.ticker == "BTCUSD"
    assert candle.timeframe == "4h"
    assert (candle.price_low, candle.price_high) == (150.0, 153.0)
    assert (candle.time_start, candle.time_end) == ("09:00", "15:00")
    assert candle.trajectory == Trajectory.UP
    assert candle.slope_metric is None
    assert candle.raw_header == "BTCUSD 4h +2.5%"
    assert 0.55 <= candle.confidence <= 1.0


def test_extractor_prefers_high_low_readout():
    candle = _extract("ETHUSD 1h HIGH 2,100.50 LOW 1,950.25")
    assert (candle.price_low, candle.price_high) == (1950.25, 2100.5)


def test_extractor_dates_and_snippet_length():
    long_header = "AAPL 1d " + "OHLC " * 60
    candle = _extract(long_header, footer=_footer("Mar 4", "Mar 8"))
    assert (candle.date_start, candle.date_end) == ("Mar 4", "Mar 8")
    assert candle.time_start is None
    assert len(candle.raw_snippet) <= 180


def test_extractor_applies_adapter():
    candle = _extract("XBTUSD 1h", adapter=KrakenAdapter())
    assert candle.ticker == "BTCUSD"
    assert candle.source_app == "Kraken"


def test_extractor_measures_trajectory_from_pixels():
    frame = np.full((400, 400, 3), 255, np.uint8)
    cv2.line(frame, (30, 60), (370, 340), (0, 0, 0), 3)
    snap = FrameSnapshot.from_frame(frame, T0)
    candle = _extract("AAPL 1h", snapshot=snap)
    assert candle.trajectory == Trajectory.DOWN
    assert candle.slope_metric < 0
    assert candle.timestamp == T0


# ---------- Trajectory ----------
def _line_image(p1, p2, size=(100, 100)):
    im = np.full((size[1], size[0], 3), 255, np.uint8)
    cv2.line(im, p1, p2, (0, 0, 0), 2)
    return im


def test_trajectory_descending_line():
    res = TrajectoryAnalyzer().analyze(_line_image((0, 2), (99, 97)), (100.0, 200.0))
    assert res.trajectory == Trajectory.DOWN
    assert res.slope_metric < 0
    assert 0.0 <= res.confidence <= 1.0


def test_trajectory_ascending_line():
    res = TrajectoryAnalyzer().analyze(_line_image((0, 97), (99, 2)), (100.0, 200.0))
    assert res.trajectory == Trajectory.UP
    assert res.slope_metric > 0


def test_trajectory_flat_line():
    res = TrajectoryAnalyzer().analyze(_line_image((0, 50), (99, 50)), (100.0, 200.0))
    assert res.trajectory == Trajectory.FLAT
    assert abs(res.slope_metric) < 0.05


def test_trajectory_guards():
    analyzer = TrajectoryAnalyzer()
    tiny = analyzer.analyze(np.zeros((8, 8, 3), np.uint8), (1.0, 2.0))
    assert (tiny.trajectory, tiny.slope_metric, tiny.confidence) == (Trajectory.UNKNOWN, None, 0.0)
    blank = analyzer.analyze(np.full((50, 50, 3), 255, np.uint8), (1.0, 2.0))
    assert (blank.trajectory, blank.slope_metric, blank.confidence) == (Trajectory.UNKNOWN, None, 0.2)


# ---------- Validation ----------
def test_validator_swaps_and_drops_ranges(make_candle):
    swapped = normalize_and_validate(make_candle(price_low=160.0, price_high=150.0))
    assert (swapped.price_low, swapped.price_high) == (150.0, 160.0)
    for low, high in [(0.0, 10.0), (5.0, 5.0), (1.0, 20_000_000.0), (None, 10.0)]:
        dropped = normalize_and_validate(make_candle(price_low=low, price_high=high))
        assert dropped.price_low is None and dropped.price_high is None


def test_validator_maps_names_and_clamps(make_candle):
    candle = normalize_and_validate(make_candle(ticker="Bitcoin", confidence=1.7))
    assert candle.ticker == "BTC"
    assert candle.confidence == 1.0
