import dataclasses
from datetime import timedelta

import numpy as np
import pytest

from chart_watch.detectors.heuristic import detect_text_boxes
from chart_watch.detectors.visual_gate import VisualChartGate, low_res_signals, text_signals
from chart_watch.gate import CandleGate, GateStatus, signature
from chart_watch.snapshot import FrameSnapshot
from chart_watch.stabilizer import ChartStabilizer
from chart_watch.types import AxisSide, ChartGateResult, NormRect

from conftest import T0


def _gate(conf, box=None, side=AxisSide.UNKNOWN):
    return ChartGateResult(conf >= 0.55, conf, box, side, {})


# ---------- Snapshot ----------
def test_snapshot_sizes_and_lossless_full_res(chart_frame):
    snap = FrameSnapshot.from_frame(chart_frame, T0)
    assert (snap.width, snap.height) == (320, 240)
    assert snap.low_res_size == (256, 192)
    assert snap.mid_res_size == (512, 384)
    assert snap.low_res_array().shape == (192, 256)
    assert np.array_equal(snap.full_res_image(), chart_frame)
    assert snap.captured_at == T0


def test_snapshot_is_immutable(chart_frame):
    snap = FrameSnapshot.from_frame(chart_frame)
    with pytest.raises(dataclasses.FrozenInstanceError):
        snap.width = 1


def test_snapshot_rejects_empty_frame():
    assert FrameSnapshot.from_frame(np.zeros((0, 0, 3), np.uint8)) is None
    assert FrameSnapshot.from_frame(None) is None


def test_snapshot_channel_layouts():
    gray3d = FrameSnapshot.from_frame(np.full((240, 320, 1), 128, np.uint8))
    assert gray3d.low_res_size == (256, 192)
    assert gray3d.full_res_image().shape == (240, 320, 3)
    bgra = FrameSnapshot.from_frame(np.zeros((240, 320, 4), np.uint8))
    assert bgra.full_res_image().shape == (240, 320, 3)
    assert FrameSnapshot.from_frame(np.zeros((240, 320, 2), np.uint8)) is None
    assert FrameSnapshot.from_frame(np.zeros((4, 4, 3, 2), np.uint8)) is None


def test_snapshot_crops_and_thumbnail(chart_frame):
    snap = FrameSnapshot.from_frame(chart_frame)
    assert snap.crop_full_res(NormRect(0, 0, 0.5, 0.5)).shape == (120, 160, 3)
    assert snap.crop_mid_res(NormRect(0.5, 0.5, 0.5, 0.5)).shape == (192, 256, 3)
    assert snap.crop_full_res(NormRect(0.5, 0.5, 0.0, 0.0)) is None
    thumb = snap.thumbnail_jpeg(NormRect(0, 0, 1, 1))
    assert thumb[:2] == b"\xff\xd8"


# ---------- Visual gate ----------
def test_white_frame_is_not_a_chart():
    snap = FrameSnapshot.from_frame(np.full((240, 320, 3), 255, np.uint8))
    res = VisualChartGate().evaluate(snap)
    assert res.confidence == 0.0
    assert not res.is_chart
    assert res.signals["linePenalty"] == 0.15


def test_gate_confidence_is_clamped():
    rng = np.random.default_rng(0)
    for _ in range(5):
        frame = rng.integers(0, 256, size=(120, 160, 3), dtype=np.uint8)
        res = VisualChartGate().evaluate(FrameSnapshot.from_frame(frame))
        assert 0.0 <= res.confidence <= 1.0
        assert res.signals["confidence"] == res.confidence


def test_gate_picks_axis_side_from_text_boxes(chart_frame):
    right_labels = [NormRect(0.88, 0.1 * i, 0.08, 0.03) for i in range(1, 7)]
    gate = VisualChartGate(text_detector=lambda im: right_labels)
    res = gate.evaluate(FrameSnapshot.from_frame(chart_frame))
    assert res.axis_side == AxisSide.RIGHT
    assert res.chart_box.max_x == pytest.approx(0.84)
    assert res.signals["axisRight"] == 1.0


def test_gate_survives_text_detector_failure(chart_frame):
    def boom(im):
        raise RuntimeError("no text today")

    res = VisualChartGate(text_detector=boom).evaluate(FrameSnapshot.from_frame(chart_frame))
    assert res.signals["axis"] == 0.0
    assert res.axis_side == AxisSide.UNKNOWN


def test_text_signals_penalize_centered_text():
    centered = [NormRect(0.4, 0.1 * i, 0.2, 0.03) for i in range(5)]
    sig = text_signals(centered)
    assert sig["textPenalty"] == 0.18
    assert sig["axis"] == 0.0


def test_low_res_signals_flat_and_horizontal():
    stripes = np.full((64, 64), 255, np.uint8)
    stripes[::8, :] = 0
    sig = low_res_signals(stripes)
    assert sig["linePenalty"] == 0.15
    assert sig["wick"] == 0.0


def test_detect_text_boxes_finds_axis_labels(chart_frame):
    labels_only = np.full_like(chart_frame, 255)
    labels_only[:, 260:] = chart_frame[:, 260:]
    boxes = detect_text_boxes(labels_only)
    assert boxes
    assert all(b.mid_x > 0.75 for b in boxes)


# ---------- Stabilizer ----------
def test_stabilizer_smooths_confidence():
    stab = ChartStabilizer(alpha=0.35, min_confidence=0.55)
    out = [stab.stabilize(_gate(0.9)) for _ in range(3)]
    assert [r.confidence for r in out] == pytest.approx([0.315, 0.51975, 0.6528375])
    assert [r.is_chart for r in out] == [False, False, True]


def test_stabilizer_converges_and_keeps_last_box():
    stab = ChartStabilizer(alpha=0.5)
    box = NormRect(0.1, 0.1, 0.8, 0.8)
    for _ in range(30):
        res = stab.stabilize(_gate(0.8, box))
    assert res.confidence == pytest.approx(0.8, abs=1e-6)
    kept = stab.stabilize(_gate(0.8, None))
    assert kept.chart_box == box


def test_stabilizer_lerps_box_and_resets():
    stab = ChartStabilizer(alpha=0.5)
    stab.stabilize(_gate(0.9, NormRect(0, 0, 1, 1)))
    res = stab.stabilize(_gate(0.9, NormRect(0.2, 0.2, 0.6, 0.6)))
    assert res.chart_box.as_tuple() == pytest.approx((0.1, 0.1, 0.8, 0.8))
    stab.reset()
    assert stab.stabilize(_gate(0.0)).chart_box is None


def test_stabilizer_clamps_alpha():
    assert ChartStabilizer(alpha=5).alpha == 0.95
    assert ChartStabilizer(alpha=-1).alpha == 0.05


# ---------- Candle gate ----------
def _feed(gate, candle, seconds):
    return gate.process(candle, T0 + timedelta(seconds=seconds))


def test_candle_gate_needs_stable_signature(make_candle):
    gate = CandleGate(stable_count=3, cooldown=30, window=12)
    c = make_candle()
    first = _feed(gate, c, 0)
    assert first.status == GateStatus.WARMING_UP
    assert first.reason == "Waiting for stability (1/3)"
    assert _feed(gate, c, 5).status == GateStatus.WARMING_UP
    accepted = _feed(gate, c, 10)
    assert accepted.status == GateStatus.ACCEPTED
    assert accepted.candle is c
    assert accepted.reason == "Stable across 3 frames"


def test_candle_gate_cooldown(make_candle):
    gate = CandleGate(stable_count=3, cooldown=30, window=12)
    c = make_candle()
    for t in (0, 5, 10):
        res = _feed(gate, c, t)
    assert res.status == GateStatus.ACCEPTED

    for t in (15, 20, 25, 30, 35):
        res = _feed(gate, c, t)
        assert res.status == GateStatus.REJECTED
        assert res.reason == "Stable but recently emitted"
    assert _feed(gate, c, 40).status == GateStatus.ACCEPTED


def test_candle_gate_signature_change_breaks_stability(make_candle):
    gate = CandleGate(stable_count=3)
    _feed(gate, make_candle(), 0)
    _feed(gate, make_candle(), 1)
    res = _feed(gate, make_candle(ticker="MSFT"), 2)
    assert res.status == GateStatus.WARMING_UP


def test_candle_gate_ignores_price_and_trajectory(make_candle):
    assert signature(make_candle(price_low=1.0)) == signature(make_candle(price_low=2.0))
    assert signature(make_candle()) == "AAPL|1h|-|10:00|12:00|-|-"


def test_candle_gate_window_prunes_old_entries(make_candle):
    gate = CandleGate(stable_count=3, window=12)
    c = make_candle()
    _feed(gate, c, 0)
    _feed(gate, c, 1)
    res = _feed(gate, c, 20)
    assert res.status == GateStatus.WARMING_UP
    assert res.reason == "Waiting for stability (1/3)"


def test_candle_gate_reset_keeps_emission_record(make_candle):
    gate = CandleGate(stable_count=2, cooldown=30, window=12)
    c = make_candle()
    _feed(gate, c, 0)
    assert _feed(gate, c, 1).status == GateStatus.ACCEPTED
    gate.reset()
    assert _feed(gate, c, 2).reason == "Waiting for stability (1/2)"
    assert _feed(gate, c, 3).status == GateStatus.REJECTED


def test_candle_gate_reset_requires_full_count_again(make_candle):
    gate = CandleGate(stable_count=3, cooldown=30, window=12)
    aapl, msft = make_candle(), make_candle(ticker="MSFT")
    for t in (0, 1):
        _feed(gate, aapl, t)
    assert _feed(gate, aapl, 2).status == GateStatus.ACCEPTED

    gate.reset()
    assert _feed(gate, msft, 3).reason == "Waiting for stability (1/3)"
    assert _feed(gate, msft, 4).reason == "Waiting for stability (2/3)"
    assert _feed(gate, msft, 5).status == GateStatus.ACCEPTED

    gate.reset()
    assert _feed(gate, aapl, 40).status == GateStatus.WARMING_UP
    assert _feed(gate, aapl, 41).status == GateStatus.WARMING_UP
    accepted = _feed(gate, aapl, 42)
    assert accepted.status == GateStatus.ACCEPTED
    assert accepted.candle is aapl


def test_candle_gate_minimum_stable_count():
    assert CandleGate(stable_count=1).stable_count == 2
