from .config import GATE_MIN_CONFIDENCE, STABILIZER_ALPHA
from .types import ChartGateResult


class ChartStabilizer:
    """Exponential smoothing of gate confidence and chart box across frames."""

    def __init__(self, alpha: float = STABILIZER_ALPHA, min_confidence: float = GATE_MIN_CONFIDENCE):
        self.alpha = min(max(alpha, 0.05), 0.95)
        self.min_confidence = min_confidence
        self._last_confidence = 0.0
        self._last_box = None

    def stabilize(self, result: ChartGateResult) -> ChartGateResult:
        conf = self.alpha * result.confidence + (1 - self.alpha) * self._last_confidence
        self._last_confidence = conf

        box = self._last_box
        if result.chart_box is not None:
            box = result.chart_box if box is None else box.lerp(result.chart_box, self.alpha)
            self._last_box = box

        return ChartGateResult(
            is_chart=conf >= self.min_confidence,
            confidence=conf,
            chart_box=box,
            axis_side=result.axis_side,
            signals=result.signals,
        )

    def reset(self):
        self._last_confidence = 0.0
        self._last_box = None
