from dataclasses import dataclass, field

from ..config import DETECT_THRESHOLD
from ..parsers import text as tp
from ..types import RegionOcrBundle


@dataclass(frozen=True)
class CandleSignals:
    ticker: str | None
    timeframe: str | None
    source_app: str | None
    axis_prices: tuple[float, ...]
    keyword_hits: int
    directional_hits: int
    time_label_count: int


@dataclass(frozen=True)
class CandleChartContext:
    regions: RegionOcrBundle
    combined_upper: str
    header_upper: str
    footer_upper: str
    signals: CandleSignals


@dataclass(frozen=True)
class CandleChartDetection:
    is_candle_chart: bool
    confidence: float
    reason: str
    context: CandleChartContext | None
    reasons: list[str] = field(default_factory=list)


class CandleChartDetector:
    """Scores region OCR text for chart-ness, independent of the pixel gate.

    confidence = 0.45*gate + 0.20*ocr + 0.15*ticker + 0.18*timeframe
                 + 0.15*(axis prices >= 4) + min(0.05*keywords, 0.15)
                 + 0.08*(time labels >= 2) + 0.05*(directional) + 0.07*(platform)
    clamped to [0, 1] and accepted at ``threshold``.
    """

    def __init__(self, threshold: float = DETECT_THRESHOLD):
        self.threshold = threshold

    def signals(self, regions: RegionOcrBundle) -> CandleSignals:
        combined = regions.combined_text.upper()
        header = regions.header.text.upper()
        footer = regions.footer.text.upper()

        axis_prices = tuple(tp.extract_axis_prices(regions.y_axis))
        timeframe = tp.extract_timeframe(header) or tp.extract_timeframe(combined)
        keyword_hits = tp.count_hits(combined, tp.CHART_KEYWORDS)
        directional_hits = tp.count_hits(combined, tp.UP_INDICATORS + tp.DOWN_INDICATORS)
        time_labels = tp.extract_time_labels(f"{footer} {combined}")

        # single letters (F, C, T) only when the rest of the frame is clearly a chart
        strong = (timeframe is not None and len(axis_prices) >= 4) or keyword_hits >= 2 or len(time_labels) >= 2
        ticker = tp.extract_ticker(header, strong) or tp.extract_ticker(combined, strong)

        return CandleSignals(
            ticker=ticker,
            timeframe=timeframe,
            source_app=tp.extract_source_app(combined),
            axis_prices=axis_prices,
            keyword_hits=keyword_hits,
            directional_hits=directional_hits,
            time_label_count=len(time_labels),
        )

    def score(self, s: CandleSignals, gate_confidence: float, ocr_confidence: float):
        reasons = []
        conf = gate_confidence * 0.45 + ocr_confidence * 0.20
        if s.ticker:
            conf += 0.15
            reasons.append("ticker")
        if s.timeframe:
            conf += 0.18
            reasons.append("timeframe")
        if len(s.axis_prices) >= 4:
            conf += 0.15
            reasons.append(f"axis_prices({len(s.axis_prices)})")
        if s.keyword_hits:
            conf += min(s.keyword_hits * 0.05, 0.15)
            reasons.append(f"keywords({s.keyword_hits})")
        if s.time_label_count >= 2:
            conf += 0.08
            reasons.append(f"time_labels({s.time_label_count})")
        if s.directional_hits:
            conf += 0.05
            reasons.append(f"direction({s.directional_hits})")
        if s.source_app:
            conf += 0.07
            reasons.append("platform")
        return min(max(conf, 0.0), 1.0), reasons

    def detect(self, regions: RegionOcrBundle, gate_confidence: float) -> CandleChartDetection:
        combined = regions.combined_text
        if not combined.strip():
            conf = min(max(gate_confidence * 0.4, 0.0), 1.0)
            return CandleChartDetection(False, conf, "No OCR text", None)

        s = self.signals(regions)
        conf, reasons = self.score(s, gate_confidence, regions.average_confidence)
        if conf < self.threshold:
            return CandleChartDetection(False, conf, "Chart confidence below threshold", None, reasons)

        context = CandleChartContext(
            regions=regions,
            combined_upper=combined.upper(),
            header_upper=regions.header.text.upper(),
            footer_upper=regions.footer.text.upper(),
            signals=s,
        )
        return CandleChartDetection(True, conf, "Detected", context, reasons)
