import logging

from .detectors.candle import CandleChartContext
from .parsers import text as tp
from .trajectory import TrajectoryAnalyzer
from .types import CandleObject, CropPlan
from .validators import normalize_and_validate

logger = logging.getLogger(__name__)

SNIPPET_CHARS = 180


class CandleChartExtractor:
    """Turns detector context plus the body crop into one CandleObject."""

    def __init__(self, analyzer: TrajectoryAnalyzer | None = None):
        self.analyzer = analyzer or TrajectoryAnalyzer()

    @staticmethod
    def _price_range(context: CandleChartContext):
        # explicit HIGH/LOW readouts beat the axis extremes
        explicit = tp.range_from_high_low(context.combined_upper)
        if explicit is not None:
            return explicit
        return tp.infer_range(context.signals.axis_prices)

    @staticmethod
    def _axis_labels(context: CandleChartContext):
        footer_lines = context.regions.footer.lines
        fallback_text = f"{context.footer_upper} {context.combined_upper}"

        times = tp.time_labels_from_lines(footer_lines) or tp.extract_time_labels(fallback_text)
        dates = tp.date_labels_from_lines(footer_lines) or tp.extract_date_labels(fallback_text)
        return times, dates

    def extract(
        self,
        context: CandleChartContext,
        plan: CropPlan,
        snapshot,
        confidence: float,
        adapter=None,
    ) -> CandleObject:
        regions = context.regions
        s = context.signals

        ticker, timeframe, source_app = s.ticker, s.timeframe, s.source_app
        if adapter is not None:
            ticker, timeframe = adapter.augment_parsing(ticker, timeframe, regions.header.text)
            source_app = source_app or adapter.name

        price_range = self._price_range(context)
        times, dates = self._axis_labels(context)

        trajectory = tp.trajectory_from_text(context.combined_upper)
        slope = None
        if price_range is not None and price_range[0] < price_range[1] and snapshot is not None:
            body = snapshot.crop_mid_res(plan.body)
            if body is not None:
                result = self.analyzer.analyze(body, price_range)
                trajectory, slope = result.trajectory, result.slope_metric
                logger.debug("Trajectory %s slope=%s conf=%.2f", trajectory.value, slope, result.confidence)

        extra = {"timestamp": snapshot.captured_at} if snapshot is not None else {}
        snippet = " ".join([regions.header.text, regions.y_axis.text, regions.footer.text])
        candle = CandleObject(
            ticker=ticker,
            timeframe=timeframe,
            source_app=source_app,
            price_low=price_range[0] if price_range else None,
            price_high=price_range[1] if price_range else None,
            time_start=times[0] if times else None,
            time_end=times[-1] if len(times) >= 2 else None,
            date_start=dates[0] if dates else None,
            date_end=dates[-1] if len(dates) >= 2 else None,
            trajectory=trajectory,
            slope_metric=slope,
            confidence=confidence,
            raw_snippet=snippet.strip()[:SNIPPET_CHARS].replace("\n", " "),
            raw_header=regions.header.text or None,
            raw_y_axis=regions.y_axis.text or None,
            raw_footer=regions.footer.text or None,
            **extra,
        )
        return normalize_and_validate(candle)
