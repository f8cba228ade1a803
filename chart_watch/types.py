from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class AxisSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    UNKNOWN = "unknown"


class Trajectory(str, Enum):
    UP = "up"
    DOWN = "down"
    FLAT = "flat"
    VOLATILE = "volatile"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class NormRect:
    """Rectangle in unit coordinates (top-left origin, 0..1 on both axes)."""

    x: float
    y: float
    w: float
    h: float

    @property
    def max_x(self) -> float:
        return self.x + self.w

    @property
    def max_y(self) -> float:
        return self.y + self.h

    @property
    def mid_x(self) -> float:
        return self.x + self.w / 2

    @property
    def mid_y(self) -> float:
        return self.y + self.h / 2

    def clamped(self) -> "NormRect":
        """Clip to the unit square; width/height shrink to what is left."""
        x = min(max(self.x, 0.0), 1.0)
        y = min(max(self.y, 0.0), 1.0)
        w = min(max(self.w, 0.0), 1.0 - x)
        h = min(max(self.h, 0.0), 1.0 - y)
        return NormRect(x, y, w, h)

    def lerp(self, other: "NormRect", alpha: float) -> "NormRect":
        """Component-wise interpolation: ``alpha`` weights ``other``."""

        def mix(a: float, b: float) -> float:
            return alpha * b + (1 - alpha) * a

        return NormRect(
            mix(self.x, other.x),
            mix(self.y, other.y),
            mix(self.w, other.w),
            mix(self.h, other.h),
        )

    def to_xyxy(self, width: int, height: int) -> tuple[int, int, int, int]:
        """Pixel box (x1, y1, x2, y2) for an image of the given size."""
        x1 = int(round(self.x * width))
        y1 = int(round(self.y * height))
        x2 = int(round(self.max_x * width))
        y2 = int(round(self.max_y * height))
        return x1, y1, x2, y2

    def as_tuple(self) -> tuple[float, float, float, float]:
        return self.x, self.y, self.w, self.h


@dataclass(frozen=True)
class ChartGateResult:
    is_chart: bool
    confidence: float
    chart_box: NormRect | None
    axis_side: AxisSide
    signals: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class CropPlan:
    header: NormRect
    y_axis: NormRect
    footer: NormRect
    body: NormRect

    def replace_header(self, header: NormRect) -> "CropPlan":
        return CropPlan(header=header, y_axis=self.y_axis, footer=self.footer, body=self.body)


@dataclass(frozen=True)
class OcrLine:
    text: str
    conf: float
    box: NormRect


@dataclass(frozen=True)
class OcrResult:
    """Recognized lines of one image (or one crop of it).

    Attributes
    ----------
    text : str
        Lines above the engine's minimum confidence, joined with spaces.
    confidence : float
        Mean confidence of the kept lines (0 when nothing was kept).
    lines : tuple[OcrLine, ...]
        The kept lines with their boxes, normalized to the image.
    """

    text: str
    confidence: float
    lines: tuple[OcrLine, ...] = ()

    @classmethod
    def empty(cls) -> "OcrResult":
        return cls(text="", confidence=0.0, lines=())

    @classmethod
    def from_lines(cls, lines, min_confidence: float = 0.0) -> "OcrResult":
        kept = tuple(l for l in lines if l.text.strip() and l.conf >= min_confidence)
        if not kept:
            return cls.empty()
        text = " ".join(l.text.strip() for l in kept)
        conf = sum(l.conf for l in kept) / len(kept)
        return cls(text=text, confidence=conf, lines=kept)


@dataclass(frozen=True)
class RegionOcrBundle:
    header: OcrResult
    y_axis: OcrResult
    footer: OcrResult

    @property
    def combined_text(self) -> str:
        parts = [r.text for r in (self.header, self.y_axis, self.footer) if r.text]
        return " ".join(parts)

    @property
    def average_confidence(self) -> float:
        confs = [r.confidence for r in (self.header, self.y_axis, self.footer) if r.text]
        if not confs:
            return 0.0
        return sum(confs) / len(confs)


@dataclass(frozen=True)
class TrajectoryResult:
    trajectory: Trajectory
    slope_metric: float | None
    confidence: float


@dataclass(frozen=True)
class CandleObject:
    """Structured observation of the chart currently in view.

    Attributes
    ----------
    ticker : str | None
        Symbol read from the header (e.g. 'AAPL', 'BTCUSD').
    timeframe : str | None
        Lower-case interval code such as '1h' or '1d'.
    source_app : str | None
        Charting platform hint (e.g. 'TradingView').
    price_low, price_high : float | None
        Visible price range read from the Y axis.
    time_start, time_end : str | None
        First and last HH:MM labels on the time axis.
    date_start, date_end : str | None
        First and last date labels on the time axis.
    trajectory : Trajectory
        Coarse direction of the visible price movement.
    slope_metric : float | None
        Normalized regression slope in [-1, 1] when measured from pixels.
    confidence : float
        Detection confidence in [0, 1].
    raw_snippet : str
        First 180 characters of the region OCR text, for debugging.
    """

    ticker: str | None
    timeframe: str | None
    source_app: str | None
    price_low: float | None
    price_high: float | None
    time_start: str | None
    time_end: str | None
    date_start: str | None
    date_end: str | None
    trajectory: Trajectory
    slope_metric: float | None
    confidence: float
    raw_snippet: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    raw_header: str | None = None
    raw_y_axis: str | None = None
    raw_footer: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "ticker": self.ticker,
            "timeframe": self.timeframe,
            "source_app": self.source_app,
            "price_low": self.price_low,
            "price_high": self.price_high,
            "time_start": self.time_start,
            "time_end": self.time_end,
            "date_start": self.date_start,
            "date_end": self.date_end,
            "trajectory": self.trajectory.value,
            "slope_metric": self.slope_metric,
            "confidence": round(self.confidence, 4),
            "raw_snippet": self.raw_snippet,
            "raw_header": self.raw_header,
            "raw_y_axis": self.raw_y_axis,
            "raw_footer": self.raw_footer,
        }


@dataclass(frozen=True)
class StockObservation:
    ticker: str
    price: float
    change: str
    confidence: float
    raw_snippet: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
