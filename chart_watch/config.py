"""Thresholds, weights and runtime settings shared by the pipeline stages."""

import logging
import os
from dataclasses import dataclass, fields

logger = logging.getLogger(__name__)

# ---------- Frame snapshot ----------
LOW_RES_WIDTH = 256
MID_RES_WIDTH = 512
MID_RES_JPEG_QUALITY = 75
THUMBNAIL_WIDTH = 320
THUMBNAIL_JPEG_QUALITY = 60

# ---------- Visual chart gate ----------
GATE_MIN_CONFIDENCE = 0.55
GATE_WEIGHTS = {"wick": 0.35, "grid": 0.20, "ink": 0.25, "axis": 0.20}
DARK_LUMA = 0.65  # pixels below this count as ink
AXIS_SIDE_MARGIN = 0.15

# ---------- Chart stabilizer ----------
STABILIZER_ALPHA = 0.35

# ---------- Candle chart detector ----------
DETECT_THRESHOLD = 0.55

# ---------- Platform adapters ----------
PLATFORM_MIN_CONFIDENCE = 0.7

# ---------- Candle gate ----------
GATE_STABLE_COUNT = 3
GATE_COOLDOWN_SECONDS = 30.0
GATE_WINDOW_SECONDS = 12.0

# ---------- OCR ----------
OCR_MIN_LINE_CONFIDENCE = 0.3

# ---------- Loop ----------
SAMPLE_INTERVAL_SECONDS = 1.0
PLAN_MOVE_TOLERANCE = 0.02

ENV_PREFIX = "CHART_WATCH_"


@dataclass(frozen=True)
class PipelineConfig:
    """Runtime knobs of one pipeline instance.

    Parameters
    ----------
    sample_interval : float
        Minimum gap in seconds between processed frames; faster frames are dropped.
    gate_min_confidence : float
        Visual gate / stabilizer threshold for "chart in view".
    stabilizer_alpha : float
        Exponential smoothing factor, clamped to [0.05, 0.95] by the stabilizer.
    stable_count : int
        Identical signatures in a row required by the candle gate.
    cooldown_seconds : float
        Window in which a re-stabilized identical signature is rejected.
    window_seconds : float
        Max age of candles buffered by the candle gate.
    ocr_engine : str
        'rapid', 'paddle' or 'tesseract'.
    dry_run : bool
        Log rows instead of handing them to the remote sink.
    store_path : str | None
        JSONL file for accepted candles; None disables the store.
    """

    sample_interval: float = SAMPLE_INTERVAL_SECONDS
    gate_min_confidence: float = GATE_MIN_CONFIDENCE
    stabilizer_alpha: float = STABILIZER_ALPHA
    stable_count: int = GATE_STABLE_COUNT
    cooldown_seconds: float = GATE_COOLDOWN_SECONDS
    window_seconds: float = GATE_WINDOW_SECONDS
    ocr_engine: str = "rapid"
    dry_run: bool = True
    store_path: str | None = None

    @classmethod
    def from_env(cls, environ=None) -> "PipelineConfig":
        """Build a config from ``CHART_WATCH_*`` variables (e.g. CHART_WATCH_SAMPLE_INTERVAL)."""
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            try:
                values[f.name] = _coerce(raw, f.default)
            except ValueError:
                logger.warning("Ignoring invalid %s%s=%r", ENV_PREFIX, f.name.upper(), raw)
        return cls(**values)


def _coerce(raw: str, default):
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in ("1", "true", "yes", "on"):
            return True
        if lowered in ("0", "false", "no", "off"):
            return False
        raise ValueError(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw or None
