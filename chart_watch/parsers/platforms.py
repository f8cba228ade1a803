"""Per-platform tweaks once a charting app is recognized from header text."""

import re

from ..config import PLATFORM_MIN_CONFIDENCE
from ..types import CropPlan, NormRect


def _has_word(text: str, word: str) -> bool:
    return re.search(rf"(?<![A-Z0-9]){re.escape(word)}(?![A-Z0-9])", text) is not None


def _grow_header(plan: CropPlan, extra: float, max_height: float) -> CropPlan:
    h = plan.header
    header = NormRect(h.x, max(0.0, h.y - extra), h.w, min(h.h + extra, max_height))
    return plan.replace_header(header.clamped())


class PlatformAdapter:
    """Base adapter: detects nothing and changes nothing."""

    name = "generic"

    def detect(self, header_text: str, full_text: str) -> tuple[str, float] | None:
        return None

    def refine_crop_plan(self, plan: CropPlan, frame_size=None) -> CropPlan:
        return plan

    def augment_parsing(self, ticker, timeframe, header_text: str = ""):
        return ticker, timeframe


class KrakenAdapter(PlatformAdapter):
    name = "Kraken"

    def detect(self, header_text, full_text):
        upper = f"{header_text} {full_text}".upper()
        if "KRAKEN" in upper:
            return "KRAKEN", 0.9
        if "XBT/" in upper:
            return "XBT/", 0.7
        return None

    def refine_crop_plan(self, plan, frame_size=None):
        # taller header
        return _grow_header(plan, 0.02, 0.25)

    def augment_parsing(self, ticker, timeframe, header_text=""):
        if ticker is None:
            return ticker, timeframe
        return ticker.replace("XBT", "BTC"), timeframe


class CoinbaseAdapter(PlatformAdapter):
    name = "Coinbase"

    def detect(self, header_text, full_text):
        upper = f"{header_text} {full_text}".upper()
        if "COINBASE" in upper:
            return "COINBASE", 0.9
        if _has_word(upper, "CB"):
            return "CB", 0.5
        return None

    def augment_parsing(self, ticker, timeframe, header_text=""):
        if ticker is None:
            return ticker, timeframe
        return ticker.replace("-", "").replace("/", ""), timeframe


class TradingViewAdapter(PlatformAdapter):
    name = "TradingView"

    def detect(self, header_text, full_text):
        upper = f"{header_text} {full_text}".upper()
        if "TRADINGVIEW" in upper:
            return "TRADINGVIEW", 0.9
        if _has_word(upper, "TV"):
            return "TV", 0.5
        return None

    def refine_crop_plan(self, plan, frame_size=None):
        # toolbar sits above the symbol line
        return _grow_header(plan, 0.03, 0.28)


class AdapterRegistry:
    def __init__(self, adapters=None, min_confidence: float = PLATFORM_MIN_CONFIDENCE):
        if adapters is None:
            adapters = [KrakenAdapter(), CoinbaseAdapter(), TradingViewAdapter()]
        self.adapters = list(adapters)
        self.min_confidence = min_confidence

    def detect(self, header_text: str, full_text: str):
        """Best (adapter, confidence) at or above the threshold, else None."""
        best = None
        for adapter in self.adapters:
            hit = adapter.detect(header_text or "", full_text or "")
            if hit is None:
                continue
            _, conf = hit
            if best is None or conf > best[1]:
                best = (adapter, conf)
        if best is None or best[1] < self.min_confidence:
            return None
        return best
