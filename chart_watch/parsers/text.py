import re

from ..types import OcrLine, OcrResult, RegionOcrBundle, StockObservation, Trajectory

# ---------- Patterns ----------
_TICKER_RE = re.compile(r"\b([A-Z]{1,8}(?:\.[A-Z]{1,2})?)\b")  # e.g., AAPL, F, BRK.B
_PRICE_RE = re.compile(r"(?<![\d.,])\$?\s*(\d{1,3}(?:,\d{3})+(?:\.\d{1,4})?|\d+(?:\.\d{1,4})?)")
_CHANGE_RE = re.compile(r"([+\-−])\s*(\d+(?:\.\d{1,2})?)\s*(%?)")
_TIMEFRAME_RE = re.compile(
    r"\b(1m|3m|5m|10m|15m|30m|45m|1h|2h|4h|6h|8h|12h|1d|3d|1w)\b", re.I
)
_TIME_LABEL_RE = re.compile(r"\b(?:[01]?\d|2[0-3]):[0-5]\d\b")
_DATE_RES = [
    re.compile(
        r"\b(?:Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?|"
        r"Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?)"
        r"\s+\d{1,2}(?:,?\s*\d{2,4})?\b",
        re.I,
    ),
    re.compile(r"\b\d{1,2}/\d{1,2}(?:/\d{2,4})?\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
]
_HIGH_LOW_RE = re.compile(r"\b(HIGH|LOW)\b")

MAX_PRICE = 10_000_000
HIGH_LOW_DISTANCE = 40
_SUFFIX_MARKERS = set("%KMBkmb")

UP_INDICATORS = ["UP", "▲", "△", "↑", "GAIN", "GREEN", "BULL"]
DOWN_INDICATORS = ["DOWN", "▼", "▽", "↓", "LOSS", "RED", "BEAR"]
VOLATILE_INDICATORS = ["VOLATILE", "CHOP", "SPIKE", "WHIPSAW"]
FLAT_INDICATORS = ["SIDEWAYS", "RANGE"]
CHART_KEYWORDS = ["OPEN", "HIGH", "LOW", "CLOSE", "OHLC", "VOLUME", "CHART", "CANDLE", "INDICATOR"]

APP_HINTS = {
    "Kraken": ["KRAKEN"],
    "Coinbase": ["COINBASE"],
    "E*TRADE": ["E*TRADE", "ETRADE"],
    "TradingView": ["TRADINGVIEW", "TV"],
}

FINANCE_STOPLIST = {
    # currencies, venues
    "USD", "EUR", "GBP", "JPY", "NYSE", "NASDAQ", "DOW", "ARCA", "CBOE",
    # chart vocabulary
    "OPEN", "HIGH", "LOW", "CLOSE", "OHLC", "VOL", "VOLUME", "CHART", "TIME",
    "CANDLE", "INDICATOR", "PRICE", "CHANGE",
    # platforms
    "KRAKEN", "COINBASE", "TRADINGVIEW", "ETRADE", "TV",
    # direction words
    "UP", "DOWN", "GAIN", "LOSS", "GREEN", "RED", "BULL", "BEAR",
    # common English
    "THE", "AND", "FOR", "ARE", "BUT", "NOT", "YOU", "ALL", "CAN", "HER", "WAS",
    "ONE", "OUR", "OUT", "DAY", "GET", "HAS", "HIM", "HIS", "HOW", "ITS", "MAY",
    "NEW", "NOW", "OLD", "SEE", "WAY", "WHO", "DID", "USA", "CEO", "CFO",
}


def _contains_indicator(text: str, indicator: str) -> bool:
    if indicator.isalpha():
        return re.search(rf"\b{re.escape(indicator)}\b", text) is not None
    return indicator in text


def count_hits(text: str, words) -> int:
    return sum(1 for w in words if _contains_indicator(text, w))


# ---------- Tokens ----------
def is_timeframe_token(token: str) -> bool:
    return _TIMEFRAME_RE.fullmatch(token) is not None


def extract_ticker(text: str, allow_single_letter: bool = True) -> str | None:
    """First ticker-like token that is not a stop word or timeframe."""
    if not text:
        return None
    for m in _TICKER_RE.finditer(text.upper()):
        token = m.group(1)
        if token in FINANCE_STOPLIST or is_timeframe_token(token):
            continue
        if len(token) == 1 and not allow_single_letter:
            continue
        return token
    return None


def extract_timeframe(text: str) -> str | None:
    m = _TIMEFRAME_RE.search(text or "")
    return m.group(1).lower() if m else None


def extract_source_app(text: str) -> str | None:
    upper = (text or "").upper()
    for app, hints in APP_HINTS.items():
        if any(_contains_indicator(upper, h) for h in hints):
            return app
    return None


# ---------- Prices ----------
def price_matches(text: str) -> list[tuple[float, int, int]]:
    """All plausible prices as (value, start, end) of the digits."""
    out = []
    for m in _PRICE_RE.finditer(text or ""):
        try:
            value = float(m.group(1).replace(",", ""))
        except ValueError:
            continue
        if 0 < value < MAX_PRICE:
            out.append((value, m.start(1), m.end(1)))
    return out


def _near_suffix_or_colon(text: str, start: int, end: int) -> bool:
    before = text[start - 1] if start > 0 else ""
    after = text[end] if end < len(text) else ""
    if before == ":" or after == ":":
        return True
    return before in _SUFFIX_MARKERS or after in _SUFFIX_MARKERS


def filtered_price_matches(text: str) -> list[tuple[float, int, int]]:
    """Prices minus time labels (HH:MM) and percent/volume figures (1.2%, 3.4K)."""
    text = text or ""
    times = [(m.start(), m.end()) for m in _TIME_LABEL_RE.finditer(text)]
    out = []
    for value, start, end in price_matches(text):
        if any(max(start, ts) < min(end, te) for ts, te in times):
            continue
        if _near_suffix_or_colon(text, start, end):
            continue
        out.append((value, start, end))
    return out


def extract_prices(text: str) -> list[float]:
    return [v for v, _, _ in filtered_price_matches(text)]


def extract_axis_prices(ocr: OcrResult) -> list[float]:
    """Prices on an axis crop, read line by line so neighbours never fuse."""
    if ocr.lines:
        prices = []
        for line in ocr.lines:
            prices.extend(extract_prices(line.text))
        if prices:
            return prices
    return extract_prices(ocr.text)


def infer_range(prices) -> tuple[float, float] | None:
    prices = list(prices)
    if not prices:
        return None
    return min(prices), max(prices)


def range_from_high_low(text: str) -> tuple[float, float] | None:
    """Pair HIGH/LOW keywords with the nearest price after them (<= 40 chars)."""
    upper = (text or "").upper()
    matches = filtered_price_matches(upper)
    high = low = None
    for kw in _HIGH_LOW_RE.finditer(upper):
        start = kw.end()
        nearby = [m for m in matches if start < m[1] and m[1] - start <= HIGH_LOW_DISTANCE]
        if not nearby:
            continue
        value = min(nearby, key=lambda m: m[1])[0]
        if kw.group(1) == "HIGH":
            high = value
        else:
            low = value
    if high is None or low is None:
        return None
    return min(high, low), max(high, low)


def extract_change(text: str) -> str | None:
    m = _CHANGE_RE.search(text or "")
    if m:
        sign = "-" if m.group(1) == "−" else m.group(1)
        return f"{sign}{m.group(2)}{m.group(3)}"
    upper = (text or "").upper()
    if count_hits(upper, UP_INDICATORS):
        return "UP"
    if count_hits(upper, DOWN_INDICATORS):
        return "DOWN"
    return None


# ---------- Axis labels ----------
def _unique(labels):
    seen = set()
    out = []
    for label in labels:
        label = label.strip()
        key = label.upper()
        if label and key not in seen:
            seen.add(key)
            out.append(label)
    return out


def extract_time_labels(text: str) -> list[str]:
    return _unique(m.group(0) for m in _TIME_LABEL_RE.finditer(text or ""))


def extract_date_labels(text: str) -> list[str]:
    labels = []
    for rx in _DATE_RES:
        labels.extend(m.group(0) for m in rx.finditer(text or ""))
    return _unique(labels)


def _labels_by_x(lines, patterns, lower_band_only: bool) -> list[str]:
    hits = []
    for line in lines:
        if lower_band_only and line.box.mid_y <= 0.75:
            continue
        for rx in patterns:
            for m in rx.finditer(line.text):
                # keep left-to-right order inside one line as well
                offset = m.start() / max(len(line.text), 1) * line.box.w
                hits.append((line.box.x + offset, m.group(0)))
    hits.sort(key=lambda h: h[0])
    return _unique(label for _, label in hits)


def time_labels_from_lines(lines, lower_band_only: bool = False) -> list[str]:
    return _labels_by_x(lines, [_TIME_LABEL_RE], lower_band_only)


def date_labels_from_lines(lines, lower_band_only: bool = False) -> list[str]:
    return _labels_by_x(lines, _DATE_RES, lower_band_only)


# ---------- Trajectory ----------
def trajectory_from_text(text: str) -> Trajectory:
    upper = (text or "").upper()
    # only signed percentages; bare hyphens show up in dates
    for m in _CHANGE_RE.finditer(upper):
        if m.group(3) and float(m.group(2)) > 0:
            return Trajectory.DOWN if m.group(1) in ("-", "−") else Trajectory.UP
    if count_hits(upper, UP_INDICATORS):
        return Trajectory.UP
    if count_hits(upper, DOWN_INDICATORS):
        return Trajectory.DOWN
    if count_hits(upper, VOLATILE_INDICATORS):
        return Trajectory.VOLATILE
    if count_hits(upper, FLAT_INDICATORS):
        return Trajectory.FLAT
    return Trajectory.UNKNOWN


# ---------- Regions ----------
def split_regions(ocr: OcrResult) -> RegionOcrBundle:
    """Split one whole-frame OCR pass into header / axis / footer buckets.

    Boxes are top-left origin: header is the top 22%, footer the bottom 22%,
    the axis bucket holds text in the outer 20% on either side.
    """
    if not ocr.lines:
        return RegionOcrBundle(header=ocr, y_axis=OcrResult.empty(), footer=OcrResult.empty())

    header: list[OcrLine] = []
    footer: list[OcrLine] = []
    axis: list[OcrLine] = []
    for line in ocr.lines:
        if line.box.mid_y < 0.22:
            header.append(line)
        if line.box.mid_y > 0.78:
            footer.append(line)
        if line.box.mid_x < 0.20 or line.box.mid_x > 0.80:
            axis.append(line)

    return RegionOcrBundle(
        header=OcrResult.from_lines(header),
        y_axis=OcrResult.from_lines(axis),
        footer=OcrResult.from_lines(footer),
    )


# ---------- Quotes ----------
def parse_quote(text: str, confidence: float = 0.0) -> StockObservation | None:
    """Ticker, price and change from a quote line such as 'aapl 173.24 +1.2%'."""
    if not text:
        return None
    ticker = extract_ticker(text)
    prices = extract_prices(text)
    if ticker is None or not prices:
        return None
    snippet = text[:100].replace("\n", " ").strip()
    return StockObservation(
        ticker=ticker,
        price=prices[0],
        change=extract_change(text) or "N/A",
        confidence=confidence,
        raw_snippet=snippet,
    )
