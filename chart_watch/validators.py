from dataclasses import replace

from .parsers.text import MAX_PRICE
from .types import CandleObject

NAME_TO_TICKER = {"SPDR S&P 500 ETF TRUST": "SPY", "BITCOIN": "BTC", "ETHEREUM": "ETH"}


def normalize_and_validate(candle: CandleObject) -> CandleObject:
    ticker = candle.ticker
    if ticker and ticker.upper() in NAME_TO_TICKER:
        ticker = NAME_TO_TICKER[ticker.upper()]

    low, high = candle.price_low, candle.price_high
    if low is not None and high is not None:
        if low > high:
            low, high = high, low
        # coarse price sanity; a single axis label is not a range
        if not (0 < low < high < MAX_PRICE):
            low = high = None
    else:
        low = high = None

    return replace(
        candle,
        ticker=ticker,
        price_low=low,
        price_high=high,
        confidence=min(max(candle.confidence, 0.0), 1.0),
    )
