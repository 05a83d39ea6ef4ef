from __future__ import annotations

from typing import Sequence

from quote_hub.errors import InsufficientData
from quote_hub.schemas.signal import IndicatorWindow

RSI_WINDOW = 15
SHORT_MA_PERIOD = 5
LONG_MA_PERIOD = 20
VOLUME_MA_PERIOD = 5


def moving_average(series: Sequence[float]) -> float:
    if not series:
        raise InsufficientData("moving average needs at least 1 value")
    return sum(series) / len(series)


def rsi(series: Sequence[float], window: int = RSI_WINDOW) -> float:
    """Relative strength index over the last ``window`` entries.

    Returns 100 when there is no loss in the window, flat series included.
    """
    if len(series) < 2:
        raise InsufficientData("rsi needs at least 2 values")

    recent = list(series)[-max(window, 2):]
    diffs = [b - a for a, b in zip(recent, recent[1:])]
    mean_gain = sum(d for d in diffs if d > 0) / len(diffs)
    mean_loss = sum(-d for d in diffs if d < 0) / len(diffs)

    if mean_loss == 0:
        return 100.0
    return 100.0 - 100.0 / (1.0 + mean_gain / mean_loss)


def calculate_indicators(prices: Sequence[float], volumes: Sequence[float]) -> IndicatorWindow:
    if len(prices) < 2:
        raise InsufficientData("indicator window needs at least 2 prices")
    if not volumes:
        raise InsufficientData("indicator window needs at least 1 volume")

    prices = list(prices)
    volumes = list(volumes)
    return IndicatorWindow(
        price=prices[-1],
        prev_price=prices[-2],
        ma5=moving_average(prices[-SHORT_MA_PERIOD:]),
        ma20=moving_average(prices[-LONG_MA_PERIOD:]),
        rsi=rsi(prices, RSI_WINDOW),
        volume=volumes[-1],
        avg_volume=moving_average(volumes[-VOLUME_MA_PERIOD:]),
    )
