from __future__ import annotations

from datetime import datetime
from typing import Callable, NamedTuple, Sequence

from quote_hub.errors import InsufficientData
from quote_hub.schemas.signal import IndicatorWindow, TradingSignal
from quote_hub.services.indicators import calculate_indicators
from quote_hub.services.market_hours import market_now

HOLD_REASON = "no clear entry or exit signal"


class _Rule(NamedTuple):
    type: str
    strength: str
    reason: str
    condition: Callable[[IndicatorWindow], bool]


# table order is significant: see evaluate()
_RULES: tuple[_Rule, ...] = (
    _Rule(
        "ENTRY",
        "strong",
        "breakout above 20-period average with rising 5-period average",
        lambda w: w.price > w.ma20 and w.ma5 > w.ma20 and w.rsi < 70,
    ),
    _Rule(
        "ENTRY",
        "strong",
        "price rise with volume surge",
        lambda w: w.price > w.prev_price and w.volume > w.avg_volume * 1.5,
    ),
    _Rule(
        "ENTRY",
        "moderate",
        "oversold rebound above 5-period average",
        lambda w: w.rsi < 30 and w.price > w.ma5,
    ),
    _Rule(
        "EXIT",
        "strong",
        "breakdown below 20-period average with falling 5-period average",
        lambda w: w.price < w.ma20 and w.ma5 < w.ma20,
    ),
    _Rule(
        "EXIT",
        "strong",
        "overbought reversal",
        lambda w: w.rsi > 70 and w.price < w.prev_price,
    ),
    _Rule(
        "EXIT",
        "moderate",
        "breakdown below 5-period average with volume",
        lambda w: w.price < w.ma5 and w.volume > w.avg_volume * 1.3,
    ),
)


def hold_signal(now: datetime | None = None) -> TradingSignal:
    return TradingSignal(type="HOLD", strength="moderate", reason=HOLD_REASON, timestamp=now or market_now())


def evaluate(window: IndicatorWindow, now: datetime | None = None) -> TradingSignal:
    """Classify an indicator window into an entry/exit/hold signal.

    Every rule is evaluated. The first matching strong rule wins; without
    one, the first match in table order wins regardless of strength.
    """
    matched = [rule for rule in _RULES if rule.condition(window)]
    if not matched:
        return hold_signal(now)

    selected = next((rule for rule in matched if rule.strength == "strong"), matched[0])
    return TradingSignal(
        type=selected.type,
        strength=selected.strength,
        reason=selected.reason,
        timestamp=now or market_now(),
    )


def evaluate_series(
    prices: Sequence[float],
    volumes: Sequence[float],
    now: datetime | None = None,
) -> TradingSignal:
    try:
        window = calculate_indicators(prices, volumes)
    except InsufficientData:
        return hold_signal(now)
    return evaluate(window, now)
