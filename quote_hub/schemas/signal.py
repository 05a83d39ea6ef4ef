from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

SignalType = Literal["ENTRY", "EXIT", "HOLD"]
SignalStrength = Literal["strong", "moderate", "weak"]


class IndicatorWindow(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    price: float
    prev_price: float
    ma5: float
    ma20: float
    rsi: float
    volume: float
    avg_volume: float


class TradingSignal(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: SignalType
    strength: SignalStrength
    reason: str
    timestamp: datetime
