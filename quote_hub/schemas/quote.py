from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from quote_hub.schemas.signal import TradingSignal


class ChartBar(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float


class QuoteSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    price: str
    change: str
    change_percent: str
    volume: str
    update_time: datetime
    is_market_open: bool
    chart_data: list[ChartBar] | None = None
    signal: TradingSignal | None = None
    source: str = "taifex"

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
