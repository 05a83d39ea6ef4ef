import os
from functools import lru_cache

from pydantic import BaseModel, Field

_DEFAULT_UPSTREAM_URL = "https://mis.taifex.com.tw/futures/api/getQuoteList"


class Settings(BaseModel):
    QUOTE_UPSTREAM_URL: str = _DEFAULT_UPSTREAM_URL
    QUOTE_SYMBOL: str = "TXF"
    QUOTE_SYMBOL_ID: str = "TXFB5-F"
    QUOTE_POLL_INTERVAL_SEC: float = Field(default=1.0, gt=0)
    QUOTE_HTTP_TIMEOUT_SEC: float = Field(default=5.0, gt=0)
    HUB_HEARTBEAT_INTERVAL_SEC: float = Field(default=30.0, gt=0)
    HUB_SEND_TIMEOUT_SEC: float = Field(default=5.0, gt=0)
    CHART_MAX_BARS: int = Field(default=500, ge=1)

    @classmethod
    def from_env(cls) -> "Settings":
        # unset variables fall back to model defaults
        raw = {name: os.getenv(name) for name in cls.model_fields}
        return cls.model_validate({k: v.strip() for k, v in raw.items() if v is not None and v.strip()})


@lru_cache
def get_settings() -> Settings:
    return Settings.from_env()
