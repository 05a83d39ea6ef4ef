from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

import requests

from quote_hub.errors import NoMatchingRecord, UpstreamUnavailable
from quote_hub.services.market_hours import market_now


class TaifexQuoteClient:
    """Minimal TAIFEX MIS quote-list client for a single futures contract."""

    DEFAULT_URL = "https://mis.taifex.com.tw/futures/api/getQuoteList"

    _HEADERS = {
        "Accept": "application/json",
        "Accept-Language": "zh-TW",
        "Content-Type": "application/json",
        "User-Agent": (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        "Origin": "https://mis.taifex.com.tw",
        "Referer": "https://mis.taifex.com.tw/futures/RegularSession/EquityIndices/FuturesDomestic/",
    }

    def __init__(
        self,
        *,
        symbol: str = "TXF",
        symbol_id: str = "TXFB5-F",
        url: Optional[str] = None,
        session: Optional[Any] = None,
        timeout: float = 5,
    ) -> None:
        self.symbol = symbol
        self.symbol_id = symbol_id
        self.url = url or self.DEFAULT_URL
        self.session = session or requests
        self.timeout = timeout

    def build_request_body(self, now: datetime) -> Dict[str, str]:
        return {
            "MarketType": "0",
            "SymbolType": "F",
            "Symbol": self.symbol,
            "Interval": "0",
            "Row": "1",
            "Column": "2",
            "Date": now.strftime("%Y%m%d"),
        }

    def get_quote_record(self, now: datetime | None = None) -> Dict[str, Any]:
        """POST one quote-list request and return the tracked contract's record."""
        body = self.build_request_body(now or market_now())
        try:
            response = self.session.post(
                self.url,
                headers=dict(self._HEADERS),
                json=body,
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise UpstreamUnavailable(f"quote request failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamUnavailable("quote response is not valid JSON") from exc

        if not isinstance(payload, dict):
            raise UpstreamUnavailable("quote response must be an object")
        rt_data = payload.get("RtData")
        quote_list = rt_data.get("QuoteList") if isinstance(rt_data, dict) else None
        if not isinstance(quote_list, list):
            raise UpstreamUnavailable("quote response missing RtData.QuoteList")

        for item in quote_list:
            if isinstance(item, dict) and item.get("SymbolID") == self.symbol_id:
                return item
        raise NoMatchingRecord(self.symbol_id)
