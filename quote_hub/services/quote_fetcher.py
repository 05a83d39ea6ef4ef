from __future__ import annotations

import asyncio
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from quote_hub.errors import UpstreamUnavailable
from quote_hub.schemas.quote import QuoteSnapshot
from quote_hub.services.chart_feed import ChartFeed
from quote_hub.services.market_hours import is_market_open, market_now
from quote_hub.services.signal_engine import evaluate_series

CHANGE_PERCENT_SENTINEL = "0"


def compute_change_percent(price: str, change: str) -> str:
    """Percent change against the previous close (price - change), 2 decimals."""
    try:
        diff = Decimal(str(change))
        base = Decimal(str(price)) - diff
    except (InvalidOperation, ValueError):
        return CHANGE_PERCENT_SENTINEL
    if not base.is_finite() or base == 0:
        return CHANGE_PERCENT_SENTINEL
    pct = (diff / base * 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{pct:.2f}"


def default_snapshot(now: datetime) -> QuoteSnapshot:
    return QuoteSnapshot(
        price="---",
        change="0",
        change_percent=CHANGE_PERCENT_SENTINEL,
        volume="0",
        update_time=now,
        is_market_open=False,
        source="default",
    )


class QuoteFetcher:
    """Single-contract quote fetch with last-known-good fallback."""

    def __init__(
        self,
        *,
        rest_client,
        chart_feed: ChartFeed | None = None,
        market_open_checker: Callable[[datetime], bool] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rest_client = rest_client
        self.chart_feed = chart_feed
        self.market_open_checker = market_open_checker or is_market_open
        self.clock = clock or market_now
        self.last_known: QuoteSnapshot | None = None

        self.fetch_count = 0
        self.success_count = 0
        self.fallback_count = 0
        self.last_error: str | None = None

    def _build_snapshot(self, record: dict, now: datetime) -> QuoteSnapshot:
        price = str(record.get("CLastPrice") or "---")
        change = str(record.get("CDiff") or "0")
        volume = str(record.get("CTotalVolume") or "0")

        chart_data = None
        signal = None
        bars = self.chart_feed.bars() if self.chart_feed is not None else []
        if bars:
            chart_data = bars
            signal = evaluate_series([bar.close for bar in bars], [bar.volume for bar in bars], now)

        return QuoteSnapshot(
            price=price,
            change=change,
            change_percent=compute_change_percent(price, change),
            volume=volume,
            update_time=now,
            is_market_open=self.market_open_checker(now),
            chart_data=chart_data,
            signal=signal,
            source="taifex",
        )

    def cached_snapshot(self) -> QuoteSnapshot | None:
        if self.last_known is None:
            return None
        return self.last_known.model_copy(update={"update_time": self.clock(), "source": "fallback"})

    def _fallback(self, now: datetime) -> QuoteSnapshot:
        self.fallback_count += 1
        if self.last_known is None:
            return default_snapshot(now)
        return self.last_known.model_copy(update={"update_time": now, "source": "fallback"})

    def fetch_now(self) -> QuoteSnapshot:
        now = self.clock()
        self.fetch_count += 1
        try:
            record = self.rest_client.get_quote_record(now)
        except UpstreamUnavailable as exc:
            self.last_error = str(exc)
            print(f"[QUOTE][fetch_fallback] reason={exc} has_last_known={self.last_known is not None}", flush=True)
            return self._fallback(now)

        snapshot = self._build_snapshot(record, now)
        self.last_known = snapshot
        self.success_count += 1
        self.last_error = None
        return snapshot

    async def fetch(self) -> QuoteSnapshot:
        return await asyncio.to_thread(self.fetch_now)

    def metrics(self) -> dict[str, int | str | None]:
        return {
            "fetch_count": self.fetch_count,
            "fetch_success_count": self.success_count,
            "fetch_fallback_count": self.fallback_count,
            "fetch_last_error": self.last_error,
        }
