from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from quote_hub.api.routes import router
from quote_hub.config.settings import Settings, get_settings
from quote_hub.integrations.taifex_rest import TaifexQuoteClient
from quote_hub.services.broadcast_hub import BroadcastHub
from quote_hub.services.chart_feed import ChartFeed
from quote_hub.services.quote_fetcher import QuoteFetcher


def bind_runtime(app: FastAPI, settings: Settings) -> None:
    """Build the process-wide fetcher and hub once and attach them to the app."""
    if getattr(app.state, "broadcast_hub", None) is not None:
        return

    chart_feed = ChartFeed(max_bars=settings.CHART_MAX_BARS)
    fetcher = QuoteFetcher(
        rest_client=TaifexQuoteClient(
            symbol=settings.QUOTE_SYMBOL,
            symbol_id=settings.QUOTE_SYMBOL_ID,
            url=settings.QUOTE_UPSTREAM_URL,
            timeout=settings.QUOTE_HTTP_TIMEOUT_SEC,
        ),
        chart_feed=chart_feed,
    )
    app.state.chart_feed = chart_feed
    app.state.quote_fetcher = fetcher
    app.state.send_timeout_sec = settings.HUB_SEND_TIMEOUT_SEC
    app.state.broadcast_hub = BroadcastHub(
        fetcher=fetcher,
        poll_interval_sec=settings.QUOTE_POLL_INTERVAL_SEC,
        heartbeat_interval_sec=settings.HUB_HEARTBEAT_INTERVAL_SEC,
    )
    print(
        f"[HUB][runtime_bound] symbol={settings.QUOTE_SYMBOL} symbol_id={settings.QUOTE_SYMBOL_ID} "
        f"poll_interval_sec={settings.QUOTE_POLL_INTERVAL_SEC}",
        flush=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        yield
    finally:
        await app.state.broadcast_hub.shutdown()
        print("[HUB][shutdown] subscribers closed", flush=True)


app = FastAPI(title="TX Futures Quote Hub", version="0.1.0", lifespan=lifespan)
app.include_router(router, prefix="/v1")

bind_runtime(app, get_settings())
