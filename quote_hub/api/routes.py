from fastapi import APIRouter, HTTPException, Request, WebSocket, WebSocketDisconnect

from quote_hub.errors import TransportUpgradeFailure
from quote_hub.schemas.quote import ChartBar
from quote_hub.services.subscriber import SubscriberConnection

router = APIRouter()


@router.get('/quote')
def get_quote(request: Request):
    fetcher = request.app.state.quote_fetcher
    try:
        snapshot = fetcher.fetch_now()
    except Exception as exc:
        print(f"[QUOTE][one_shot_error] error={exc!r}", flush=True)
        snapshot = fetcher.cached_snapshot()
        if snapshot is None:
            raise HTTPException(status_code=500, detail='QUOTE_UNAVAILABLE') from exc
    return snapshot.to_wire()


@router.put('/chart')
def replace_chart(bars: list[ChartBar], request: Request):
    feed = request.app.state.chart_feed
    feed.replace(bars)
    print(f"[CHART][replaced] bars={len(feed)}", flush=True)
    return {'bars': len(feed)}


@router.get('/metrics/hub')
def hub_metrics(request: Request):
    metrics = request.app.state.broadcast_hub.metrics()
    metrics.update(request.app.state.quote_fetcher.metrics())
    return metrics


@router.websocket('/stream')
async def quote_stream(websocket: WebSocket):
    hub = websocket.app.state.broadcast_hub
    try:
        conn = await SubscriberConnection.accept(websocket, send_timeout_sec=websocket.app.state.send_timeout_sec)
    except TransportUpgradeFailure as exc:
        # nothing registered yet, just drop the socket
        print(f"[HUB][upgrade_failed] error={exc}", flush=True)
        return

    try:
        await hub.register_connection(conn)
        while conn in hub.connections:
            message = await websocket.receive()
            if message['type'] == 'websocket.disconnect':
                break
            raw = message.get('text')
            if raw is None and message.get('bytes') is not None:
                raw = message['bytes'].decode('utf-8', errors='replace')
            await hub.handle_client_message(conn, raw)
    except (WebSocketDisconnect, RuntimeError) as exc:
        print(f"[HUB][receive_closed] connection_id={conn.connection_id} reason={exc!r}", flush=True)
    finally:
        await hub.remove_connection(conn)
        # covers a registration that failed before the hub tracked conn
        await conn.close()
