from __future__ import annotations

import asyncio
import itertools
from typing import Any

from quote_hub.errors import SubscriberSendFailure, TransportUpgradeFailure

_ids = itertools.count(1)


class SubscriberConnection:
    """One downstream viewer: a WebSocket transport plus a liveness flag."""

    def __init__(self, websocket: Any, *, send_timeout_sec: float = 5.0) -> None:
        self.websocket = websocket
        self.connection_id = next(_ids)
        self.send_timeout_sec = send_timeout_sec
        self.is_alive = True
        self.closed = False

    @classmethod
    async def accept(cls, websocket: Any, *, send_timeout_sec: float = 5.0) -> "SubscriberConnection":
        try:
            await websocket.accept()
        except Exception as exc:
            raise TransportUpgradeFailure(f"websocket accept failed: {exc!r}") from exc
        return cls(websocket, send_timeout_sec=send_timeout_sec)

    async def send_json(self, payload: dict) -> None:
        if self.closed:
            raise SubscriberSendFailure(f"connection {self.connection_id} is closed")
        try:
            await asyncio.wait_for(self.websocket.send_json(payload), timeout=self.send_timeout_sec)
        except Exception as exc:
            raise SubscriberSendFailure(f"send to connection {self.connection_id} failed: {exc!r}") from exc

    async def probe(self) -> None:
        await self.send_json({"type": "ping"})

    async def send_pong(self) -> None:
        await self.send_json({"type": "pong"})

    def mark_alive(self) -> None:
        self.is_alive = True

    async def close(self, code: int = 1000) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await asyncio.wait_for(self.websocket.close(code=code), timeout=self.send_timeout_sec)
        except Exception as exc:
            # transport already gone or close handshake hung
            print(f"[HUB][close_skip] connection_id={self.connection_id} error={exc!r}", flush=True)

    def __repr__(self) -> str:
        return f"SubscriberConnection(id={self.connection_id}, alive={self.is_alive})"
