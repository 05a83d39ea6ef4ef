from __future__ import annotations

import asyncio
import json

from quote_hub.errors import SubscriberSendFailure
from quote_hub.services.quote_fetcher import QuoteFetcher
from quote_hub.services.subscriber import SubscriberConnection

STATE_IDLE = "IDLE"
STATE_ACTIVE = "ACTIVE"


class BroadcastHub:
    """Single upstream poll loop fanned out to every registered subscriber.

    All registry mutations and broadcasts run on the event loop that owns
    the hub. The poll and heartbeat tasks are armed by the first
    registration and disarmed when the registry empties.
    """

    def __init__(
        self,
        *,
        fetcher: QuoteFetcher,
        poll_interval_sec: float = 1.0,
        heartbeat_interval_sec: float = 30.0,
    ) -> None:
        self.fetcher = fetcher
        self.poll_interval_sec = poll_interval_sec
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self._connections: set[SubscriberConnection] = set()
        self._pending: set[SubscriberConnection] = set()
        self._poll_task: asyncio.Task | None = None
        self._heartbeat_task: asyncio.Task | None = None

        self.ticks = 0
        self.heartbeats = 0
        self.pushes = 0
        self.send_failures = 0
        self.heartbeat_evictions = 0

    @property
    def state(self) -> str:
        return STATE_ACTIVE if self._connections else STATE_IDLE

    @property
    def connections(self) -> frozenset[SubscriberConnection]:
        return frozenset(self._connections)

    @property
    def timers_armed(self) -> bool:
        return self._poll_task is not None or self._heartbeat_task is not None

    async def register_connection(self, conn: SubscriberConnection) -> None:
        if conn in self._connections or conn in self._pending:
            return
        # pending connections get their one-shot push before joining tick targets
        self._pending.add(conn)
        try:
            snapshot = await self.fetcher.fetch()
        except Exception as exc:
            print(f"[HUB][initial_fetch_error] connection_id={conn.connection_id} error={exc!r}", flush=True)
            await self.remove_connection(conn)
            return
        if conn in self._pending:
            await self._push(conn, snapshot.to_wire())
        if conn not in self._pending:
            return

        self._pending.discard(conn)
        self._connections.add(conn)
        print(f"[HUB][subscriber_added] connection_id={conn.connection_id} count={len(self._connections)}", flush=True)
        self._arm()

    async def remove_connection(self, conn: SubscriberConnection) -> None:
        if conn in self._pending:
            self._pending.discard(conn)
            print(f"[HUB][subscriber_dropped_pending] connection_id={conn.connection_id}", flush=True)
            await conn.close()
            return
        if conn not in self._connections:
            return
        self._connections.discard(conn)
        print(
            f"[HUB][subscriber_removed] connection_id={conn.connection_id} count={len(self._connections)}",
            flush=True,
        )
        await conn.close()
        if not self._connections:
            self._disarm()

    async def on_tick(self) -> None:
        if not self._connections:
            return
        self.ticks += 1
        snapshot = await self.fetcher.fetch()
        payload = snapshot.to_wire()
        targets = list(self._connections)
        await asyncio.gather(*(self._push(conn, payload) for conn in targets))

    async def on_heartbeat(self) -> None:
        self.heartbeats += 1
        for conn in list(self._connections):
            if not conn.is_alive:
                self.heartbeat_evictions += 1
                print(f"[HUB][heartbeat_timeout] connection_id={conn.connection_id}", flush=True)
                await self.remove_connection(conn)

        targets = list(self._connections)
        for conn in targets:
            conn.is_alive = False
        await asyncio.gather(*(self._probe(conn) for conn in targets))

    async def handle_client_message(self, conn: SubscriberConnection, raw: str | bytes) -> None:
        # any inbound frame proves the subscriber is still there
        conn.mark_alive()
        try:
            message = json.loads(raw)
        except (TypeError, ValueError) as exc:
            print(f"[HUB][client_message_skip] connection_id={conn.connection_id} reason={exc}", flush=True)
            return
        if not isinstance(message, dict):
            print(f"[HUB][client_message_skip] connection_id={conn.connection_id} reason=not_an_object", flush=True)
            return

        msg_type = message.get("type")
        if msg_type == "ping":
            try:
                await conn.send_pong()
            except SubscriberSendFailure as exc:
                await self._drop(conn, exc)
        elif msg_type != "pong":
            print(f"[HUB][client_message_skip] connection_id={conn.connection_id} type={msg_type!r}", flush=True)

    async def shutdown(self) -> None:
        tasks = [task for task in (self._poll_task, self._heartbeat_task) if task is not None]
        for conn in list(self._pending) + list(self._connections):
            await self.remove_connection(conn)
        self._disarm()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _push(self, conn: SubscriberConnection, payload: dict) -> None:
        try:
            await conn.send_json(payload)
        except SubscriberSendFailure as exc:
            await self._drop(conn, exc)
            return
        self.pushes += 1

    async def _probe(self, conn: SubscriberConnection) -> None:
        try:
            await conn.probe()
        except SubscriberSendFailure as exc:
            await self._drop(conn, exc)

    async def _drop(self, conn: SubscriberConnection, exc: Exception) -> None:
        self.send_failures += 1
        print(f"[HUB][send_failed] connection_id={conn.connection_id} error={exc}", flush=True)
        await self.remove_connection(conn)

    def _arm(self) -> None:
        if self._poll_task is not None and self._heartbeat_task is not None:
            return
        if self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop(), name="quote-hub-poll")
        if self._heartbeat_task is None:
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="quote-hub-heartbeat")
        print(
            f"[HUB][timers_armed] poll_interval_sec={self.poll_interval_sec} "
            f"heartbeat_interval_sec={self.heartbeat_interval_sec}",
            flush=True,
        )

    def _disarm(self) -> None:
        current = asyncio.current_task()
        disarmed = False
        for task in (self._poll_task, self._heartbeat_task):
            if task is None:
                continue
            disarmed = True
            # a loop removing its own last subscriber exits on its next state check
            if task is not current:
                task.cancel()
        self._poll_task = None
        self._heartbeat_task = None
        if disarmed:
            print("[HUB][timers_disarmed] state=IDLE", flush=True)

    async def _poll_loop(self) -> None:
        me = asyncio.current_task()
        while self._poll_task is me:
            await asyncio.sleep(self.poll_interval_sec)
            if self._poll_task is not me:
                return
            try:
                await self.on_tick()
            except Exception as exc:
                print(f"[HUB][tick_error] error={exc!r}", flush=True)

    async def _heartbeat_loop(self) -> None:
        me = asyncio.current_task()
        while self._heartbeat_task is me:
            await asyncio.sleep(self.heartbeat_interval_sec)
            if self._heartbeat_task is not me:
                return
            try:
                await self.on_heartbeat()
            except Exception as exc:
                print(f"[HUB][heartbeat_error] error={exc!r}", flush=True)

    def metrics(self) -> dict[str, int | str]:
        return {
            "state": self.state,
            "subscribers": len(self._connections),
            "ticks": self.ticks,
            "heartbeats": self.heartbeats,
            "pushes": self.pushes,
            "send_failures": self.send_failures,
            "heartbeat_evictions": self.heartbeat_evictions,
        }
