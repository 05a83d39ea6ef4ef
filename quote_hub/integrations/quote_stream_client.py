from __future__ import annotations

import json
import threading
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, Field

DISCONNECTED = "DISCONNECTED"
CONNECTING = "CONNECTING"
CONNECTED = "CONNECTED"


class ReconnectPolicy(BaseModel):
    max_attempts: int = Field(default=5, ge=0)
    base_delay_sec: float = Field(default=1.0, gt=0)
    max_delay_sec: float = Field(default=30.0, gt=0)

    def delay_for(self, attempt: int) -> float:
        return min(self.base_delay_sec * (2**attempt), self.max_delay_sec)


def _thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


def _thread_runner(ws_app: Any, on_exit: Callable[[], None]) -> None:
    def _run() -> None:
        try:
            ws_app.run_forever()
        finally:
            on_exit()

    threading.Thread(target=_run, daemon=True, name="quote-stream-client").start()


class QuoteStreamClient:
    """Hub subscriber with explicit connection states and capped exponential backoff.

    Retries are scheduled through ``scheduler(delay, callback)`` which must
    return a handle with ``cancel()``; ``disconnect()`` cancels any pending
    retry and keepalive.
    """

    def __init__(
        self,
        url: str,
        *,
        on_snapshot: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_state_change: Optional[Callable[[str], None]] = None,
        policy: Optional[ReconnectPolicy] = None,
        ping_interval_sec: float = 30.0,
        websocket_app_factory: Optional[Callable[..., Any]] = None,
        scheduler: Callable[[float, Callable[[], None]], Any] = _thread_timer,
        runner: Callable[[Any, Callable[[], None]], None] = _thread_runner,
    ) -> None:
        self.url = url
        self.policy = policy or ReconnectPolicy()
        self.ping_interval_sec = ping_interval_sec
        self._on_snapshot = on_snapshot
        self._on_state_change = on_state_change
        self._websocket_app_factory = websocket_app_factory or self._default_websocket_app_factory
        self._scheduler = scheduler
        self._runner = runner
        self._lock = threading.RLock()

        self.state = DISCONNECTED
        self.attempts = 0
        self.gave_up = False
        self.last_error: str | None = None
        self._stopped = False
        self._ws_app: Any = None
        self._retry_handle: Any = None
        self._retry_token = 0
        self._ping_handle: Any = None

    def _default_websocket_app_factory(self, *args: Any, **kwargs: Any) -> Any:
        from websocket import WebSocketApp

        return WebSocketApp(*args, **kwargs)

    def _set_state(self, state: str) -> None:
        if self.state == state:
            return
        self.state = state
        print(f"[STREAM][state] state={state} attempts={self.attempts}", flush=True)
        if self._on_state_change is not None:
            self._on_state_change(state)

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    def connect(self) -> None:
        with self._lock:
            if self.state != DISCONNECTED:
                return
            self._stopped = False
            self.gave_up = False
            if self._retry_handle is not None:
                self._retry_handle.cancel()
                self._retry_handle = None
            ws_app = self._open_locked()
        self._runner(ws_app, lambda: self._handle_closed(ws_app))

    def _retry(self, token: int) -> None:
        with self._lock:
            # a timer that fired after disconnect() or a newer schedule is stale
            if self._stopped or self._retry_handle is None or token != self._retry_token:
                return
            self._retry_handle = None
            if self.state != DISCONNECTED:
                return
            ws_app = self._open_locked()
        self._runner(ws_app, lambda: self._handle_closed(ws_app))

    def _open_locked(self) -> Any:
        self._set_state(CONNECTING)
        ws_app = self._websocket_app_factory(
            self.url,
            on_open=self._handle_open,
            on_message=self._handle_message,
            on_error=self._handle_error,
            on_close=self._handle_close,
        )
        self._ws_app = ws_app
        return ws_app

    def disconnect(self) -> None:
        with self._lock:
            self._stopped = True
            self._cancel_handles()
            ws_app, self._ws_app = self._ws_app, None
            self.attempts = 0
            self._set_state(DISCONNECTED)
        if ws_app is not None:
            ws_app.close()

    def _cancel_handles(self) -> None:
        for handle in (self._retry_handle, self._ping_handle):
            if handle is not None:
                handle.cancel()
        self._retry_handle = None
        self._ping_handle = None

    def _handle_open(self, ws: Any) -> None:
        with self._lock:
            if ws is not self._ws_app:
                return
            self.attempts = 0
            self.last_error = None
            self._set_state(CONNECTED)
            self._schedule_ping()

    def _handle_message(self, ws: Any, raw_message: Any) -> None:
        try:
            message = json.loads(raw_message)
        except (TypeError, ValueError) as exc:
            print(f"[STREAM][message_skip] reason={exc}", flush=True)
            return
        if not isinstance(message, dict):
            print("[STREAM][message_skip] reason=not_an_object", flush=True)
            return

        msg_type = message.get("type")
        if msg_type == "ping":
            ws.send(json.dumps({"type": "pong"}))
        elif msg_type == "pong":
            return
        elif self._on_snapshot is not None:
            self._on_snapshot(message)

    def _handle_error(self, _: Any, error: Any) -> None:
        self.last_error = str(error)
        print(f"[STREAM][error] {self.last_error}", flush=True)

    def _handle_close(self, ws: Any, code: Any = None, reason: Any = None) -> None:
        print(f"[STREAM][close] code={code} reason={reason}", flush=True)
        self._handle_closed(ws)

    def _handle_closed(self, ws: Any) -> None:
        # on_close and run_forever exit can both report the same socket
        with self._lock:
            if ws is not self._ws_app:
                return
            self._ws_app = None
            if self._ping_handle is not None:
                self._ping_handle.cancel()
                self._ping_handle = None
            self._set_state(DISCONNECTED)
            if not self._stopped:
                self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self.attempts >= self.policy.max_attempts:
            self.gave_up = True
            print(f"[STREAM][reconnect_give_up] attempts={self.attempts} last_error={self.last_error}", flush=True)
            return
        delay = self.policy.delay_for(self.attempts)
        self.attempts += 1
        print(f"[STREAM][reconnect_scheduled] attempt={self.attempts} delay_sec={delay}", flush=True)
        self._retry_token += 1
        token = self._retry_token
        self._retry_handle = self._scheduler(delay, lambda: self._retry(token))

    def _schedule_ping(self) -> None:
        self._ping_handle = self._scheduler(self.ping_interval_sec, self._send_ping)

    def _send_ping(self) -> None:
        with self._lock:
            ws_app = self._ws_app
            if self.state != CONNECTED or ws_app is None:
                return
            try:
                ws_app.send(json.dumps({"type": "ping"}))
            except Exception as exc:
                self.last_error = str(exc)
                print(f"[STREAM][ping_failed] error={exc}", flush=True)
                return
            self._schedule_ping()
