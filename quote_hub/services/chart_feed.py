from __future__ import annotations

import threading
from collections import deque
from typing import Iterable

from quote_hub.schemas.quote import ChartBar


class ChartFeed:
    """Bounded passthrough buffer for OHLCV bars supplied by an external producer.

    Producers write from the event loop while the fetcher reads from a worker
    thread, so every access goes through one lock.
    """

    def __init__(self, max_bars: int = 500) -> None:
        self._bars: deque[ChartBar] = deque(maxlen=max_bars)
        self._lock = threading.Lock()

    @staticmethod
    def _coerce(bar: ChartBar | dict) -> ChartBar:
        if isinstance(bar, dict):
            return ChartBar.model_validate(bar)
        return bar

    def replace(self, bars: Iterable[ChartBar | dict]) -> None:
        validated = [self._coerce(bar) for bar in bars]
        with self._lock:
            self._bars.clear()
            self._bars.extend(validated)

    def append(self, bar: ChartBar | dict) -> None:
        validated = self._coerce(bar)
        with self._lock:
            self._bars.append(validated)

    def bars(self) -> list[ChartBar]:
        with self._lock:
            return list(self._bars)

    def __len__(self) -> int:
        with self._lock:
            return len(self._bars)
