from __future__ import annotations

from datetime import datetime, time
from zoneinfo import ZoneInfo

TAIPEI = ZoneInfo("Asia/Taipei")
MARKET_OPEN_TIME = time(8, 45)
MARKET_CLOSE_TIME = time(13, 45)


def market_now() -> datetime:
    return datetime.now(TAIPEI)


def is_market_open(now: datetime | None = None) -> bool:
    """Return whether the TAIFEX day session is open in Asia/Taipei time.

    Both session bounds are inclusive at minute resolution, so 13:45 still
    counts as open.
    """
    current = now or market_now()

    if current.tzinfo is None:
        taipei_now = current.replace(tzinfo=TAIPEI)
    else:
        taipei_now = current.astimezone(TAIPEI)

    if taipei_now.weekday() >= 5:
        return False

    current_time = taipei_now.time().replace(second=0, microsecond=0)
    return MARKET_OPEN_TIME <= current_time <= MARKET_CLOSE_TIME
