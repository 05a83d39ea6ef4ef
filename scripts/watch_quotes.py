from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from quote_hub.integrations.quote_stream_client import DISCONNECTED, QuoteStreamClient, ReconnectPolicy


def _print_snapshot(snapshot: dict) -> None:
    signal = snapshot.get("signal") or {}
    print(
        f"{snapshot.get('updateTime')} price={snapshot.get('price')} change={snapshot.get('change')} "
        f"({snapshot.get('changePercent')}%) volume={snapshot.get('volume')} "
        f"open={snapshot.get('isMarketOpen')} signal={signal.get('type', '-')}",
        flush=True,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Print snapshots streamed by a running quote hub.")
    parser.add_argument("--url", default="ws://127.0.0.1:8000/v1/stream")
    parser.add_argument("--max-attempts", type=int, default=5)
    args = parser.parse_args()

    client = QuoteStreamClient(
        args.url,
        on_snapshot=_print_snapshot,
        policy=ReconnectPolicy(max_attempts=args.max_attempts),
    )
    client.connect()
    try:
        while not (client.gave_up and client.state == DISCONNECTED):
            time.sleep(0.5)
    except KeyboardInterrupt:
        pass
    finally:
        client.disconnect()


if __name__ == "__main__":
    main()
