"""Console front-end printing the polling client's state transitions."""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
import contextlib

from syncboard.client.api import DashboardApi
from syncboard.client.state_machine import ClientPhase, ClientState, PollingClient
from syncboard.config import load_config
from syncboard.logging import configure_logging


def _render(state: ClientState) -> str:
    if state.phase is ClientPhase.BOOTING:
        db = state.health.db if state.health else "UNKNOWN"
        return f"[BOOTING] db={db} error={state.error or '-'}"
    view = state.view
    if view is None:
        return "[READY]"
    stats = view.stats
    return (
        f"[READY] total={stats.total_tracks} completed={stats.completed} "
        f"downloading={stats.downloading} failed={stats.failed} "
        f"progress={stats.global_progress}% eta={stats.remaining_time} "
        f"bandwidth={view.network.total_bandwidth}"
    )


async def _run(base_url: str, interval: float, timeout_ms: int) -> None:
    client = PollingClient(
        DashboardApi(base_url=base_url, timeout_ms=timeout_ms), poll_interval_s=interval
    )
    client.add_listener(lambda state: print(_render(state), flush=True))
    await client.mount()
    try:
        await asyncio.Event().wait()
    finally:
        await client.unmount()


def main(argv: Sequence[str] | None = None) -> int:
    config = load_config()
    parser = argparse.ArgumentParser(description="Follow the syncboard dashboard from a terminal.")
    parser.add_argument("--base-url", default=config.client.base_url)
    parser.add_argument("--interval", type=float, default=config.client.poll_interval_s)
    args = parser.parse_args(argv)

    configure_logging(config.logging.level, config.logging.file)
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(args.base_url, args.interval, config.client.timeout_ms))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
