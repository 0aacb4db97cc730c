"""Health-gated polling client.

The client is either ``BOOTING`` (running the health-gated boot sequence and
showing diagnostics) or ``READY`` (refreshing the view model on a timer). A
single scheduler task drives the timer, at most one cycle is in flight, and a
generation token discards results from cycles that were superseded or that
finished after :meth:`PollingClient.unmount`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import contextlib
from dataclasses import dataclass, replace
from enum import Enum

from pydantic import ValidationError

from syncboard.client.api import DashboardApi, DashboardClientError
from syncboard.logging import get_logger
from syncboard.schemas import (
    HealthResponse,
    NetworkResponse,
    PlaylistDetailResponse,
    PlaylistSummaryResponse,
    StatsResponse,
)

logger = get_logger(__name__)

DB_CONNECTED = "CONNECTED"


class ClientPhase(str, Enum):
    BOOTING = "BOOTING"
    READY = "READY"


@dataclass(slots=True, frozen=True)
class ViewModel:
    stats: StatsResponse
    network: NetworkResponse
    playlists: tuple[PlaylistSummaryResponse, ...]
    playlist: PlaylistDetailResponse | None


@dataclass(slots=True, frozen=True)
class ClientState:
    phase: ClientPhase = ClientPhase.BOOTING
    health: HealthResponse | None = None
    view: ViewModel | None = None
    error: str | None = None


Listener = Callable[[ClientState], None]


def health_ready(health: HealthResponse) -> bool:
    """Return True when the fact store is connected and every required table exists."""

    return health.db == DB_CONNECTED and bool(health.tables) and all(health.tables.values())


def describe_health(health: HealthResponse) -> str:
    if health.error:
        return health.error
    if health.db != DB_CONNECTED:
        return f"Fact store is {health.db}."
    missing = sorted(name for name, present in health.tables.items() if not present)
    if missing:
        return f"Missing tables: {', '.join(missing)}"
    return "Required tables are not available yet."


class PollingClient:
    """Drive the ``BOOTING``/``READY`` state machine against a :class:`DashboardApi`."""

    def __init__(self, api: DashboardApi, *, poll_interval_s: float = 3.0) -> None:
        self._api = api
        self._interval = max(0.05, float(poll_interval_s))
        self._state = ClientState()
        self._listeners: list[Listener] = []
        self._generation = 0
        self._mounted = False
        self._timer: asyncio.Task[None] | None = None
        self._in_flight: asyncio.Task[None] | None = None

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def mounted(self) -> bool:
        return self._mounted

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def api(self) -> DashboardApi:
        return self._api

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _remove

    # Lifecycle ------------------------------------------------------------

    async def mount(self) -> ClientState:
        """Enter ``BOOTING``, run the first boot cycle and start the timer."""

        if self._mounted:
            return self._state
        self._mounted = True
        self._set_state(ClientState())
        cycle = self._launch()
        if cycle is not None:
            await cycle
        self._timer = asyncio.create_task(self._schedule(), name="syncboard-client-timer")
        return self._state

    async def unmount(self) -> None:
        """Stop the timer; an in-flight cycle finishes but its result is discarded."""

        if not self._mounted:
            return
        self._mounted = False
        self._generation += 1
        timer, self._timer = self._timer, None
        if timer is not None:
            timer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await timer

    async def retry(self) -> bool:
        """Re-run the health check immediately; only allowed while ``BOOTING``."""

        if not self._mounted or self._state.phase is not ClientPhase.BOOTING:
            return False
        cycle = self._launch()
        if cycle is None:
            return False
        await cycle
        return True

    async def tick(self) -> bool:
        """Run one timer cycle now; returns False when a cycle is already in flight."""

        if not self._mounted:
            return False
        cycle = self._launch()
        if cycle is None:
            return False
        await cycle
        return True

    # Internals ------------------------------------------------------------

    async def _schedule(self) -> None:
        while self._mounted:
            await asyncio.sleep(self._interval)
            if not self._mounted:
                break
            if self._launch() is None:
                logger.debug("Skipping poll; previous cycle still in flight")

    def _launch(self) -> asyncio.Task[None] | None:
        if self._in_flight is not None and not self._in_flight.done():
            return None
        self._generation += 1
        token = self._generation
        self._in_flight = asyncio.create_task(self._run_cycle(token))
        return self._in_flight

    def _is_current(self, token: int) -> bool:
        return self._mounted and token == self._generation

    async def _run_cycle(self, token: int) -> None:
        if self._state.phase is ClientPhase.READY:
            await self._poll(token)
        else:
            await self._boot(token)

    async def _boot(self, token: int) -> None:
        health = await self._api.get_health()
        if not self._is_current(token):
            return
        if not health_ready(health):
            self._set_state(ClientState(phase=ClientPhase.BOOTING, health=health, error=describe_health(health)))
            return

        try:
            view = await self._fetch_view()
        except (DashboardClientError, ValidationError) as exc:
            if self._is_current(token):
                self._set_state(ClientState(phase=ClientPhase.BOOTING, health=health, error=str(exc)))
            return
        if self._is_current(token):
            self._set_state(ClientState(phase=ClientPhase.READY, health=health, view=view))

    async def _poll(self, token: int) -> None:
        try:
            view = await self._fetch_view()
        except (DashboardClientError, ValidationError) as exc:
            if not self._is_current(token):
                return
            logger.warning("Dashboard refresh failed: %s", exc)
            self._set_state(
                ClientState(phase=ClientPhase.BOOTING, health=self._state.health, error=str(exc))
            )
            await self._boot(token)
            return
        if self._is_current(token):
            self._set_state(replace(self._state, view=view, error=None))

    async def _fetch_view(self) -> ViewModel:
        stats, network, playlists = await asyncio.gather(
            self._api.get_stats(),
            self._api.get_network(),
            self._api.get_playlists(),
        )
        detail = await self._api.get_playlist(playlists[0].id) if playlists else None
        return ViewModel(stats=stats, network=network, playlists=tuple(playlists), playlist=detail)

    def _set_state(self, state: ClientState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Client state listener failed")


__all__ = [
    "ClientPhase",
    "ClientState",
    "PollingClient",
    "ViewModel",
    "describe_health",
    "health_ready",
]
