"""Tests for the health-gated polling client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from syncboard.client.api import DashboardApi, DashboardClientError
from syncboard.client.state_machine import ClientPhase, ClientState, PollingClient
from syncboard.config import load_config
from syncboard.main import create_app
from syncboard.runtime import build_runtime
from syncboard.schema import judge_submissions, rejected_track, search_items
from syncboard.schemas import (
    HealthResponse,
    NetworkResponse,
    PlaylistDetailResponse,
    PlaylistSummaryResponse,
    StatsResponse,
)

READY_HEALTH = HealthResponse(
    api="ONLINE",
    db="CONNECTED",
    tables={"search_items": True, "judge_submissions": True},
    cache="DISABLED",
)


class _StubApi:
    def __init__(self, health: HealthResponse = READY_HEALTH) -> None:
        self.health = health
        self.gate = asyncio.Event()
        self.gate.set()
        self.total = 1
        self.fail_stats = False
        self.stats_calls = 0

    async def get_health(self) -> HealthResponse:
        return self.health

    async def get_stats(self) -> StatsResponse:
        self.stats_calls += 1
        await self.gate.wait()
        if self.fail_stats:
            raise DashboardClientError("Stats unavailable", status_code=503)
        return StatsResponse(
            total_tracks=self.total,
            pending=self.total,
            downloading=0,
            completed=0,
            failed=0,
            global_progress=0,
            remaining_time="Live Sync",
        )

    async def get_network(self) -> NetworkResponse:
        return NetworkResponse(
            status="CONNECTED", user="u", node="n", latency="1ms", total_bandwidth="0.0 MB/s"
        )

    async def get_playlists(self) -> list[PlaylistSummaryResponse]:
        return [PlaylistSummaryResponse(id="all", name="Master Library", track_count=self.total)]

    async def get_playlist(self, playlist_id: str) -> PlaylistDetailResponse:
        return PlaylistDetailResponse(
            id=playlist_id,
            name="Master Library",
            track_count=0,
            quality="FLAC / 320k",
            last_synced="2024-01-01T00:00:00Z",
            tracks=[],
        )


def _client(api: object) -> PollingClient:
    return PollingClient(api, poll_interval_s=60)  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_mount_boots_into_ready() -> None:
    states: list[ClientState] = []
    client = _client(_StubApi())
    client.add_listener(states.append)

    state = await client.mount()
    await client.unmount()

    assert state.phase is ClientPhase.READY
    assert state.view is not None and state.view.stats.total_tracks == 1
    assert [item.phase for item in states] == [ClientPhase.BOOTING, ClientPhase.READY]


@pytest.mark.asyncio
async def test_missing_tables_keep_client_booting() -> None:
    api = _StubApi(
        HealthResponse(api="ONLINE", db="CONNECTED", tables={"search_items": False}, cache="DISABLED")
    )
    client = _client(api)

    state = await client.mount()
    await client.unmount()

    assert state.phase is ClientPhase.BOOTING
    assert state.error == "Missing tables: search_items"
    assert api.stats_calls == 0


@pytest.mark.asyncio
async def test_failed_refresh_returns_to_booting_and_retry_recovers() -> None:
    api = _StubApi()
    client = _client(api)
    await client.mount()

    api.fail_stats = True
    await client.tick()
    failed = client.state

    api.fail_stats = False
    recovered = await client.retry()
    await client.unmount()

    assert failed.phase is ClientPhase.BOOTING
    assert failed.error == "Stats unavailable"
    assert recovered is True
    assert client.state.phase is ClientPhase.READY


@pytest.mark.asyncio
async def test_retry_only_allowed_while_booting() -> None:
    client = _client(_StubApi())
    await client.mount()

    assert await client.retry() is False
    await client.unmount()


@pytest.mark.asyncio
async def test_only_one_cycle_in_flight() -> None:
    api = _StubApi()
    client = _client(api)
    await client.mount()

    api.gate.clear()
    first = asyncio.create_task(client.tick())
    await asyncio.sleep(0)
    second = await client.tick()
    api.gate.set()
    await first
    await client.unmount()

    assert second is False
    assert first.result() is True
    assert api.stats_calls == 2


@pytest.mark.asyncio
async def test_unmount_discards_late_results() -> None:
    api = _StubApi()
    client = _client(api)
    await client.mount()
    before = client.state

    api.gate.clear()
    api.total = 5
    pending = asyncio.create_task(client.tick())
    await asyncio.sleep(0)
    await client.unmount()
    api.gate.set()
    await pending

    assert client.state is before
    assert client.mounted is False


@pytest.mark.asyncio
async def test_get_health_never_raises() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    unreachable = DashboardApi("http://syncboard.test", transport=httpx.MockTransport(refused))
    failing = DashboardApi(
        "http://syncboard.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="boom")),
    )

    down = await unreachable.get_health()
    broken = await failing.get_health()

    assert down.api == "UNREACHABLE"
    assert down.db == "UNKNOWN"
    assert down.error
    assert broken.api == "OFFLINE"
    assert broken.error == "API returned status 500"


@pytest.mark.asyncio
async def test_fact_store_outage_and_recovery_end_to_end(session_factory, insert) -> None:
    insert(search_items, {"id": 1, "track": "Song", "artist": "Artist", "album": "Album"})
    runtime = build_runtime(
        load_config({"SYNCBOARD_DISABLE_WORKERS": "1"}), session_factory=session_factory
    )
    app = create_app(runtime=runtime, configure_logs=False)
    api = DashboardApi("http://syncboard.test", transport=httpx.ASGITransport(app=app))
    client = PollingClient(api, poll_interval_s=60)

    mounted = await client.mount()
    assert mounted.phase is ClientPhase.READY
    assert mounted.view is not None and mounted.view.playlist is not None
    assert mounted.view.playlist.tracks[0].status.value == "SEARCHING"

    session_factory.offline = True
    await client.tick()
    degraded = client.state

    session_factory.offline = False
    await client.tick()
    recovered = client.state
    await client.unmount()

    assert degraded.phase is ClientPhase.BOOTING
    assert degraded.health is not None and degraded.health.db == "DISCONNECTED"
    assert degraded.error
    assert recovered.phase is ClientPhase.READY


@pytest.mark.asyncio
async def test_candidates_and_logs_are_decoded() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/tracks/3/candidates":
            return httpx.Response(
                200,
                json=[{"id": 101, "fileId": 11, "username": "u2", "filename": "a.flac", "score": 0.8}],
            )
        return httpx.Response(
            200,
            json=[{"id": "b", "timestamp": 5, "message": "peer went offline", "level": "error"}],
        )

    api = DashboardApi("http://syncboard.test", transport=httpx.MockTransport(handler))

    candidates = await api.get_candidates(3)
    logs = await api.get_logs(limit=5)

    assert candidates[0].file_id == 11
    assert candidates[0].score == 0.8
    assert logs[0].level == "error"
    assert logs[0].track_id is None
    assert seen[1].url.path == "/logs"
    assert seen[1].url.params["limit"] == "5"


@pytest.mark.asyncio
async def test_error_envelope_becomes_client_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            503,
            json={"ok": False, "error": {"code": "DEPENDENCY_ERROR", "message": "Fact store unavailable."}},
        )

    api = DashboardApi("http://syncboard.test", transport=httpx.MockTransport(handler))

    with pytest.raises(DashboardClientError) as excinfo:
        await api.get_candidates(1)

    assert excinfo.value.status_code == 503
    assert str(excinfo.value) == "Fact store unavailable."


@pytest.mark.asyncio
async def test_retry_track_against_the_app(session_factory, insert) -> None:
    insert(search_items, {"id": 1, "track": "A", "artist": "X", "album": "Y"})
    insert(judge_submissions, {"id": 100, "track": 1, "query": None, "score": 0.3})
    insert(rejected_track, {"id": 1, "track": 100, "reason": "NO_CANDIDATES"})
    disabled = create_app(
        runtime=build_runtime(
            load_config({"SYNCBOARD_DISABLE_WORKERS": "1"}), session_factory=session_factory
        ),
        configure_logs=False,
    )
    enabled = create_app(
        runtime=build_runtime(
            load_config({"SYNCBOARD_DISABLE_WORKERS": "1", "SYNCBOARD_ALLOW_RETRY": "1"}),
            session_factory=session_factory,
        ),
        configure_logs=False,
    )

    with pytest.raises(DashboardClientError) as excinfo:
        await DashboardApi(
            "http://syncboard.test", transport=httpx.ASGITransport(app=disabled)
        ).retry_track(1)
    enabled_api = DashboardApi("http://syncboard.test", transport=httpx.ASGITransport(app=enabled))
    cleared = await enabled_api.retry_track(1)
    with pytest.raises(DashboardClientError) as missing:
        await enabled_api.retry_track(99)

    assert excinfo.value.status_code == 403
    assert cleared.ok is True
    assert cleared.track_id == 1
    assert cleared.cleared == 1
    assert missing.value.status_code == 404
