import asyncio
import json
from datetime import date

import httpx
import pytest

from flocktrack.client.api import COLLECTIONS, FlockApiClient
from flocktrack.client.cache import APP_DATA, SUBSCRIPTION_STATUS, SnapshotCache
from flocktrack.client.errors import (
    ApiValidationError,
    AuthenticationError,
    NetworkError,
    ServerError,
    user_friendly_message,
)
from flocktrack.client.provider import SINGLE_RECORDS, AppData, DataProvider, SnapshotState, create_provider
from flocktrack.config import Settings
from flocktrack.main import app

TODAY = date(2026, 6, 15)


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def backend_data():
    return {
        "flock_batches": [
            {
                "id": 1,
                "batch_name": "Spring Layers",
                "breed": "Leghorn",
                "type": "hens",
                "age_at_acquisition": "adult",
                "acquisition_date": "2026-01-01",
                "initial_count": 20,
                "current_count": 17,
                "hens_count": 20,
                "actual_laying_start_date": "2026-02-01",
                "source": "farm",
            }
        ],
        "death_records": [
            {"id": 1, "batch_id": 1, "date": "2026-06-01", "count": 3, "cause": "predator", "description": "Fox"}
        ],
        "egg_entries": [
            {"id": 1, "date": "2026-06-15", "count": 10},
            {"id": 2, "date": "2026-06-14", "count": 12},
            {"id": 3, "date": "2026-06-13", "count": 11},
        ],
        "customers": [{"id": 1, "name": "Oakridge"}],
        "sales": [
            {"id": 1, "sale_date": "2026-06-10", "customer_id": 1, "dozen_count": 2, "total_amount": 9.0, "paid": True}
        ],
        "user_profile": {"user_id": "alice", "subscription_status": "active"},
    }


class FakeBackend:
    """Stands in for the API; ``fail`` is None, "network", "garbage" or an HTTP status."""

    def __init__(self):
        self.data = backend_data()
        self.fail = None
        self.calls = 0
        self.on_request = None

    def __call__(self, request):
        self.calls += 1
        if self.on_request:
            self.on_request(request)
        if self.fail == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail == "garbage":
            return httpx.Response(200, json=["unexpected"])
        if self.fail is not None:
            return httpx.Response(self.fail, json={"success": False, "error": "boom"})

        if request.method == "GET":
            for name, (path, key) in COLLECTIONS.items():
                if request.url.path == path:
                    default = None if name in SINGLE_RECORDS else []
                    return httpx.Response(200, json={"success": True, "data": {key: self.data.get(name, default)}})

        if request.method == "POST" and request.url.path == "/egg-entries/":
            entry = {"id": 50, **json.loads(request.content)}
            self.data["egg_entries"].insert(0, entry)
            return httpx.Response(201, json={"success": True, "data": {"entry": entry}})

        if request.method == "POST" and request.url.path == "/customers/":
            return httpx.Response(
                400,
                json={"success": False, "error": "Customer name is required", "details": {"request": "Customer name is required"}},
            )

        return httpx.Response(404, json={"success": False, "error": "Not Found"})


def make_api(handler, token="token-alice"):
    transport = httpx.MockTransport(handler)
    return FlockApiClient(
        "http://testserver",
        token,
        client=httpx.AsyncClient(transport=transport, base_url="http://testserver"),
    )


def make_provider(handler, cache=None, clock=None, has_focus=None):
    clock = clock or FakeClock()
    return DataProvider(
        make_api(handler),
        cache if cache is not None else SnapshotCache(clock=clock),
        Settings(),
        has_focus=has_focus,
        clock=clock,
        today=lambda: TODAY,
    )


def test_sign_in_builds_snapshot_and_summaries():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        assert provider.state == SnapshotState.UNINITIALIZED
        await provider.sign_in("alice")

    asyncio.run(scenario())

    assert provider.state == SnapshotState.READY
    assert provider.error is None
    assert backend.calls == len(COLLECTIONS)

    summary = provider.data.flock_summary
    assert summary.total_birds == 17
    assert summary.expected_layers == 20
    assert summary.avg_eggs_per_hen == 0.55
    assert summary.mortality_rate == 15.0
    assert provider.data.sales_summary.total_revenue == 9.0
    assert provider.data.flock_profile is None
    assert provider.data.expenses == []

    assert provider.user_tier == "premium"
    assert provider.is_subscription_loading is False
    assert provider.cache.get(SUBSCRIPTION_STATUS, "alice") == "active"
    assert provider.cache.get(APP_DATA, "alice")["flock_batches"][0]["batch_name"] == "Spring Layers"


def test_failed_silent_refresh_keeps_snapshot_and_never_shows_loading():
    backend = FakeBackend()
    provider = make_provider(backend)
    seen_states = []

    async def scenario():
        await provider.sign_in("alice")
        before = provider.data.flock_summary

        backend.fail = "network"
        backend.on_request = lambda request: seen_states.append(provider.state)
        await provider.silent_refresh()
        return before

    before = asyncio.run(scenario())

    assert seen_states and all(s == SnapshotState.READY for s in seen_states)
    assert provider.data.flock_summary == before
    assert provider.state == SnapshotState.READY
    assert provider.error is None


def test_failed_refresh_reports_friendly_error():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        await provider.sign_in("alice")
        backend.fail = 503
        await provider.refresh()

    asyncio.run(scenario())

    assert provider.state == SnapshotState.READY
    assert provider.error == "Something went wrong on our end. Please try again shortly."
    assert len(provider.data.flock_batches) == 1


def test_expired_session_message():
    backend = FakeBackend()
    backend.fail = 401
    provider = make_provider(backend)

    asyncio.run(provider.sign_in("alice"))

    assert provider.state == SnapshotState.READY
    assert provider.error == "Your session has expired. Please refresh to continue."
    assert provider.data == AppData()


def test_response_after_sign_out_is_discarded():
    backend = FakeBackend()

    async def scenario():
        gate = asyncio.Event()
        gate.set()
        waiting = []

        async def handler(request):
            waiting.append(request)
            await gate.wait()
            return backend(request)

        provider = make_provider(handler)
        await provider.sign_in("alice")

        gate.clear()
        backend.data["flock_batches"] = []
        waiting.clear()
        task = asyncio.create_task(provider.refresh())
        while len(waiting) < len(COLLECTIONS):
            await asyncio.sleep(0)
        assert provider.in_flight

        provider.sign_out()
        gate.set()
        await task
        return provider

    provider = asyncio.run(scenario())

    assert provider.user_id is None
    assert provider.state == SnapshotState.UNINITIALIZED
    assert provider.data == AppData()
    # the late response did not overwrite alice's cached snapshot either
    assert len(provider.cache.get(APP_DATA, "alice")["flock_batches"]) == 1


def test_same_user_keeps_cache_and_switch_clears_it():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        await provider.sign_in("alice")
        provider.sign_out()

        # offline: the snapshot comes from the cache alone
        backend.fail = "network"
        await provider.sign_in("alice")
        assert provider.state == SnapshotState.READY
        assert len(provider.data.flock_batches) == 1
        assert provider.data.flock_summary.total_birds == 17
        assert provider.user_tier == "premium"
        assert provider.error is not None

        provider.sign_out()
        await provider.sign_in("bob")

    asyncio.run(scenario())

    assert provider.cache.get(APP_DATA, "alice") is None
    assert provider.cache.get(SUBSCRIPTION_STATUS, "alice") is None
    assert provider.data.flock_batches == []
    assert provider.user_tier == "free"


def test_check_staleness_needs_stale_snapshot_and_focus():
    backend = FakeBackend()
    clock = FakeClock()
    focus = {"value": False}
    provider = make_provider(backend, clock=clock, has_focus=lambda: focus["value"])

    async def scenario():
        await provider.sign_in("alice")
        calls = backend.calls

        assert provider.is_stale() is False
        assert await provider.check_staleness() is False

        clock.advance(11 * 60)
        assert provider.is_stale() is True
        assert await provider.check_staleness() is False
        assert backend.calls == calls

        focus["value"] = True
        assert await provider.check_staleness() is True
        assert backend.calls == calls + len(COLLECTIONS)
        assert provider.is_stale() is False

    asyncio.run(scenario())


def test_check_staleness_without_user_does_nothing():
    backend = FakeBackend()
    provider = make_provider(backend)

    assert asyncio.run(provider.check_staleness()) is False
    assert backend.calls == 0


def test_background_refresh_can_start_and_stop():
    backend = FakeBackend()
    clock = FakeClock()
    provider = make_provider(backend, clock=clock)

    async def scenario():
        await provider.sign_in("alice")
        calls = backend.calls
        clock.advance(3600)

        task = provider.start_background_refresh(interval=0.01)
        assert provider.start_background_refresh(interval=0.01) is task
        for _ in range(50):
            if backend.calls > calls:
                break
            await asyncio.sleep(0.01)
        await provider.stop_background_refresh()
        assert task.cancelled() or task.done()
        return calls

    calls = asyncio.run(scenario())
    assert backend.calls > calls


def test_unexpected_response_bodies_are_server_errors():
    async def scenario():
        api = make_api(lambda request: httpx.Response(200, json=["unexpected"]))
        with pytest.raises(ServerError):
            await api.fetch_collection("customers")

        api = make_api(lambda request: httpx.Response(200, json={"success": True, "data": [1, 2]}))
        with pytest.raises(ServerError):
            await api.fetch_collection("customers")

        api = make_api(lambda request: httpx.Response(400, json=["bad"]))
        with pytest.raises(ApiValidationError) as excinfo:
            await api.fetch_collection("customers")
        assert excinfo.value.field_errors == {}

    asyncio.run(scenario())


def test_silent_refresh_survives_unexpected_bodies():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        await provider.sign_in("alice")
        backend.fail = "garbage"
        await provider.silent_refresh()

    asyncio.run(scenario())

    assert provider.state == SnapshotState.READY
    assert provider.data.flock_summary.total_birds == 17


def test_background_refresh_outlives_a_failing_tick():
    backend = FakeBackend()
    clock = FakeClock()
    ticks = []

    def has_focus():
        ticks.append(True)
        if len(ticks) == 1:
            raise RuntimeError("window went away")
        return True

    provider = make_provider(backend, clock=clock, has_focus=has_focus)

    async def scenario():
        await provider.sign_in("alice")
        backend.fail = "garbage"
        clock.advance(3600)

        task = provider.start_background_refresh(interval=0.01)
        for _ in range(100):
            if len(ticks) >= 3:
                break
            await asyncio.sleep(0.01)
        assert not task.done()

        # once the backend recovers the next tick brings the snapshot up to date
        backend.fail = None
        for _ in range(100):
            if not provider.is_stale():
                break
            await asyncio.sleep(0.01)
        assert not task.done()
        await provider.stop_background_refresh()

    asyncio.run(scenario())

    assert len(ticks) >= 3
    assert provider.is_stale() is False


def test_upsert_and_remove_record_recompute_summary():
    backend = FakeBackend()
    provider = make_provider(backend)
    asyncio.run(provider.sign_in("alice"))

    provider.upsert_record("egg_entries", {"id": 1, "date": "2026-06-15", "count": 22})
    assert len(provider.data.egg_entries) == 3
    # (22 + 12 + 11) / 3 = 15
    assert provider.data.flock_summary.production_metrics.avg_daily_eggs == 15.0

    provider.remove_record("death_records", 1)
    assert provider.data.death_records == []
    assert provider.data.flock_summary.mortality_rate == 0
    assert provider.cache.get(APP_DATA, "alice")["death_records"] == []

    with pytest.raises(KeyError):
        provider.remove_record("chickens", 1)


def test_submit_splices_record_then_refreshes():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        await provider.sign_in("alice")
        calls = backend.calls
        body = await provider.submit(
            "POST", "/egg-entries/", {"date": "2026-06-12", "count": 9}, collection="egg_entries"
        )
        assert body["data"]["entry"]["id"] == 50
        return calls

    calls = asyncio.run(scenario())

    assert backend.calls == calls + 1 + len(COLLECTIONS)
    assert [e.id for e in provider.data.egg_entries] == [50, 1, 2, 3]


def test_submit_propagates_validation_errors():
    backend = FakeBackend()
    provider = make_provider(backend)

    async def scenario():
        await provider.sign_in("alice")
        with pytest.raises(ApiValidationError) as excinfo:
            await provider.submit("POST", "/customers/", {"name": ""}, collection="customers")
        return excinfo.value

    error = asyncio.run(scenario())

    assert error.status_code == 400
    assert error.field_errors == {"request": "Customer name is required"}
    assert user_friendly_message(error) == "Customer name is required"
    assert len(provider.data.customers) == 1


def test_api_client_error_mapping():
    backend = FakeBackend()

    async def scenario():
        api = make_api(backend)

        backend.fail = "network"
        with pytest.raises(NetworkError):
            await api.fetch_collection("customers")

        backend.fail = 401
        with pytest.raises(AuthenticationError):
            await api.fetch_collection("customers")

        backend.fail = 502
        with pytest.raises(ServerError) as server_error:
            await api.fetch_collection("customers")
        assert server_error.value.status_code == 502

        backend.fail = None
        with pytest.raises(ApiValidationError) as missing:
            await api.request("GET", "/nowhere/")
        assert missing.value.status_code == 404

        calls = backend.calls
        api.set_token(None)
        with pytest.raises(AuthenticationError):
            await api.fetch_collection("customers")
        assert backend.calls == calls
        await api.aclose()

    asyncio.run(scenario())


class SerialASGITransport(httpx.ASGITransport):
    """One request at a time; the in-memory test database shares a single connection."""

    def __init__(self, app):
        super().__init__(app=app)
        self._lock = asyncio.Lock()

    async def handle_async_request(self, request):
        async with self._lock:
            return await super().handle_async_request(request)


def test_provider_against_real_api(static_auth):
    async def scenario():
        client = httpx.AsyncClient(transport=SerialASGITransport(app), base_url="http://testserver")
        async with FlockApiClient("http://testserver", "token-alice", client=client) as api:
            r = await api.request(
                "POST",
                "/flock-batches/",
                {
                    "batch_name": "Spring Layers",
                    "breed": "Leghorn",
                    "type": "hens",
                    "age_at_acquisition": "adult",
                    "acquisition_date": "2026-01-01",
                    "initial_count": 12,
                    "hens_count": 12,
                    "source": "farm",
                    "actual_laying_start_date": "2026-02-01",
                    "cost": 60,
                },
            )
            batch_id = r["data"]["batch"]["id"]
            await api.request(
                "POST",
                "/death-records/",
                {"batch_id": batch_id, "date": "2026-03-01", "count": 2, "cause": "disease", "description": "Flu"},
            )

            provider = DataProvider(api, SnapshotCache(), Settings())
            await provider.sign_in("alice")
            server_summary = await api.fetch_flock_summary()
            return provider, server_summary

    provider, server_summary = asyncio.run(scenario())

    assert provider.state == SnapshotState.READY
    assert provider.error is None
    assert provider.data.flock_batches[0].current_count == 10
    assert provider.data.death_records[0].batch_name == "Spring Layers"
    assert provider.data.expenses[0].category == "Birds"
    assert provider.data.user_profile.subscription_status == "free"
    assert provider.user_tier == "free"
    assert provider.data.flock_summary.model_dump(mode="json") == server_summary


def test_create_provider_uses_settings():
    settings = Settings(api_base_url="http://flock.example", cache_prefix="farm")
    provider = create_provider("token-alice", settings=settings)

    assert provider.cache.prefix == "farm"
    assert provider.api.token == "token-alice"
    assert provider.api._client.base_url.host == "flock.example"
    assert provider.state == SnapshotState.UNINITIALIZED
    asyncio.run(provider.api.aclose())
