"""Tests for the interceptor worker lifecycle and the registration host."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from alliopro.exceptions import InvalidUsageError, LifecycleError, PrecacheError
from alliopro.interceptor import (
    CacheStorage,
    ClientHost,
    InterceptorWorker,
    Registration,
    WorkerState,
    request_key,
)
from alliopro.models import DEFAULT_ASSETS, CachedResponse, InterceptorConfig


ORIGIN = "http://allio.test"


def _config(cache_name: str = "alliopro-cache-v1") -> InterceptorConfig:
    return InterceptorConfig(origin=ORIGIN, cache_name=cache_name, fetch_timeout=1)


def _seed(storage: CacheStorage, name: str) -> None:
    storage.open(name).put_all(
        [("k", CachedResponse(url=f"{ORIGIN}/old", status_code=200, content=b"old"))],
        mark_ready=True,
    )


# ---------------------------------------------------------------------------
# Install
# ---------------------------------------------------------------------------


class TestInstall:
    @pytest.mark.asyncio
    async def test_precaches_exactly_the_manifest(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.install()

        assert worker.state is WorkerState.INSTALLED
        assert worker.skip_waiting is True
        store = storage.open("alliopro-cache-v1")
        assert store.is_ready
        assert len(store) == len(DEFAULT_ASSETS) == 5
        expected = {
            request_key(httpx.Request("GET", f"{ORIGIN}{path}")) for path in DEFAULT_ASSETS
        }
        assert set(store.keys()) == expected
        css = store.match(request_key(httpx.Request("GET", f"{ORIGIN}/style.css")))
        assert css.content == b"asset /style.css"

    @pytest.mark.asyncio
    async def test_one_unreachable_asset_stores_nothing(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site(failing=("/script.js",))) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(PrecacheError) as exc_info:
                await worker.install()

        assert exc_info.value.failed == ["/script.js"]
        assert worker.state is WorkerState.REDUNDANT
        assert worker.store is None
        assert not storage.has("alliopro-cache-v1")

    @pytest.mark.asyncio
    async def test_error_status_fails_install(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site(status_for={"/manifest.json": 404})) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(PrecacheError, match="manifest.json"):
                await worker.install()
        assert worker.state is WorkerState.REDUNDANT

    @pytest.mark.asyncio
    async def test_failed_reinstall_keeps_existing_store(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        _seed(storage, "alliopro-cache-v1")
        async with make_client(site(down=True)) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(PrecacheError):
                await worker.install()
        store = storage.open("alliopro-cache-v1")
        assert store.is_ready
        assert store.keys() == ["k"]

    @pytest.mark.asyncio
    async def test_install_twice_rejected(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.install()
            with pytest.raises(LifecycleError):
                await worker.install()


# ---------------------------------------------------------------------------
# Activate
# ---------------------------------------------------------------------------


class TestActivate:
    @pytest.mark.asyncio
    async def test_prunes_other_generations(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        _seed(storage, "alliopro-cache-v0")
        _seed(storage, "alliopro-cache-v1")
        _seed(storage, "scratch")
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.install()
            removed = await worker.activate()

        assert sorted(removed) == ["alliopro-cache-v0", "scratch"]
        assert storage.keys() == ["alliopro-cache-v1"]
        assert worker.state is WorkerState.ACTIVE

    @pytest.mark.asyncio
    async def test_claims_open_pages(self, storage: CacheStorage, site, make_client) -> None:
        host = ClientHost()
        first = host.open(f"{ORIGIN}/")
        second = host.open(f"{ORIGIN}/about")
        assert first.controller is None
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, host, http)
            await worker.install()
            await worker.activate()
        assert first.controller == second.controller == "alliopro-cache-v1"
        assert first.url == f"{ORIGIN}/"

    @pytest.mark.asyncio
    async def test_activate_before_install_rejected(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(LifecycleError):
                await worker.activate()

    @pytest.mark.asyncio
    async def test_fetch_before_activation_rejected(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.install()
            with pytest.raises(LifecycleError):
                await worker.handle_fetch(httpx.Request("GET", f"{ORIGIN}/"))


# ---------------------------------------------------------------------------
# Fetch after activation
# ---------------------------------------------------------------------------


class TestActiveFetch:
    @pytest.mark.asyncio
    async def test_offline_serves_precached_asset(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        state = {"down": False}

        def handler(request: httpx.Request) -> httpx.Response:
            return site(down=state["down"])(request)

        async with make_client(handler) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.install()
            await worker.activate()
            state["down"] = True
            response = await worker.handle_fetch(httpx.Request("GET", f"{ORIGIN}/index.html"))
            missing = await worker.handle_fetch(httpx.Request("GET", f"{ORIGIN}/other.html"))

        assert response.content == b"asset /index.html"
        assert missing is None

    @pytest.mark.asyncio
    async def test_resume_reuses_installed_generation(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            installer = InterceptorWorker(_config(), storage, ClientHost(), http)
            await installer.install()

        async with make_client(site(down=True)) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            await worker.resume()
            assert worker.state is WorkerState.ACTIVE
            response = await worker.handle_fetch(httpx.Request("GET", f"{ORIGIN}/"))
        assert response.content == b"asset /"

    @pytest.mark.asyncio
    async def test_resume_requires_ready_store(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        async with make_client(site()) as http:
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(LifecycleError, match="not installed"):
                await worker.resume()

            storage.open("alliopro-cache-v1")
            worker = InterceptorWorker(_config(), storage, ClientHost(), http)
            with pytest.raises(LifecycleError, match="never finished"):
                await worker.resume()


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    @pytest.mark.asyncio
    async def test_register_activates_and_supersedes(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        registration = Registration(ClientHost())
        page = registration.host.open(f"{ORIGIN}/")
        async with make_client(site()) as http:
            old = InterceptorWorker(_config("alliopro-cache-v0"), storage, registration.host, http)
            await registration.register(old)
            assert registration.active is old
            assert page.controller == "alliopro-cache-v0"

            new = InterceptorWorker(_config(), storage, registration.host, http)
            await registration.register(new)

        assert registration.active is new
        assert registration.waiting is None
        assert old.state is WorkerState.SUPERSEDED
        assert new.state is WorkerState.ACTIVE
        assert page.controller == "alliopro-cache-v1"
        assert storage.keys() == ["alliopro-cache-v1"]

    @pytest.mark.asyncio
    async def test_failed_install_leaves_active_worker(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        registration = Registration(ClientHost())
        async with make_client(site()) as http:
            current = InterceptorWorker(_config("alliopro-cache-v0"), storage, registration.host, http)
            await registration.register(current)

        async with make_client(site(down=True)) as http:
            broken = InterceptorWorker(_config(), storage, registration.host, http)
            with pytest.raises(PrecacheError):
                await registration.register(broken)

        assert registration.active is current
        assert registration.installing is None
        assert storage.keys() == ["alliopro-cache-v0"]

    @pytest.mark.asyncio
    async def test_dispatch_without_active_worker(self) -> None:
        registration = Registration(ClientHost())
        with pytest.raises(LifecycleError):
            await registration.dispatch_fetch(httpx.Request("GET", f"{ORIGIN}/"))

    @pytest.mark.asyncio
    async def test_promote_without_waiting_worker(self) -> None:
        with pytest.raises(LifecycleError):
            await Registration(ClientHost()).promote()

    @pytest.mark.asyncio
    async def test_dispatch_routes_to_active_worker(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        registration = Registration(ClientHost())
        page = registration.host.open(f"{ORIGIN}/")
        async with make_client(site()) as http:
            await registration.register(InterceptorWorker(_config(), storage, registration.host, http))
            response = await registration.dispatch_fetch(
                httpx.Request("GET", f"{ORIGIN}/data.json"), client_id=page.id
            )
        assert response.json() == {"items": [1, 2, 3]}
        assert registration._inflight == {}

    @pytest.mark.asyncio
    async def test_navigate_cancels_inflight_fetch(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        started = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/slow":
                started.set()
                await asyncio.sleep(0.5)
                return httpx.Response(200, content=b"slow")
            return site()(request)

        registration = Registration(ClientHost())
        page = registration.host.open(f"{ORIGIN}/")
        async with make_client(handler) as http:
            await registration.register(InterceptorWorker(_config(), storage, registration.host, http))
            pending = asyncio.ensure_future(
                registration.dispatch_fetch(
                    httpx.Request("GET", f"{ORIGIN}/slow"), client_id=page.id
                )
            )
            await started.wait()
            cancelled = registration.navigate(page.id, f"{ORIGIN}/about")
            with pytest.raises(asyncio.CancelledError):
                await pending

        assert cancelled == 1
        assert page.url == f"{ORIGIN}/about"
        assert storage.open("alliopro-cache-v1").match(
            request_key(httpx.Request("GET", f"{ORIGIN}/slow"))
        ) is None

    @pytest.mark.asyncio
    async def test_inflight_fetch_survives_generation_swap(
        self, storage: CacheStorage, site, make_client
    ) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/slow":
                started.set()
                await release.wait()
                return httpx.Response(200, content=b"slow")
            return site()(request)

        registration = Registration(ClientHost())
        page = registration.host.open(f"{ORIGIN}/")
        async with make_client(handler) as http:
            old = InterceptorWorker(_config("alliopro-cache-v0"), storage, registration.host, http)
            await registration.register(old)
            pending = asyncio.ensure_future(
                registration.dispatch_fetch(
                    httpx.Request("GET", f"{ORIGIN}/slow"), client_id=page.id
                )
            )
            await started.wait()

            await registration.register(
                InterceptorWorker(_config(), storage, registration.host, http)
            )
            assert storage.keys() == ["alliopro-cache-v1"]

            release.set()
            response = await pending

        assert response.status_code == 200
        assert response.content == b"slow"
        assert old.state is WorkerState.SUPERSEDED
        assert storage.keys() == ["alliopro-cache-v1"]

    def test_navigate_unknown_client(self) -> None:
        with pytest.raises(InvalidUsageError):
            Registration(ClientHost()).navigate("nope", f"{ORIGIN}/")
