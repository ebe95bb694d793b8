"""
Tests for the resolution-aware integrator, its fallback chain and wiring.
"""

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from eohub.app import create_hub
from eohub.datasource.smap import CropCasmaAdapter
from eohub.exceptions import (
    FallbackExhaustedError,
    ProviderHTTPError,
    UnsupportedResolutionError,
)
from eohub.integrator.fallback import OfflineFallbackGenerator
from eohub.integrator.router import DataIntegrator
from eohub.models import DataKind, Depth, RequestParams, ResponseOrigin
from eohub.scheduler import DataScheduler
from eohub.services.cache import DataCache, make_cache_key
from eohub.services.http import ProviderClient
from eohub.settings import Settings

from conftest import FakeAppEears, FakeSoilAdapter, make_appeears, make_response

SURFACE_KEY = make_cache_key("SMAP_L3", 37.5, 127.0, None, Depth.SURFACE)


def make_integrator(adapter, fallback=None, **kwargs) -> DataIntegrator:
    return DataIntegrator(
        adapters=[adapter],
        cache=DataCache(max_size=10),
        fallback=fallback,
        **kwargs,
    )


class TestLiveAndCache:
    """Tests for the live tier and fresh cache hits."""

    def test_soil_moisture_end_to_end(self, params) -> None:
        """A WCS reading flows through to statistics, then serves from cache."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"values": [0.28]})

        async def scenario():
            client = ProviderClient(transport=httpx.MockTransport(handler))
            integrator = make_integrator(CropCasmaAdapter(client, wcs_url="https://wcs.test"))
            first = await integrator.fetch_soil_moisture(Depth.SURFACE, params)
            second = await integrator.fetch_soil_moisture("surface", params)
            await client.close()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.statistics.mean == pytest.approx(0.28)
        assert first.source_id == "cropcasma"
        assert first.product == "SMAP_L3"
        assert first.resolution_meters == 9000
        assert first.cached is False
        assert first.origin is ResponseOrigin.LIVE
        assert first.quality.is_valid
        assert first.educational["pixel_size"] == "9km × 9km"

        assert second.cached is True
        assert second.origin is ResponseOrigin.CACHE
        assert len(calls) == 1

    def test_root_zone_uses_l4(self, params) -> None:
        adapter = FakeSoilAdapter(values=[0.35])

        async def scenario():
            integrator = make_integrator(adapter)
            return await integrator.fetch_soil_moisture(Depth.ROOT_ZONE, params)

        response = asyncio.run(scenario())
        assert response.product == "SMAP_L4"
        assert response.educational["depth"] == "0-100cm"

    def test_concurrent_requests_share_one_fetch(self, params) -> None:
        adapter = FakeSoilAdapter(delay=0.05)

        async def scenario():
            integrator = make_integrator(adapter)
            return await asyncio.gather(
                integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params),
                integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params),
            )

        first, second = asyncio.run(scenario())
        assert adapter.calls == 1
        assert first.values == second.values == [0.3]

    def test_expired_entry_is_refetched(self, params) -> None:
        adapter = FakeSoilAdapter(values=[0.4])

        async def scenario():
            integrator = make_integrator(adapter)
            await integrator.cache.set(
                SURFACE_KEY, make_response(values=[0.1]), cached_at=datetime.now() - timedelta(hours=2)
            )
            return await integrator.get_data_at_resolution("soil_moisture", 9000, params)

        response = asyncio.run(scenario())
        assert adapter.calls == 1
        assert response.values == [0.4]
        assert response.origin is ResponseOrigin.LIVE


class TestFallback:
    """Tests for the stale, offline and exhausted tiers."""

    def test_stale_cache_after_adapter_failure(self, params) -> None:
        adapter = FakeSoilAdapter(error=ProviderHTTPError("cropcasma", 503))

        async def scenario():
            integrator = make_integrator(adapter, fallback=OfflineFallbackGenerator(seed=1))
            await integrator.cache.set(
                SURFACE_KEY, make_response(values=[0.22]), cached_at=datetime.now() - timedelta(hours=2)
            )
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        response = asyncio.run(scenario())
        assert response.origin is ResponseOrigin.STALE_CACHE
        assert response.cached is True
        assert response.values == [0.22]
        assert "stale_cache" in response.quality.issues

    def test_synthetic_when_nothing_cached(self, params) -> None:
        adapter = FakeSoilAdapter(error=ProviderHTTPError("cropcasma", 500))

        async def scenario():
            integrator = make_integrator(adapter, fallback=OfflineFallbackGenerator(seed=7))
            response = await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)
            return integrator, response

        integrator, response = asyncio.run(scenario())
        assert response.origin is ResponseOrigin.OFFLINE
        assert response.source_id == "offline"
        assert response.quality.confidence_score == pytest.approx(0.1)
        assert {"offline", "synthetic"} <= response.quality.issues
        assert 0.05 <= response.values[0] <= 0.6
        assert not integrator.cache.has(SURFACE_KEY)

    def test_seeded_synthetic_is_reproducible(self, params) -> None:
        async def scenario():
            integrator = make_integrator(
                FakeSoilAdapter(), fallback=OfflineFallbackGenerator(seed=3), offline_mode=True
            )
            a = await integrator.get_data_at_resolution(DataKind.PRECIPITATION, 11000, params)
            b = await integrator.get_data_at_resolution(DataKind.PRECIPITATION, 11000, params)
            return a, b

        a, b = asyncio.run(scenario())
        assert a.values == b.values
        assert len(a.values) == 30

    def test_malformed_bundle_falls_through_to_synthetic(self, params) -> None:
        """A bundle file with no id or content ends in the offline tier."""
        fake = FakeAppEears(
            [{"status": "done"}], files=[{"file_name": "MOD13Q1-NDVI-results.csv"}]
        )

        async def scenario():
            integrator = DataIntegrator(
                adapters=[make_appeears(fake)],
                cache=DataCache(max_size=10),
                fallback=OfflineFallbackGenerator(seed=1),
            )
            return await integrator.get_data_at_resolution(DataKind.VEGETATION, 250, params)

        response = asyncio.run(scenario())
        assert response.origin is ResponseOrigin.OFFLINE
        assert response.product == "MODIS_NDVI"

    def test_unexpected_adapter_error_falls_through(self, params) -> None:
        adapter = FakeSoilAdapter(error=KeyError("values"))

        async def scenario():
            integrator = make_integrator(adapter, fallback=OfflineFallbackGenerator(seed=1))
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        response = asyncio.run(scenario())
        assert adapter.calls == 1
        assert response.origin is ResponseOrigin.OFFLINE

    def test_offline_mode_skips_live(self, params) -> None:
        adapter = FakeSoilAdapter()

        async def scenario():
            integrator = make_integrator(
                adapter, fallback=OfflineFallbackGenerator(seed=1), offline_mode=True
            )
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        response = asyncio.run(scenario())
        assert adapter.calls == 0
        assert response.origin is ResponseOrigin.OFFLINE

    def test_offline_mode_prefers_stale_cache(self, params) -> None:
        adapter = FakeSoilAdapter()

        async def scenario():
            integrator = make_integrator(
                adapter, fallback=OfflineFallbackGenerator(seed=1), offline_mode=True
            )
            await integrator.cache.set(
                SURFACE_KEY, make_response(), cached_at=datetime.now() - timedelta(days=1)
            )
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        response = asyncio.run(scenario())
        assert adapter.calls == 0
        assert response.origin is ResponseOrigin.STALE_CACHE

    def test_timeout_falls_through_to_synthetic(self, params) -> None:
        adapter = FakeSoilAdapter(delay=0.5)

        async def scenario():
            integrator = make_integrator(
                adapter, fallback=OfflineFallbackGenerator(seed=1), request_timeout=0.05
            )
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        response = asyncio.run(scenario())
        assert response.origin is ResponseOrigin.OFFLINE

    def test_exhausted_without_generator(self, params) -> None:
        error = ProviderHTTPError("cropcasma", 502)

        async def scenario():
            integrator = make_integrator(FakeSoilAdapter(error=error))
            return await integrator.get_data_at_resolution(DataKind.SOIL_MOISTURE, 9000, params)

        with pytest.raises(FallbackExhaustedError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.cache_key == SURFACE_KEY
        assert exc_info.value.__cause__ is error

    def test_missing_adapter_falls_back(self, params) -> None:
        """Vegetation routes to AppEEARS, which is not registered here."""

        async def scenario():
            integrator = make_integrator(FakeSoilAdapter(), fallback=OfflineFallbackGenerator(seed=1))
            return await integrator.fetch_vegetation(250, params)

        response = asyncio.run(scenario())
        assert response.product == "MODIS_NDVI"
        assert response.origin is ResponseOrigin.OFFLINE

    def test_unsupported_resolution_propagates(self, params) -> None:
        async def scenario():
            integrator = make_integrator(FakeSoilAdapter(), fallback=OfflineFallbackGenerator())
            return await integrator.get_data_at_resolution(DataKind.VEGETATION, 400, params)

        with pytest.raises(UnsupportedResolutionError):
            asyncio.run(scenario())


class TestQueue:
    """Tests for queued fetches."""

    def test_enqueue_and_tick(self, params) -> None:
        adapter = FakeSoilAdapter()

        async def scenario():
            integrator = make_integrator(adapter)
            future = integrator.enqueue(DataKind.SOIL_MOISTURE, 9000, params)
            assert not future.done()
            assert adapter.calls == 0
            assert await integrator.tick() is True
            response = await future
            return response, await integrator.tick()

        response, second_tick = asyncio.run(scenario())
        assert response.values == [0.3]
        assert second_tick is False

    def test_failed_item_does_not_block_queue(self, params) -> None:
        async def scenario():
            integrator = make_integrator(FakeSoilAdapter())
            bad = integrator.enqueue(DataKind.VEGETATION, 400, params)
            good = integrator.enqueue(DataKind.SOIL_MOISTURE, 9000, params)
            drained = await integrator.queue.drain()
            return bad, good, drained, integrator.queue.get_status()

        bad, good, drained, status = asyncio.run(scenario())
        assert drained == 2
        assert isinstance(bad.exception(), UnsupportedResolutionError)
        assert good.result().values == [0.3]
        assert status["failed"] == 1
        assert status["processed"] == 1

    def test_items_run_in_order(self) -> None:
        from eohub.services.request_queue import RequestQueue

        order = []

        async def scenario():
            queue = RequestQueue()
            for name in ("a", "b", "c"):

                async def op(name=name):
                    order.append(name)
                    return name

                queue.enqueue(op, name=name)
            return await queue.drain()

        assert asyncio.run(scenario()) == 3
        assert order == ["a", "b", "c"]


class TestIntegratorStatus:
    def test_explain_limitations(self, params) -> None:
        async def scenario():
            integrator = make_integrator(FakeSoilAdapter())
            response = await integrator.fetch_soil_moisture(Depth.SURFACE, params)
            return integrator.explain_data_limitations(response)

        limitations = asyncio.run(scenario())
        assert "Useful for regional trends but not field-level precision" in limitations
        assert "Surface moisture may not reflect root zone conditions" in limitations

    def test_status(self) -> None:
        integrator = make_integrator(FakeSoilAdapter())
        integrator.set_offline_mode(True)
        status = integrator.get_status()
        assert status["offline_mode"] is True
        assert status["adapters"]["cropcasma"]["configured"] is True
        assert status["queue"]["pending"] == 0


class TestScheduler:
    """Tests for the maintenance jobs."""

    def test_start_registers_jobs(self) -> None:
        async def scenario():
            scheduler = DataScheduler(make_integrator(FakeSoilAdapter()))
            scheduler.start()
            status = scheduler.get_status()
            scheduler.stop()
            return status, scheduler.is_running

        status, running = asyncio.run(scenario())
        assert status["running"] is True
        assert {job["id"] for job in status["jobs"]} == {"queue_tick", "cache_cleanup"}
        assert running is False

    def test_run_now_drains_and_cleans(self, params) -> None:
        async def scenario():
            integrator = make_integrator(FakeSoilAdapter())
            await integrator.cache.set(
                "ancient", make_response(), cached_at=datetime.now() - timedelta(days=3)
            )
            future = integrator.enqueue(DataKind.SOIL_MOISTURE, 9000, params)
            await DataScheduler(integrator).run_now()
            return integrator, future

        integrator, future = asyncio.run(scenario())
        assert future.done()
        assert not integrator.cache.has("ancient")
        assert integrator.cache.has(SURFACE_KEY)


class TestCreateHub:
    """Tests for wiring from settings."""

    def test_hub_serves_soil_moisture(self, params) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "wcs.test":
                return httpx.Response(200, json={"values": [0.31]})
            return httpx.Response(404)

        settings = Settings.model_validate(
            {
                "CACHE_PATH": None,
                "AUTH_STORAGE_PATH": "",
                "CROPCASMA_WCS_URL": "https://wcs.test/wcs",
            }
        )

        async def scenario():
            hub = create_hub(settings, transport=httpx.MockTransport(handler))
            await hub.start(with_scheduler=False)
            try:
                return await hub.integrator.fetch_soil_moisture(Depth.SURFACE, params), hub
            finally:
                await hub.close()

        response, hub = asyncio.run(scenario())
        assert response.values == [0.31]
        assert response.origin is ResponseOrigin.LIVE
        assert not hub.credentials.is_authenticated()
        assert hub.integrator.get_adapter("appeears").is_configured()
