"""
DataIntegrator - Resolution-aware entry point over all source adapters.

Features:
- Routes (kind, resolution) to the product and adapter that serve it
- Fallback chain: fresh cache -> live -> stale cache -> synthetic
- One live fetch per cache key at a time, bounded by a request timeout
- Quality scoring and educational enrichment of every response
- Optional FIFO queue for background fetches
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any

from loguru import logger

from eohub.datasource.base import BaseSourceAdapter
from eohub.datasource.registry import select_source
from eohub.exceptions import AdapterError, FallbackExhaustedError
from eohub.integrator.education import enrich, explain_data_limitations
from eohub.integrator.fallback import OfflineFallbackGenerator
from eohub.integrator.quality import compute_statistics, validate_data_quality
from eohub.models import (
    CacheEntry,
    DataKind,
    DataRequest,
    DataResponse,
    Depth,
    RequestParams,
    ResponseOrigin,
    SourceData,
    SourceDescriptor,
)
from eohub.services.cache import DataCache, make_cache_key
from eohub.services.deduplicator import RequestDeduplicator
from eohub.services.request_queue import RequestQueue
from eohub.services.result import Err, ErrorKind, Ok, Result, run_chain

OFFLINE_CONFIDENCE = 0.1

SOIL_MOISTURE_RESOLUTION = 9000
PRECIPITATION_RESOLUTION = 11000


class DataIntegrator:
    """
    Serves data requests at a requested resolution.

    Usage:
        integrator = DataIntegrator(adapters=[cropcasma, appeears, worldview], cache=cache)

        response = await integrator.get_data_at_resolution(
            DataKind.VEGETATION,
            250,
            RequestParams(latitude=37.5, longitude=127.0),
        )
    """

    def __init__(
        self,
        adapters: list[BaseSourceAdapter],
        cache: DataCache,
        fallback: OfflineFallbackGenerator | None = None,
        queue: RequestQueue | None = None,
        fresh_ttl: timedelta = timedelta(hours=1),
        request_timeout: float = 330.0,
        offline_mode: bool = False,
        debug: bool = False,
    ):
        self._adapters = {adapter.source_id: adapter for adapter in adapters}
        self._cache = cache
        self._fallback = fallback
        self._queue = queue or RequestQueue()
        self._fresh_ttl = fresh_ttl
        self._request_timeout = request_timeout
        self._offline_mode = offline_mode
        self._live = RequestDeduplicator(name="live", debug=debug)

    @property
    def cache(self) -> DataCache:
        return self._cache

    @property
    def queue(self) -> RequestQueue:
        return self._queue

    @property
    def offline_mode(self) -> bool:
        return self._offline_mode

    def set_offline_mode(self, enabled: bool) -> None:
        if enabled != self._offline_mode:
            logger.info(f"Offline mode {'enabled' if enabled else 'disabled'}")
        self._offline_mode = enabled

    def get_adapter(self, source_id: str) -> BaseSourceAdapter | None:
        return self._adapters.get(source_id)

    def select_source(
        self,
        kind: DataKind | str,
        resolution_meters: int,
        depth: Depth | None = None,
    ) -> SourceDescriptor:
        return select_source(DataKind(kind), resolution_meters, depth)

    async def get_data_at_resolution(
        self,
        kind: DataKind | str,
        resolution_meters: int,
        params: RequestParams,
    ) -> DataResponse:
        """
        Fetch data of a kind at a resolution, falling back as needed.

        Args:
            kind: Data kind
            resolution_meters: Desired resolution
            params: Location, dates and options

        Returns:
            DataResponse tagged with the tier that produced it

        Raises:
            UnsupportedResolutionError: No source serves this resolution
            FallbackExhaustedError: Every fallback tier failed
        """
        kind = DataKind(kind)
        descriptor = self.select_source(kind, resolution_meters, params.depth)
        request = DataRequest.build(kind, resolution_meters, params)
        key = make_cache_key(
            descriptor.product,
            request.latitude,
            request.longitude,
            request.reference_date,
            descriptor.depth,
        )

        first = await self._fresh_cache(key)
        result = await run_chain(
            first,
            [
                lambda err: self._live_fetch(err, key, descriptor, request),
                lambda err: self._stale_cache(err, key),
                lambda err: self._synthetic(err, key, descriptor, request),
            ],
        )

        if isinstance(result, Ok):
            return result.value

        logger.error(f"All fallbacks failed for {key}: {result.describe()}")
        raise FallbackExhaustedError(key, result.describe()) from result.cause

    # Convenience entry points

    async def fetch_soil_moisture(
        self, depth: Depth | str, params: RequestParams
    ) -> DataResponse:
        params = params.model_copy(update={"depth": Depth(depth)})
        return await self.get_data_at_resolution(
            DataKind.SOIL_MOISTURE, SOIL_MOISTURE_RESOLUTION, params
        )

    async def fetch_vegetation(
        self, resolution_meters: int, params: RequestParams
    ) -> DataResponse:
        return await self.get_data_at_resolution(
            DataKind.VEGETATION, resolution_meters, params
        )

    async def fetch_precipitation(self, params: RequestParams) -> DataResponse:
        return await self.get_data_at_resolution(
            DataKind.PRECIPITATION, PRECIPITATION_RESOLUTION, params
        )

    async def fetch_imagery(
        self, resolution_meters: int, params: RequestParams
    ) -> DataResponse:
        return await self.get_data_at_resolution(
            DataKind.IMAGERY, resolution_meters, params
        )

    # Fallback steps

    async def _fresh_cache(self, key: str) -> Result[DataResponse]:
        entry = await self._cache.get(key)
        if entry is None:
            return Err(ErrorKind.CACHE_MISS, key)
        if datetime.now() - entry.cached_at >= self._fresh_ttl:
            return Err(ErrorKind.CACHE_EXPIRED, f"{key} cached {entry.age_seconds():.0f}s ago")
        return Ok(self._from_cache(entry, ResponseOrigin.CACHE))

    async def _live_fetch(
        self,
        err: Err,
        key: str,
        descriptor: SourceDescriptor,
        request: DataRequest,
    ) -> Result[DataResponse]:
        if self._offline_mode:
            return Err(ErrorKind.OFFLINE_MODE, "live fetch skipped", cause=err.cause)

        adapter = self._adapters.get(descriptor.adapter_id)
        if adapter is None:
            return Err(
                ErrorKind.ADAPTER_FAILURE,
                f"no adapter registered for '{descriptor.adapter_id}'",
            )

        try:
            response = await self._live.dedupe(
                key, lambda: self._fetch_and_store(adapter, key, descriptor, request)
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Live fetch of {descriptor.product} timed out after {self._request_timeout}s"
            )
            return Err(ErrorKind.TIMEOUT, f"{descriptor.product} timed out", cause=e)
        except AdapterError as e:
            logger.warning(f"Live fetch of {descriptor.product} failed: {e}")
            return Err(ErrorKind.ADAPTER_FAILURE, str(e), cause=e)
        except Exception as e:
            logger.exception(f"Unexpected error fetching {descriptor.product} live")
            return Err(ErrorKind.ADAPTER_FAILURE, f"{type(e).__name__}: {e}", cause=e)

        return Ok(response)

    async def _fetch_and_store(
        self,
        adapter: BaseSourceAdapter,
        key: str,
        descriptor: SourceDescriptor,
        request: DataRequest,
    ) -> DataResponse:
        # wait_for cancels the adapter, which stops task polling
        data = await asyncio.wait_for(
            adapter.fetch(descriptor.product, request),
            timeout=self._request_timeout,
        )
        response = self._build_response(data, descriptor, request, ResponseOrigin.LIVE)
        await self._cache.set(key, response)
        logger.info(
            f"Fetched {descriptor.product} from {adapter.source_id} "
            f"(confidence {response.quality.confidence_score:.2f})"
        )
        return response

    async def _stale_cache(self, err: Err, key: str) -> Result[DataResponse]:
        entry = await self._cache.get(key)
        if entry is None:
            return Err(ErrorKind.NO_STALE_ENTRY, err.describe(), cause=err.cause)

        logger.warning(
            f"Serving stale cache for {key} ({entry.age_seconds():.0f}s old) after {err.describe()}"
        )
        return Ok(self._from_cache(entry, ResponseOrigin.STALE_CACHE))

    async def _synthetic(
        self,
        err: Err,
        key: str,
        descriptor: SourceDescriptor,
        request: DataRequest,
    ) -> Result[DataResponse]:
        if self._fallback is None:
            return Err(ErrorKind.GENERATOR_UNAVAILABLE, err.describe(), cause=err.cause)

        logger.warning(f"Serving synthetic {descriptor.product} for {key}")
        data = self._fallback.generate(descriptor, request, key)
        response = self._build_response(data, descriptor, request, ResponseOrigin.OFFLINE)
        quality = response.quality.model_copy(
            update={
                "confidence_score": OFFLINE_CONFIDENCE,
                "issues": response.quality.issues | {"offline", "synthetic"},
            }
        )
        return Ok(response.model_copy(update={"quality": quality}))

    # Response assembly

    def _build_response(
        self,
        data: SourceData,
        descriptor: SourceDescriptor,
        request: DataRequest,
        origin: ResponseOrigin,
    ) -> DataResponse:
        return DataResponse(
            kind=descriptor.kind,
            source_id=data.source_id,
            product=descriptor.product,
            resolution_meters=descriptor.native_resolution,
            values=data.values,
            statistics=compute_statistics(data.values),
            quality=validate_data_quality(data),
            educational=enrich(data, descriptor),
            extras=data.extras,
            asset=data.asset,
            location=request.location,
            timestamp=data.timestamp or datetime.now(),
            cached=False,
            origin=origin,
        )

    def _from_cache(self, entry: CacheEntry, origin: ResponseOrigin) -> DataResponse:
        response = entry.payload
        update: dict[str, Any] = {"cached": True, "origin": origin}
        if origin is ResponseOrigin.STALE_CACHE:
            update["quality"] = response.quality.model_copy(
                update={"issues": response.quality.issues | {"stale_cache"}}
            )
        return response.model_copy(update=update)

    # Queue

    def enqueue(
        self,
        kind: DataKind | str,
        resolution_meters: int,
        params: RequestParams,
    ) -> asyncio.Future:
        """Queue a fetch for a later tick. The future resolves to its response."""
        kind = DataKind(kind)
        return self._queue.enqueue(
            lambda: self.get_data_at_resolution(kind, resolution_meters, params),
            name=f"{kind.value}@{resolution_meters}m",
        )

    async def tick(self) -> bool:
        """Process one queued fetch. Returns False if nothing was pending."""
        return await self._queue.process_next()

    def explain_data_limitations(self, response: DataResponse) -> list[str]:
        return explain_data_limitations(response)

    def get_status(self) -> dict[str, Any]:
        return {
            "offline_mode": self._offline_mode,
            "adapters": {
                source_id: {
                    "configured": adapter.is_configured(),
                    "rate_limit": adapter.rate_limiter.get_status(),
                }
                for source_id, adapter in self._adapters.items()
            },
            "cache": self._cache.get_stats().to_dict(),
            "queue": self._queue.get_status(),
            "live_requests": self._live.get_stats().to_dict(),
        }

    async def close(self) -> None:
        cancelled = await self._live.cancel_all()
        if cancelled:
            logger.info(f"Cancelled {cancelled} in-flight live fetches")
