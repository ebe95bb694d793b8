"""
Wiring - builds the hub's components once from Settings and injects them.
"""

from datetime import timedelta

import httpx
from loguru import logger

from eohub.auth.credentials import CredentialStore
from eohub.auth.storage import FileTokenStorage, MemoryTokenStorage, TokenStorage
from eohub.datasource.appeears import AppEearsAdapter
from eohub.datasource.smap import CropCasmaAdapter
from eohub.datasource.worldview import WorldviewAdapter
from eohub.integrator.fallback import OfflineFallbackGenerator
from eohub.integrator.router import DataIntegrator
from eohub.scheduler import DataScheduler
from eohub.services.cache import DataCache
from eohub.services.http import ProviderClient
from eohub.services.persistence import CacheSnapshotStore
from eohub.services.rate_limiter import RateLimiter
from eohub.services.request_queue import RequestQueue
from eohub.settings import Settings


class EOHub:
    """
    Owns every long-lived component of the data hub.

    Usage:
        hub = create_hub(global_settings)
        await hub.start()
        response = await hub.integrator.fetch_precipitation(params)
        await hub.close()
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        credentials: CredentialStore,
        client: ProviderClient,
        cache: DataCache,
        integrator: DataIntegrator,
        scheduler: DataScheduler,
    ):
        self.settings = settings
        self.http_client = http_client
        self.credentials = credentials
        self.client = client
        self.cache = cache
        self.integrator = integrator
        self.scheduler = scheduler

    async def start(self, with_scheduler: bool = True) -> None:
        await self.cache.load(timedelta(hours=self.settings.cache_cleanup_hours))
        if with_scheduler:
            self.scheduler.start()
        logger.info("EOHub started")

    async def close(self) -> None:
        self.scheduler.stop()
        await self.integrator.close()
        await self.credentials.close()
        await self.client.close()
        await self.http_client.aclose()
        logger.info("EOHub stopped")


def create_hub(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
    token_storage: TokenStorage | None = None,
) -> EOHub:
    """
    Build a hub from settings.

    Args:
        settings: Configuration values
        transport: Optional httpx transport, shared by all outbound calls
        token_storage: Overrides the file-backed token storage
    """
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.http_timeout),
        follow_redirects=True,
        transport=transport,
    )

    if token_storage is None:
        if settings.auth_storage_path:
            token_storage = FileTokenStorage(settings.auth_storage_path)
        else:
            token_storage = MemoryTokenStorage()

    credentials = CredentialStore(
        client_id=settings.earthdata_client_id,
        redirect_uri=settings.earthdata_redirect_uri,
        base_url=settings.earthdata_base_url,
        scope=settings.earthdata_scope,
        storage=token_storage,
        timeout=settings.http_timeout,
        http_client=http_client,
    )

    client = ProviderClient(
        timeout=settings.http_timeout,
        user_agent=settings.user_agent,
        credentials=credentials,
        http_client=http_client,
    )

    window = settings.rate_limit_window_seconds
    adapters = [
        CropCasmaAdapter(
            client,
            wcs_url=settings.cropcasma_wcs_url,
            rate_limiter=RateLimiter("cropcasma", settings.cropcasma_rate_limit, window),
        ),
        AppEearsAdapter(
            client,
            base_url=settings.appeears_base_url,
            rate_limiter=RateLimiter("appeears", settings.appeears_rate_limit, window),
            poll_interval=settings.task_poll_interval,
            max_wait=settings.task_max_wait,
        ),
        WorldviewAdapter(
            client,
            wmts_url=settings.worldview_wmts_url,
            rate_limiter=RateLimiter("worldview", settings.worldview_rate_limit, window),
        ),
    ]

    store = CacheSnapshotStore(settings.cache_path) if settings.cache_path else None
    cache = DataCache(
        max_size=settings.cache_max_size,
        store=store,
        offline_retention=timedelta(days=settings.cache_offline_retention_days),
        debug=settings.cache_debug,
    )

    integrator = DataIntegrator(
        adapters=adapters,
        cache=cache,
        fallback=OfflineFallbackGenerator(seed=settings.fallback_seed),
        queue=RequestQueue(),
        fresh_ttl=timedelta(minutes=settings.cache_fresh_minutes),
        request_timeout=settings.request_timeout,
        offline_mode=settings.offline_mode,
        debug=settings.cache_debug,
    )

    scheduler = DataScheduler(
        integrator,
        credentials,
        queue_tick_seconds=settings.queue_tick_seconds,
        auth_check_seconds=settings.auth_check_interval_seconds,
        cleanup_interval_minutes=settings.cache_cleanup_interval_minutes,
        cleanup_max_age=timedelta(hours=settings.cache_cleanup_hours),
    )

    return EOHub(
        settings=settings,
        http_client=http_client,
        credentials=credentials,
        client=client,
        cache=cache,
        integrator=integrator,
        scheduler=scheduler,
    )
