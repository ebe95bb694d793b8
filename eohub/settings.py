import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    # Earthdata Login (OAuth)
    earthdata_base_url: str = Field(
        default="https://urs.earthdata.nasa.gov", alias="EARTHDATA_BASE_URL"
    )
    earthdata_client_id: str = Field(
        default="nasa_farm_navigators", alias="EARTHDATA_CLIENT_ID"
    )
    earthdata_redirect_uri: str = Field(
        default="http://localhost:3000/auth/callback", alias="EARTHDATA_REDIRECT_URI"
    )
    earthdata_scope: str = Field(default="read", alias="EARTHDATA_SCOPE")
    auth_storage_path: str = Field(
        default="./data/earthdata_auth.json", alias="AUTH_STORAGE_PATH"
    )
    auth_check_interval_seconds: int = Field(default=60, alias="AUTH_CHECK_INTERVAL")

    # Provider endpoints
    appeears_base_url: str = Field(
        default="https://appeears.earthdatacloud.nasa.gov/api",
        alias="APPEEARS_BASE_URL",
    )
    cropcasma_wcs_url: str = Field(
        default="https://gimms.gsfc.nasa.gov/cgi-bin/smap_wcs.cgi",
        alias="CROPCASMA_WCS_URL",
    )
    worldview_wmts_url: str = Field(
        default="https://gibs.earthdata.nasa.gov/wmts/epsg3857/best",
        alias="WORLDVIEW_WMTS_URL",
    )
    user_agent: str = Field(default="eohub/1.0", alias="USER_AGENT")

    # Request behaviour
    http_timeout: float = Field(default=30.0, alias="HTTP_TIMEOUT")
    request_timeout: float = Field(default=330.0, alias="REQUEST_TIMEOUT")
    task_poll_interval: float = Field(default=5.0, alias="TASK_POLL_INTERVAL")
    task_max_wait: float = Field(default=300.0, alias="TASK_MAX_WAIT")
    appeears_rate_limit: int = Field(default=100, alias="APPEEARS_RATE_LIMIT")
    cropcasma_rate_limit: int = Field(default=60, alias="CROPCASMA_RATE_LIMIT")
    worldview_rate_limit: int = Field(default=120, alias="WORLDVIEW_RATE_LIMIT")
    rate_limit_window_seconds: float = Field(default=60.0, alias="RATE_LIMIT_WINDOW")

    # Cache Configuration
    cache_max_size: int = Field(default=100, alias="CACHE_MAX_SIZE")
    cache_path: str | None = Field(
        default="./data/eohub_cache.json", alias="CACHE_PATH"
    )
    cache_fresh_minutes: int = Field(default=60, alias="CACHE_FRESH_MINUTES")
    cache_cleanup_hours: int = Field(default=24, alias="CACHE_CLEANUP_HOURS")
    cache_offline_retention_days: int = Field(
        default=7, alias="CACHE_OFFLINE_RETENTION_DAYS"
    )
    cache_cleanup_interval_minutes: int = Field(
        default=30, alias="CACHE_CLEANUP_INTERVAL"
    )
    cache_debug: bool = Field(default=False, alias="CACHE_DEBUG")

    # Integrator
    offline_mode: bool = Field(default=False, alias="OFFLINE_MODE")
    fallback_seed: int | None = Field(default=None, alias="FALLBACK_SEED")
    queue_tick_seconds: float = Field(default=1.0, alias="QUEUE_TICK_SECONDS")


global_settings = Settings.model_validate(dict(os.environ))
