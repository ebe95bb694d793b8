"""
Data hub models using Pydantic.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DataKind(str, Enum):
    """Semantic data kinds served by the hub."""

    SOIL_MOISTURE = "soil_moisture"
    VEGETATION = "vegetation"
    PRECIPITATION = "precipitation"
    IMAGERY = "imagery"


class Depth(str, Enum):
    """Soil moisture depth products."""

    SURFACE = "surface"  # 0-5cm, SMAP L3
    ROOT_ZONE = "rootZone"  # 0-100cm, SMAP L4


class ResponseOrigin(str, Enum):
    """Which fallback tier produced a response."""

    LIVE = "live"
    CACHE = "cache"
    STALE_CACHE = "stale_cache"
    OFFLINE = "offline"


class Location(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class RequestParams(BaseModel):
    """Location and time parameters of a data request."""

    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    start_date: date | None = None
    end_date: date | None = None
    depth: Depth | None = None
    zoom_level: int = Field(default=8, ge=0, le=12)

    @model_validator(mode="after")
    def _check_date_range(self) -> "RequestParams":
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    @property
    def reference_date(self) -> date | None:
        """The date a point-in-time product should be looked up for."""
        return self.end_date or self.start_date

    @property
    def location(self) -> Location:
        return Location(latitude=self.latitude, longitude=self.longitude)


class DataRequest(RequestParams):
    """A fully specified request: what, where, when and how fine."""

    kind: DataKind
    resolution_meters: int = Field(..., gt=0)

    @classmethod
    def build(
        cls, kind: DataKind, resolution_meters: int, params: RequestParams
    ) -> "DataRequest":
        return cls(
            kind=kind,
            resolution_meters=resolution_meters,
            **params.model_dump(),
        )


class Statistics(BaseModel):
    mean: float | None = None
    min: float | None = None
    max: float | None = None
    valid_count: int = 0
    total_count: int = 0


class Quality(BaseModel):
    """Data quality assessment attached to every response."""

    is_valid: bool = True
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)
    completeness: float = Field(default=1.0, ge=0.0, le=1.0)
    issues: set[str] = Field(default_factory=set)


class ImageryAsset(BaseModel):
    """A fetched imagery tile."""

    url: str
    layer: str
    content_type: str = "image/jpeg"
    size_bytes: int = 0
    zoom: int
    row: int
    col: int


class SourceDescriptor(BaseModel):
    """Static description of one product served by one adapter."""

    model_config = ConfigDict(frozen=True)

    product: str
    kind: DataKind
    adapter_id: str
    native_resolution: int
    max_resolution: int
    label: str
    revisit_time: str = "Variable"
    depth: Depth | None = None
    depth_range: str | None = None


class SourceData(BaseModel):
    """Raw result of an adapter fetch, before validation and enrichment."""

    source_id: str
    product: str
    kind: DataKind
    resolution_meters: int
    values: list[float | None] = Field(default_factory=list)
    timestamp: datetime | None = None
    spatial_accuracy: float | None = None
    educational: dict[str, Any] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(default_factory=dict)
    asset: ImageryAsset | None = None


class DataResponse(BaseModel):
    """What callers receive from the integrator."""

    kind: DataKind
    source_id: str
    product: str
    resolution_meters: int
    values: list[float | None] = Field(default_factory=list)
    statistics: Statistics = Field(default_factory=Statistics)
    quality: Quality = Field(default_factory=Quality)
    educational: dict[str, Any] = Field(default_factory=dict)
    extras: dict[str, Any] = Field(default_factory=dict)
    asset: ImageryAsset | None = None
    location: Location
    timestamp: datetime
    cached: bool = False
    origin: ResponseOrigin = ResponseOrigin.LIVE


class CacheEntry(BaseModel):
    """A cached response and its bookkeeping."""

    key: str
    payload: DataResponse
    cached_at: datetime
    offline_priority: bool = False

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or datetime.now()) - self.cached_at).total_seconds()


class AuthToken(BaseModel):
    """OAuth token pair. Replaced wholesale on refresh, never edited."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(alias="token")
    refresh_token: str | None = Field(default=None, alias="refreshToken")
    expires_at: datetime = Field(alias="expiresAt")
    user_info: dict[str, Any] | None = Field(default=None, alias="userInfo")

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or datetime.now()) >= self.expires_at


class AuthStatus(BaseModel):
    is_authenticated: bool
    has_token: bool
    has_refresh_token: bool
    expires_at: datetime | None = None
    expires_in_seconds: float = 0.0
    user_info: dict[str, Any] | None = None


