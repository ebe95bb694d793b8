"""
NASA GIBS / Worldview true-color imagery via WMTS tiles.

Tiles are addressed by layer, date and {zoom}/{row}/{col} on the
GoogleMapsCompatible_Level9 matrix set. Imagery carries no numeric values.
"""

from datetime import date, datetime, timedelta
from typing import Any

from eohub.datasource.base import SyncSourceAdapter
from eohub.exceptions import MalformedPayloadError
from eohub.geo import TileCoordinates, tile_coordinates
from eohub.models import DataRequest, ImageryAsset, SourceData
from eohub.services.http import ProviderClient
from eohub.services.rate_limiter import RateLimiter

MATRIX_SET = "GoogleMapsCompatible_Level9"
MAX_ZOOM = 9

WORLDVIEW_LAYERS = {
    "VIIRS_NDVI": {
        "layer": "VIIRS_SNPP_CorrectedReflectance_TrueColor",
        "format": "image/jpeg",
        "description": "VIIRS True Color imagery",
    },
    "VIIRS_IMAGERY": {
        "layer": "VIIRS_SNPP_CorrectedReflectance_TrueColor",
        "format": "image/jpeg",
        "description": "VIIRS True Color imagery",
    },
    "MODIS_IMAGERY": {
        "layer": "MODIS_Terra_CorrectedReflectance_TrueColor",
        "format": "image/jpeg",
        "description": "MODIS Terra True Color",
    },
    "LANDSAT_IMAGERY": {
        "layer": "Landsat_WELD_CorrectedReflectance_TrueColor_Global_Annual",
        "format": "image/png",
        "description": "Landsat Annual True Color Composite",
    },
}

FILE_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png"}


def latest_available_date(today: date | None = None) -> date:
    """Most imagery lands with a one to two day delay."""
    return (today or date.today()) - timedelta(days=2)


class WorldviewAdapter(SyncSourceAdapter):
    """GIBS WMTS tile adapter for context imagery."""

    SOURCE_ID = "worldview"

    def __init__(
        self,
        client: ProviderClient,
        wmts_url: str = "https://gibs.earthdata.nasa.gov/wmts/epsg3857/best",
        rate_limiter: RateLimiter | None = None,
    ):
        super().__init__(client, rate_limiter)
        self.wmts_url = wmts_url.rstrip("/")

    @property
    def source_id(self) -> str:
        return self.SOURCE_ID

    @property
    def products(self) -> tuple[str, ...]:
        return tuple(WORLDVIEW_LAYERS)

    def build_tile_url(
        self, product: str, request: DataRequest
    ) -> tuple[str, TileCoordinates]:
        """Return the tile URL and its tile coordinates."""
        config = WORLDVIEW_LAYERS[product]
        zoom = min(request.zoom_level, MAX_ZOOM)
        tile = tile_coordinates(request.latitude, request.longitude, zoom)
        day = request.reference_date or latest_available_date()
        ext = FILE_EXTENSIONS.get(config["format"], "jpg")
        url = (
            f"{self.wmts_url}/{config['layer']}/default/{day.isoformat()}/"
            f"{MATRIX_SET}/{tile.zoom}/{tile.row}/{tile.col}.{ext}"
        )
        return url, tile

    async def _request(self, product: str, request: DataRequest) -> Any:
        url, tile = self.build_tile_url(product, request)
        content, content_type = await self.client.get_bytes(self.source_id, url)
        return {"url": url, "tile": tile, "content": content, "content_type": content_type}

    def _parse(self, product: str, request: DataRequest, raw: Any) -> SourceData:
        config = WORLDVIEW_LAYERS[product]
        content: bytes = raw["content"]
        if not content:
            raise MalformedPayloadError(
                f"Empty tile for {product} at {raw['url']}", source_id=self.source_id
            )

        tile = raw["tile"]
        content_type = (raw["content_type"] or config["format"]).split(";")[0].strip()
        descriptor = self.describe(product)

        day = request.reference_date
        timestamp = datetime.combine(day, datetime.min.time()) if day else datetime.now()

        return SourceData(
            source_id=self.source_id,
            product=product,
            kind=descriptor.kind,
            resolution_meters=descriptor.native_resolution,
            timestamp=timestamp,
            educational=self._educational(
                product,
                description=config["description"],
                note="Visual imagery for context and validation of data products",
            ),
            extras={"layer": config["layer"]},
            asset=ImageryAsset(
                url=raw["url"],
                layer=config["layer"],
                content_type=content_type,
                size_bytes=len(content),
                zoom=tile.zoom,
                row=tile.row,
                col=tile.col,
            ),
        )
