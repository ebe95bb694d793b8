"""
Crop-CASMA SMAP soil moisture via OGC WCS.

Docs: https://cloud.csiss.gmu.edu/Crop-CASMA/
Surface (L3, 0-5cm) and root zone (L4, 0-100cm) products at 9km.
"""

from datetime import date, datetime, timedelta
from typing import Any

from eohub.datasource.base import SyncSourceAdapter
from eohub.exceptions import MalformedPayloadError
from eohub.geo import point_bbox
from eohub.models import DataKind, DataRequest, SourceData
from eohub.services.http import ProviderClient
from eohub.services.rate_limiter import RateLimiter

FILL_VALUE = -9999

# coverage ids on the WCS server
SMAP_PRODUCTS = {
    "SMAP_L3": {
        "product": "SPL3SMP_E",
        "version": "005",
        "layer": "Soil_Moisture_Retrieval_Data_AM_soil_moisture",
    },
    "SMAP_L4": {
        "product": "SPL4SMGP",
        "version": "006",
        "layer": "Geophysical_Data_sm_rootzone",
    },
}

# (upper bound, class), checked in order
MOISTURE_CLASSES = [
    (0.15, "very_dry"),
    (0.25, "dry"),
    (0.4, "moderate"),
    (0.55, "moist"),
]

SURFACE_ADVICE = {
    "very_dry": "Surface may appear cracked. Check deeper soil moisture for root zone status.",
    "dry": "Monitor deeper soil moisture for full picture.",
    "moderate": "Typical for dry periods between irrigation/rain.",
    "moist": "Recent precipitation or irrigation evident.",
    "wet": "May indicate recent heavy precipitation.",
}

ROOT_ZONE_ADVICE = {
    "very_dry": "Crops likely experiencing water stress. Irrigation recommended.",
    "dry": "May need irrigation depending on crop type and growth stage.",
    "moderate": "Generally adequate for most crops.",
    "moist": "Optimal conditions for most crops.",
    "wet": "Risk of waterlogging for some crops.",
}

CLASS_LEADS = {
    "very_dry": "Very dry {ctx} conditions.",
    "dry": "Dry {ctx} conditions.",
    "moderate": "Moderate {ctx} moisture.",
    "moist": "Good {ctx} moisture levels.",
    "wet": "High {ctx} moisture.",
}


def classify_moisture(value: float | None) -> str:
    if value is None:
        return "unknown"
    for bound, label in MOISTURE_CLASSES:
        if value < bound:
            return label
    return "wet"


def interpret_moisture(value: float | None, depth_range: str) -> str:
    """Plain-language reading of a moisture value at a depth."""
    if value is None:
        return "Data unavailable for this location and time"

    label = classify_moisture(value)
    surface = depth_range == "0-5cm"
    ctx = "surface" if surface else "root zone"
    advice = SURFACE_ADVICE if surface else ROOT_ZONE_ADVICE
    return f"{CLASS_LEADS[label].format(ctx=ctx)} {advice[label]}"


def most_recent_date(today: date | None = None) -> date:
    """SMAP products lag real time by about three days."""
    return (today or date.today()) - timedelta(days=3)


class CropCasmaAdapter(SyncSourceAdapter):
    """
    Crop-CASMA WCS adapter for SMAP soil moisture.

    One GetCoverage request over a ±0.05° box returns the pixel values.
    Fill values and readings outside 0-1 m³/m³ become gaps.
    """

    SOURCE_ID = "cropcasma"

    def __init__(
        self,
        client: ProviderClient,
        wcs_url: str = "https://gimms.gsfc.nasa.gov/cgi-bin/smap_wcs.cgi",
        rate_limiter: RateLimiter | None = None,
    ):
        super().__init__(client, rate_limiter)
        self.wcs_url = wcs_url

    @property
    def source_id(self) -> str:
        return self.SOURCE_ID

    @property
    def products(self) -> tuple[str, ...]:
        return tuple(SMAP_PRODUCTS)

    def is_configured(self) -> bool:
        return bool(self.wcs_url)

    def build_params(self, product: str, request: DataRequest) -> dict[str, Any]:
        coverage = SMAP_PRODUCTS[product]
        day = request.reference_date or most_recent_date()
        bbox = point_bbox(request.latitude, request.longitude)
        return {
            "service": "WCS",
            "version": "2.0.1",
            "request": "GetCoverage",
            "coverageId": f"{coverage['product']}_{coverage['version']}:{coverage['layer']}",
            "subset": [
                f"Lat({bbox.south},{bbox.north})",
                f"Lon({bbox.west},{bbox.east})",
                f'TIME("{day.isoformat()}")',
            ],
            "format": "application/json",
            "outputCrs": "EPSG:4326",
        }

    async def _request(self, product: str, request: DataRequest) -> Any:
        return await self.client.get_json(
            self.source_id,
            self.wcs_url,
            params=self.build_params(product, request),
            headers={"Accept": "application/json"},
        )

    def _parse(self, product: str, request: DataRequest, raw: Any) -> SourceData:
        raw_values = self._extract_values(raw)
        values = [self._clean(v) for v in raw_values]

        valid = [v for v in values if v is not None]
        mean = sum(valid) / len(valid) if valid else None
        descriptor = self.describe(product)

        day = request.reference_date
        timestamp = datetime.combine(day, datetime.min.time()) if day else datetime.now()

        return SourceData(
            source_id=self.source_id,
            product=product,
            kind=DataKind.SOIL_MOISTURE,
            resolution_meters=descriptor.native_resolution,
            values=values,
            timestamp=timestamp,
            educational=self._educational(
                product,
                units="m³/m³ (volumetric water content)",
                range="0.0 to 1.0 (0% to 100% water content)",
                typical_agricultural="0.2 to 0.5 for most crops",
                interpretation=interpret_moisture(mean, descriptor.depth_range),
            ),
            extras={
                "classification": classify_moisture(mean),
                "depth": descriptor.depth.value if descriptor.depth else None,
            },
        )

    def _extract_values(self, raw: Any) -> list[Any]:
        values = None
        if isinstance(raw, dict):
            values = raw.get("values")
            if values is None and isinstance(raw.get("coverage"), dict):
                values = raw["coverage"].get("values")

        if not isinstance(values, list):
            raise MalformedPayloadError(
                "WCS response has no values array", source_id=self.source_id
            )

        flat: list[Any] = []
        for v in values:
            if isinstance(v, list):
                flat.extend(v)
            else:
                flat.append(v)
        return flat

    @staticmethod
    def _clean(value: Any) -> float | None:
        if value is None or isinstance(value, bool):
            return None
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        if number == FILL_VALUE or not 0.0 <= number <= 1.0:
            return None
        return number
