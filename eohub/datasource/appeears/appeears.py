"""
AppEEARS point-sample adapter (Landsat/MODIS NDVI, GPM precipitation).

API Documentation: https://appeears.earthdatacloud.nasa.gov/api/
Requires an Earthdata Login bearer token for every call.
"""

import csv
import io
from datetime import date, datetime, timedelta
from typing import Any

from dateutil import parser as date_parser
from loguru import logger

from eohub.datasource.base import AsyncTaskAdapter, TaskState
from eohub.exceptions import MalformedPayloadError
from eohub.models import DataKind, DataRequest, SourceData
from eohub.services.http import ProviderClient
from eohub.services.rate_limiter import RateLimiter

NDVI_FILL_VALUE = -3000
NDVI_SCALE = 0.0001
RAIN_THRESHOLD_MM = 0.1

APPEEARS_LAYERS = {
    "LANDSAT_NDVI": {
        "product": "HLSL30_015",
        "layer": "NDVI",
        "file_match": "NDVI",
    },
    "MODIS_NDVI": {
        "product": "MOD13Q1_061",
        "layer": "250m_16_days_NDVI",
        "file_match": "NDVI",
    },
    "GPM_PRECIPITATION": {
        "product": "GPM_3IMERGDF_06",
        "layer": "precipitationCal",
        "file_match": "precipitation",
    },
}

DONE_STATUSES = {"done"}
FAILED_STATUSES = {"error", "failed"}


def precipitation_stats(values: list[float | None]) -> dict[str, Any]:
    """Totals over daily precipitation values (mm)."""
    valid = [v for v in values if v is not None]
    total = sum(valid)
    return {
        "total": total,
        "daily_average": total / len(valid) if valid else 0.0,
        "max_daily": max(valid) if valid else None,
        "days_with_rain": sum(1 for v in valid if v > RAIN_THRESHOLD_MM),
    }


class AppEearsAdapter(AsyncTaskAdapter):
    """
    AppEEARS task-based adapter.

    A point task is submitted, polled every few seconds, then the bundle's
    CSV file is read. The CSV may be embedded in the bundle listing or
    downloaded separately.
    """

    SOURCE_ID = "appeears"

    def __init__(
        self,
        client: ProviderClient,
        base_url: str = "https://appeears.earthdatacloud.nasa.gov/api",
        rate_limiter: RateLimiter | None = None,
        poll_interval: float = 5.0,
        max_wait: float = 300.0,
    ):
        super().__init__(client, rate_limiter, poll_interval, max_wait)
        self.base_url = base_url.rstrip("/")
        self._task_products: dict[str, str] = {}

    @property
    def source_id(self) -> str:
        return self.SOURCE_ID

    @property
    def products(self) -> tuple[str, ...]:
        return tuple(APPEEARS_LAYERS)

    def is_configured(self) -> bool:
        return self.client.credentials is not None

    def build_task(self, product: str, request: DataRequest) -> dict[str, Any]:
        """AppEEARS point task body for one coordinate and date range."""
        layer_config = APPEEARS_LAYERS[product]
        end = request.end_date or date.today()
        start = request.start_date or end - timedelta(days=30)
        return {
            "task_type": "point",
            "task_name": f"eohub_{product.lower()}_{int(datetime.now().timestamp())}",
            "params": {
                "dates": [
                    {"startDate": start.isoformat(), "endDate": end.isoformat()}
                ],
                "layers": [
                    {"product": layer_config["product"], "layer": layer_config["layer"]}
                ],
                "coordinates": [
                    {
                        "latitude": request.latitude,
                        "longitude": request.longitude,
                        "id": "point",
                    }
                ],
            },
        }

    async def submit_task(self, product: str, request: DataRequest) -> str:
        data = await self.client.get_json(
            self.source_id,
            f"{self.base_url}/task",
            method="POST",
            json_data=self.build_task(product, request),
            authenticated=True,
        )
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise MalformedPayloadError(
                "Task submission response has no task_id", source_id=self.source_id
            )
        self._task_products[task_id] = product
        return task_id

    def _forget_task(self, task_id: str) -> None:
        self._task_products.pop(task_id, None)

    async def task_status(self, task_id: str) -> tuple[TaskState, str]:
        data = await self.client.get_json(
            self.source_id,
            f"{self.base_url}/task/{task_id}",
            authenticated=True,
        )
        if not isinstance(data, dict) or "status" not in data:
            raise MalformedPayloadError(
                f"Task {task_id} status response has no status",
                source_id=self.source_id,
            )

        status = str(data["status"]).lower()
        if status in DONE_STATUSES:
            return TaskState.DONE, ""
        if status in FAILED_STATUSES:
            return TaskState.FAILED, str(data.get("message") or data.get("error") or "")
        return TaskState.POLLING, status

    async def fetch_result(self, task_id: str) -> str:
        """Return the CSV text of the task's data file."""
        product = self._task_products.get(task_id)
        match = APPEEARS_LAYERS[product]["file_match"] if product else ""

        bundle = await self.client.get_json(
            self.source_id,
            f"{self.base_url}/bundle/{task_id}",
            authenticated=True,
        )
        files = bundle.get("files") if isinstance(bundle, dict) else None
        if not isinstance(files, list):
            raise MalformedPayloadError(
                f"Bundle {task_id} has no file list", source_id=self.source_id
            )

        csv_file = next(
            (
                f
                for f in files
                if isinstance(f, dict)
                and str(f.get("file_name", "")).endswith(".csv")
                and match in str(f.get("file_name", ""))
            ),
            None,
        )
        if csv_file is None:
            raise MalformedPayloadError(
                f"Bundle {task_id} has no CSV for {product}", source_id=self.source_id
            )

        if csv_file.get("content"):
            return csv_file["content"]
        if not csv_file.get("file_id"):
            raise MalformedPayloadError(
                f"Bundle {task_id} file {csv_file.get('file_name')} has no file_id",
                source_id=self.source_id,
            )

        logger.debug(f"Downloading {csv_file.get('file_name')} from bundle {task_id}")
        await self._throttle()
        return await self.client.get_text(
            self.source_id,
            f"{self.base_url}/bundle/{task_id}/{csv_file['file_id']}",
            authenticated=True,
        )

    def _parse(self, product: str, request: DataRequest, raw: str) -> SourceData:
        layer_config = APPEEARS_LAYERS[product]
        try:
            raw_values = parse_csv_column(raw, layer_config["layer"])
            timestamp = latest_sample_date(raw)
        except csv.Error as e:
            raise MalformedPayloadError(
                f"Unreadable {product} CSV: {e}", source_id=self.source_id
            ) from e
        descriptor = self.describe(product)

        if product == "GPM_PRECIPITATION":
            values = [v if v is not None and v >= 0 else None for v in raw_values]
            kind = DataKind.PRECIPITATION
            extras = precipitation_stats(values)
            educational = self._educational(product, units="mm/day")
        else:
            values = [
                None if v is None or v == NDVI_FILL_VALUE else round(v * NDVI_SCALE, 4)
                for v in raw_values
            ]
            kind = DataKind.VEGETATION
            extras = {
                "appeears_product": layer_config["product"],
                "layer": layer_config["layer"],
            }
            educational = self._educational(
                product,
                units="NDVI (-1 to 1)",
                interpretation="Values above 0.6 indicate dense healthy vegetation",
            )

        if timestamp is None:
            day = request.reference_date
            timestamp = datetime.combine(day, datetime.min.time()) if day else datetime.now()

        return SourceData(
            source_id=self.source_id,
            product=product,
            kind=kind,
            resolution_meters=descriptor.native_resolution,
            values=values,
            timestamp=timestamp,
            educational=educational,
            extras=extras,
        )

    async def list_products(self) -> list[Any]:
        """All products AppEEARS can sample."""
        return await self.client.get_json(
            self.source_id, f"{self.base_url}/product", authenticated=True
        )

    async def list_product_layers(self, product: str) -> list[Any]:
        data = await self.client.get_json(
            self.source_id, f"{self.base_url}/product/{product}", authenticated=True
        )
        layers = data.get("layers") if isinstance(data, dict) else data
        if isinstance(layers, dict):
            return list(layers)
        return list(layers or [])


def parse_csv_column(content: str, layer: str) -> list[float | None]:
    """
    Read one value per data row.

    Uses the column whose header ends with the layer name, else the third
    column. Unparseable cells become None.
    """
    rows = list(csv.reader(io.StringIO(content)))
    if not rows:
        return []

    header = [h.strip() for h in rows[0]]
    column = next((i for i, h in enumerate(header) if h.endswith(layer)), 2)

    values: list[float | None] = []
    for row in rows[1:]:
        if len(row) <= column:
            continue
        try:
            values.append(float(row[column]))
        except ValueError:
            values.append(None)
    return values


def latest_sample_date(content: str) -> datetime | None:
    """Most recent value of the CSV's Date column, as naive datetime."""
    reader = csv.DictReader(io.StringIO(content))
    latest: datetime | None = None
    for row in reader:
        raw = (row.get("Date") or "").strip()
        if not raw:
            continue
        try:
            dt = date_parser.parse(raw)
        except (ValueError, OverflowError):
            continue
        if dt.tzinfo is not None:
            dt = dt.astimezone().replace(tzinfo=None)
        if latest is None or dt > latest:
            latest = dt
    return latest
