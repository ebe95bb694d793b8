"""
Pytest configuration and shared fixtures for all tests.
"""

import asyncio
from datetime import datetime, timedelta
from typing import Any

import httpx
import pytest

from eohub.auth.credentials import CredentialStore
from eohub.auth.storage import MemoryTokenStorage
from eohub.datasource.appeears import AppEearsAdapter
from eohub.datasource.base import SyncSourceAdapter
from eohub.models import (
    AuthToken,
    DataKind,
    DataRequest,
    DataResponse,
    Location,
    RequestParams,
    SourceData,
)
from eohub.services.http import ProviderClient


def make_response(
    product: str = "SMAP_L3",
    values: list[float | None] | None = None,
    source_id: str = "cropcasma",
) -> DataResponse:
    """A minimal live response suitable for caching."""
    return DataResponse(
        kind=DataKind.SOIL_MOISTURE,
        source_id=source_id,
        product=product,
        resolution_meters=9000,
        values=values if values is not None else [0.3],
        location=Location(latitude=37.5, longitude=127.0),
        timestamp=datetime.now(),
    )


def make_token(
    access: str = "access-1",
    refresh: str | None = "refresh-1",
    expires_in: timedelta = timedelta(hours=1),
) -> AuthToken:
    return AuthToken(
        access_token=access,
        refresh_token=refresh,
        expires_at=datetime.now() + expires_in,
    )


class FakeSoilAdapter(SyncSourceAdapter):
    """Stands in for the Crop-CASMA adapter without any HTTP."""

    def __init__(
        self,
        values: list[float | None] | None = None,
        error: Exception | None = None,
        delay: float = 0.0,
    ):
        super().__init__(client=None)
        self.values = values if values is not None else [0.3]
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def source_id(self) -> str:
        return "cropcasma"

    @property
    def products(self) -> tuple[str, ...]:
        return ("SMAP_L3", "SMAP_L4")

    async def _request(self, product: str, request: DataRequest) -> Any:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.values

    def _parse(self, product: str, request: DataRequest, raw: Any) -> SourceData:
        return SourceData(
            source_id=self.source_id,
            product=product,
            kind=DataKind.SOIL_MOISTURE,
            resolution_meters=9000,
            values=list(raw),
            timestamp=datetime.now(),
        )


@pytest.fixture
def params() -> RequestParams:
    """Request parameters for a field near Seoul."""
    return RequestParams(latitude=37.5, longitude=127.0)


@pytest.fixture
def soil_request(params) -> DataRequest:
    return DataRequest.build(DataKind.SOIL_MOISTURE, 9000, params)


APPEEARS_URL = "https://appeears.test/api"

NDVI_CSV = (
    "ID,Latitude,Longitude,Date,MOD13Q1_061_250m_16_days_NDVI\n"
    "point,37.5,127.0,2024-05-01,5000\n"
    "point,37.5,127.0,2024-05-17,-3000\n"
)


def vegetation_request(**kwargs) -> DataRequest:
    params = RequestParams(latitude=37.5, longitude=127.0, **kwargs)
    return DataRequest.build(DataKind.VEGETATION, 250, params)


class FakeAppEears:
    """Answers the AppEEARS task API from a scripted list of statuses."""

    def __init__(self, statuses: list[dict], files: list[dict] | None = None):
        self.statuses = list(statuses)
        self.files = files
        self.submitted: list[bytes] = []
        self.auth_headers: set[str] = set()

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.auth_headers.add(request.headers.get("Authorization", ""))
        path = request.url.path

        if path == "/api/task" and request.method == "POST":
            self.submitted.append(request.content)
            return httpx.Response(202, json={"task_id": "t1", "status": "pending"})
        if path == "/api/task/t1":
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            return httpx.Response(200, json=status)
        if path == "/api/bundle/t1":
            files = self.files or [
                {"file_id": "f1", "file_name": "MOD13Q1-061-NDVI-results.csv"}
            ]
            return httpx.Response(200, json={"files": files})
        if path == "/api/bundle/t1/f1":
            return httpx.Response(200, text=NDVI_CSV)
        return httpx.Response(404)


def make_appeears(fake, max_wait: float = 1.0, token=True) -> AppEearsAdapter:
    transport = httpx.MockTransport(fake)
    storage = MemoryTokenStorage(make_token(access="tok") if token else None)
    credentials = CredentialStore(
        client_id="c",
        redirect_uri="http://localhost/cb",
        base_url="https://urs.test",
        storage=storage,
        transport=transport,
    )
    client = ProviderClient(credentials=credentials, transport=transport)
    return AppEearsAdapter(
        client, base_url=APPEEARS_URL, poll_interval=0.01, max_wait=max_wait
    )

