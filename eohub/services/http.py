"""
ProviderClient - shared async HTTP client for source adapters.

Translates httpx failures into typed adapter errors and routes
authenticated calls through the credential store.
"""

from typing import TYPE_CHECKING, Any

import httpx
from loguru import logger

from eohub.exceptions import (
    AuthError,
    MalformedPayloadError,
    ProviderAuthError,
    ProviderHTTPError,
    ProviderTimeoutError,
)

if TYPE_CHECKING:
    from eohub.auth.credentials import CredentialStore


class ProviderClient:
    """
    HTTP client used by every source adapter.

    Usage:
        client = ProviderClient(timeout=30.0)

        data = await client.get_json(
            "cropcasma",
            "https://gimms.gsfc.nasa.gov/cgi-bin/smap_wcs.cgi",
            params={"service": "WCS"},
        )
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "eohub/1.0",
        credentials: "CredentialStore | None" = None,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout
        self._user_agent = user_agent
        self._credentials = credentials
        self._transport = transport
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def credentials(self) -> "CredentialStore | None":
        return self._credentials

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def request(
        self,
        source_id: str,
        url: str,
        method: str = "GET",
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json_data: Any = None,
        timeout: float | None = None,
        authenticated: bool = False,
    ) -> httpx.Response:
        """
        Make an HTTP request to a provider.

        Args:
            source_id: Adapter id, attached to raised errors
            url: Full URL to request
            method: HTTP method
            params: Query parameters
            headers: Extra headers
            json_data: JSON body
            timeout: Override request timeout
            authenticated: Send through the credential store with a bearer token

        Returns:
            The successful httpx.Response

        Raises:
            ProviderTimeoutError: If the request times out
            ProviderHTTPError: On non-2xx status or transport failure
            ProviderAuthError: If no valid credentials could be obtained
        """
        req_headers = {"User-Agent": self._user_agent}
        if headers:
            req_headers.update(headers)
        req_timeout = timeout or self._timeout

        kwargs: dict[str, Any] = {
            "params": params,
            "headers": req_headers,
            "timeout": req_timeout,
        }
        if json_data is not None:
            kwargs["json"] = json_data

        try:
            if authenticated:
                if self._credentials is None:
                    raise ProviderAuthError(
                        f"'{source_id}' requires credentials but none are configured",
                        source_id=source_id,
                    )
                response = await self._credentials.authenticated_fetch(
                    method, url, **kwargs
                )
            else:
                client = await self._get_http_client()
                response = await client.request(method, url, **kwargs)
            response.raise_for_status()
            return response

        except AuthError as e:
            raise ProviderAuthError(str(e), source_id=source_id) from e

        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(source_id, req_timeout) from e

        except httpx.HTTPStatusError as e:
            raise ProviderHTTPError(
                source_id, e.response.status_code, e.response.text
            ) from e

        except httpx.RequestError as e:
            logger.warning(f"Transport error talking to {source_id}: {e}")
            raise ProviderHTTPError(source_id, 0, str(e)) from e

    async def get_json(self, source_id: str, url: str, **kwargs: Any) -> Any:
        """Request and decode a JSON body."""
        response = await self.request(source_id, url, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise MalformedPayloadError(
                f"'{source_id}' returned invalid JSON from {url}", source_id=source_id
            ) from e

    async def get_text(self, source_id: str, url: str, **kwargs: Any) -> str:
        response = await self.request(source_id, url, **kwargs)
        return response.text

    async def get_bytes(self, source_id: str, url: str, **kwargs: Any) -> tuple[bytes, str]:
        """Request binary content. Returns (content, content type)."""
        response = await self.request(source_id, url, **kwargs)
        return response.content, response.headers.get("content-type", "")

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("ProviderClient closed")

    async def __aenter__(self) -> "ProviderClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
