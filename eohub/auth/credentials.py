"""
OAuth 2.0 credential lifecycle for NASA Earthdata Login.

Handles the authorization-code exchange, token refresh, bearer-authenticated
requests and auth-state notifications.
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable

import httpx
from loguru import logger

from eohub.auth.storage import MemoryTokenStorage, TokenStorage
from eohub.exceptions import AuthError
from eohub.models import AuthStatus, AuthToken
from eohub.services.deduplicator import RequestDeduplicator

AuthCallback = Callable[[bool, dict[str, Any] | None], None]

DEFAULT_EXPIRES_IN = 3600


class CredentialStore:
    """
    Holds and refreshes the Earthdata access/refresh token pair.

    Concurrent callers that find the token expired share a single refresh
    request. Subscribers are told about every auth-state change.

    Usage:
        store = CredentialStore(client_id="my_app", redirect_uri="http://localhost/cb")
        url, state = store.build_authorization_url()
        # ... user authorizes, provider redirects back with code & state ...
        await store.exchange_code(code, returned_state)

        response = await store.authenticated_fetch("GET", "https://.../task/123")
    """

    def __init__(
        self,
        client_id: str,
        redirect_uri: str,
        base_url: str = "https://urs.earthdata.nasa.gov",
        scope: str = "read",
        storage: TokenStorage | None = None,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.base_url = base_url.rstrip("/")
        self.scope = scope

        self._timeout = timeout
        self._transport = transport
        self._http_client = http_client
        self._owns_client = http_client is None

        self._token: AuthToken | None = None
        self._pending_state: str | None = None
        self._callbacks: list[AuthCallback] = []
        self._refresher = RequestDeduplicator(name="token-refresh")
        self.refresh_count = 0

        self._storage = storage or MemoryTokenStorage()
        self._storage_version = -1
        self._unsubscribe_storage = self._storage.subscribe(self._on_storage_change)
        self._load_from_storage()

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    # State

    def is_authenticated(self) -> bool:
        token = self._token
        return token is not None and not token.is_expired()

    def get_token(self) -> str | None:
        """Current access token if still valid, without refreshing."""
        token = self._token
        if token is not None and not token.is_expired():
            return token.access_token
        return None

    @property
    def user_info(self) -> dict[str, Any] | None:
        return self._token.user_info if self._token else None

    def get_auth_status(self) -> AuthStatus:
        token = self._token
        expires_in = 0.0
        if token is not None:
            expires_in = max(0.0, (token.expires_at - datetime.now()).total_seconds())
        return AuthStatus(
            is_authenticated=self.is_authenticated(),
            has_token=token is not None,
            has_refresh_token=bool(token and token.refresh_token),
            expires_at=token.expires_at if token else None,
            expires_in_seconds=expires_in,
            user_info=token.user_info if token else None,
        )

    # Authorization code flow

    def build_authorization_url(self, state: str | None = None) -> tuple[str, str]:
        """
        Build the provider authorization URL and remember its anti-CSRF state.

        Returns:
            (authorization URL, state)
        """
        state = state or secrets.token_urlsafe(24)
        self._pending_state = state
        url = httpx.URL(
            f"{self.base_url}/oauth/authorize",
            params={
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "response_type": "code",
                "scope": self.scope,
                "state": state,
            },
        )
        return str(url), state

    async def exchange_code(
        self,
        code: str,
        state: str,
        expected_state: str | None = None,
    ) -> bool:
        """
        Exchange an authorization code for tokens.

        Args:
            code: Authorization code from the redirect
            state: State returned with the redirect
            expected_state: State issued with the authorization URL
                (defaults to the one remembered by build_authorization_url)

        Raises:
            AuthError: On state mismatch (no request is made) or failed exchange
        """
        expected = expected_state if expected_state is not None else self._pending_state
        if expected is None or not hmac.compare_digest(
            state.encode("utf-8"), expected.encode("utf-8")
        ):
            raise AuthError("Invalid OAuth state parameter")

        try:
            data = await self._post_token(
                {
                    "grant_type": "authorization_code",
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "client_id": self.client_id,
                }
            )
        except AuthError:
            logger.error("OAuth code exchange failed")
            self._clear_tokens()
            self._notify(False)
            raise

        self._pending_state = None
        self._token = self._token_from_response(data)
        await self.fetch_user_info()
        self._persist()
        self._notify(True)
        logger.info("Earthdata login completed")
        return True

    async def fetch_user_info(self) -> dict[str, Any] | None:
        """
        Best-effort lookup of the logged-in user's profile.

        Sends the current token as-is: a rejected profile request never
        triggers a refresh, so it cannot end the session.
        """
        token = self._token
        if token is None:
            return None

        client = await self._get_http_client()
        try:
            response = await client.get(
                f"{self.base_url}/api/users/user",
                headers={"Authorization": f"Bearer {token.access_token}"},
            )
            if not response.is_success:
                logger.warning(f"User info request returned {response.status_code}")
                return None
            user_info = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Failed to fetch user info: {e}")
            return None

        if self._token is token:
            self._token = token.model_copy(update={"user_info": user_info})
        return user_info

    # Refresh

    async def get_valid_token(self) -> str | None:
        """Return a valid access token, refreshing once if it has expired."""
        if self.is_authenticated():
            return self._token.access_token

        if self._token is not None and self._token.refresh_token:
            if await self.refresh():
                return self._token.access_token

        return None

    async def refresh(self) -> bool:
        """
        Refresh the access token.

        Concurrent calls share one request. On failure tokens are cleared
        and subscribers are told the session ended.
        """
        observed = self._token
        if observed is None or not observed.refresh_token:
            return False
        return await self._refresher.dedupe(
            "refresh", lambda: self._refresh_once(observed)
        )

    async def _refresh_once(self, observed: AuthToken) -> bool:
        # another consumer already replaced the token we saw expire
        if self._token is not observed and self.is_authenticated():
            return True

        token = self._token
        if token is None or not token.refresh_token:
            return False

        self.refresh_count += 1
        try:
            data = await self._post_token(
                {
                    "grant_type": "refresh_token",
                    "refresh_token": token.refresh_token,
                    "client_id": self.client_id,
                }
            )
        except AuthError as e:
            logger.error(f"Token refresh failed: {e}")
            self._clear_tokens()
            self._storage.clear(origin=self)
            self._storage_version = self._storage.version
            self._notify(False)
            return False

        self._token = self._token_from_response(
            data,
            previous_refresh_token=token.refresh_token,
            user_info=token.user_info,
        )
        self._persist()
        self._notify(True)
        logger.info("Earthdata access token refreshed")
        return True

    async def check_expiry(self) -> None:
        """Periodic check: pick up shared changes and renew an expired token."""
        self.sync_from_storage()
        token = self._token
        if token is None or not token.is_expired():
            return

        logger.info("Access token expired, refreshing proactively")
        if not await self.refresh():
            self.logout()

    # Requests

    async def authenticated_fetch(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """
        Send a request with the bearer token attached.

        A 401 triggers exactly one refresh and retry.

        Raises:
            AuthError: No valid token, or the token is still rejected
        """
        token = await self.get_valid_token()
        if token is None:
            raise AuthError("No valid authentication token available")

        headers = dict(kwargs.pop("headers", None) or {})
        headers["Authorization"] = f"Bearer {token}"
        client = await self._get_http_client()

        response = await client.request(method, url, headers=headers, **kwargs)
        if response.status_code != 401:
            return response

        logger.info(f"401 from {url}, refreshing token and retrying once")
        if not await self.refresh():
            raise AuthError("Token rejected and refresh failed", status_code=401)

        headers["Authorization"] = f"Bearer {self._token.access_token}"
        response = await client.request(method, url, headers=headers, **kwargs)
        if response.status_code == 401:
            raise AuthError("Token rejected after refresh", status_code=401)
        return response

    # Session

    def logout(self) -> None:
        self._clear_tokens()
        self._pending_state = None
        self._storage.clear(origin=self)
        self._storage_version = self._storage.version
        self._notify(False)
        logger.info("Logged out of Earthdata")

    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        """Subscribe to auth-state changes. Returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def sync_from_storage(self) -> bool:
        """Reload the token if another consumer changed the shared storage."""
        if self._storage.version == self._storage_version:
            return False
        was_authenticated = self.is_authenticated()
        self._load_from_storage()
        if was_authenticated or self.is_authenticated():
            self._notify(self.is_authenticated())
        return True

    async def close(self) -> None:
        self._unsubscribe_storage()
        await self._refresher.cancel_all()
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    # Internals

    async def _post_token(self, form: dict[str, str]) -> dict[str, Any]:
        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.base_url}/oauth/token",
                data=form,
                headers={"Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise AuthError(f"Token endpoint unreachable: {e}") from e

        if not response.is_success:
            raise AuthError(
                f"Token request failed: {response.status_code} - {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError("Token endpoint returned invalid JSON") from e
        if not isinstance(data, dict) or not data.get("access_token"):
            raise AuthError("Token response has no access_token")
        return data

    def _token_from_response(
        self,
        data: dict[str, Any],
        previous_refresh_token: str | None = None,
        user_info: dict[str, Any] | None = None,
    ) -> AuthToken:
        expires_in = int(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        return AuthToken(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or previous_refresh_token,
            expires_at=datetime.now() + timedelta(seconds=expires_in),
            user_info=user_info,
        )

    def _persist(self) -> None:
        if self._token is None:
            return
        try:
            self._storage.save(self._token, origin=self)
        except OSError as e:
            logger.warning(f"Failed to save auth data: {e}")
        self._storage_version = self._storage.version

    def _load_from_storage(self) -> None:
        self._token = self._storage.load()
        self._storage_version = self._storage.version

    def _on_storage_change(self, token: AuthToken | None, origin: Any) -> None:
        if origin is self:
            return
        self._token = token
        self._storage_version = self._storage.version
        self._notify(self.is_authenticated())

    def _clear_tokens(self) -> None:
        self._token = None

    def _notify(self, is_authenticated: bool) -> None:
        user_info = self.user_info
        for callback in list(self._callbacks):
            try:
                callback(is_authenticated, user_info)
            except Exception:
                logger.exception("Error in auth state callback")
