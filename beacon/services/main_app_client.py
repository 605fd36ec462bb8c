"""HTTP client for the main application's M2M API."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any

import httpx

from beacon.config import settings
from beacon.exceptions import MainAppError
from beacon.models.base import utcnow

logger = logging.getLogger(__name__)

M2M_SCOPES = "read:users read:companies write:users write:companies read:ai_usage write:ai_usage"

# Tokens are renewed this long before Logto expires them
TOKEN_EXPIRY_MARGIN_SECONDS = 300


class MainAppClient:
    """Calls the main application with a Logto client-credentials token.

    The token is cached until shortly before it expires. Requests are retried
    with exponential backoff on 5xx responses and connection failures.

    Attributes:
        base_url: Base URL of the main application API.
        token_endpoint: Logto OIDC token endpoint.
        max_retries: Maximum number of attempts per request.
        base_delay: Base delay in seconds for exponential backoff.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str | None = None,
        max_retries: int | None = None,
        base_delay: float = 1.0,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url or settings.main_app_api_url
        self.token_endpoint = f"{settings.logto_issuer}/token"
        self.client_id = settings.logto_m2m_client_id
        self.client_secret = settings.logto_m2m_client_secret
        self.api_identifier = settings.api_resource_identifier
        self.max_retries = max_retries or settings.main_app_max_retries
        self.base_delay = base_delay
        self.timeout = timeout or settings.main_app_timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self._access_token: str | None = None
        self._token_expiry: datetime | None = None

    @property
    def client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client instance."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    async def __aenter__(self) -> "MainAppClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client connection."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def get_access_token(self) -> str:
        """Return the cached M2M token or request a new one.

        Raises:
            MainAppError: If credentials are missing or Logto refuses the request.
        """
        if self._access_token and self._token_expiry and self._token_expiry > utcnow():
            return self._access_token

        if not self.client_id or not self.client_secret:
            raise MainAppError("M2M client credentials not configured")

        try:
            response = await self.client.post(
                self.token_endpoint,
                data={
                    "grant_type": "client_credentials",
                    "scope": M2M_SCOPES,
                    "resource": self.api_identifier,
                },
                auth=(self.client_id, self.client_secret),
            )
        except httpx.HTTPError as e:
            logger.error(f"Error getting access token: {e}")
            raise MainAppError(message="Failed to get access token", details=str(e)) from e

        if response.is_error:
            logger.error(f"Token request failed: {response.status_code} {response.text}")
            raise MainAppError(
                message=f"Failed to get access token: {response.reason_phrase}",
                status_code=response.status_code,
                details=response.text,
            )

        data = response.json()
        self._access_token = data["access_token"]
        self._token_expiry = utcnow() + timedelta(
            seconds=data["expires_in"] - TOKEN_EXPIRY_MARGIN_SECONDS
        )
        logger.debug("Obtained new M2M access token")
        return self._access_token

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        **kwargs,
    ) -> httpx.Response:
        """Execute an HTTP request with exponential backoff retry.

        Raises:
            MainAppError: If all retries fail or a non-retryable error occurs.
        """
        last_exception: Exception | None = None

        for attempt in range(self.max_retries):
            try:
                response = await self.client.request(method, endpoint, **kwargs)

                # Don't retry on 4xx errors
                if 400 <= response.status_code < 500:
                    logger.error(f"API error response from {endpoint}: {response.text}")
                    raise MainAppError(
                        message=f"API request failed: {response.reason_phrase}",
                        status_code=response.status_code,
                        details=response.text,
                    )

                response.raise_for_status()
                return response

            except httpx.HTTPStatusError as e:
                last_exception = e
                logger.warning(f"Server error {e.response.status_code} on attempt {attempt + 1}")

            except (httpx.TimeoutException, httpx.ConnectError) as e:
                last_exception = e
                logger.warning(f"Connection error on attempt {attempt + 1}: {e}")

            if attempt < self.max_retries - 1:
                delay = self.base_delay * (2**attempt)
                logger.info(f"Retrying {endpoint} in {delay}s...")
                await asyncio.sleep(delay)

        raise MainAppError(
            message=f"Failed after {self.max_retries} attempts",
            details=str(last_exception) if last_exception else "Unknown error",
        )

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: dict[str, Any] | None = None,
    ) -> Any:
        """Make an authenticated JSON request to the main application.

        Args:
            path: API path relative to ``base_url``, e.g. ``/users/123``.
            method: HTTP method.
            body: JSON body for POST, PUT and PATCH requests.

        Returns:
            The decoded JSON response.

        Raises:
            MainAppError: If the request fails.
        """
        token = await self.get_access_token()
        kwargs: dict[str, Any] = {
            "headers": {
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            }
        }
        if body is not None and method in ("POST", "PUT", "PATCH"):
            kwargs["json"] = body

        logger.debug(f"Main app request: {method} {path}")
        response = await self._request_with_retry(method, path, **kwargs)
        return response.json()

    async def get_user(self, user_id: str) -> Any:
        return await self.request(f"/users/{user_id}")

    async def get_user_by_external_id(self, external_id: str) -> Any:
        return await self.request(f"/users/external/{external_id}")

    async def get_user_companies(self, user_id: str) -> Any:
        return await self.request(f"/users/{user_id}/companies")

    async def get_companies(self) -> Any:
        return await self.request("/companies")

    async def get_company(self, company_id: str) -> Any:
        return await self.request(f"/companies/{company_id}")


_main_app_client: MainAppClient | None = None


def get_main_app_client() -> MainAppClient:
    global _main_app_client
    if _main_app_client is None:
        _main_app_client = MainAppClient()
    return _main_app_client
