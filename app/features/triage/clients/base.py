"""
Shared HTTP plumbing for the provider clients.

Every client owns an `httpx.AsyncClient`, retries 429/5xx responses and
network errors with exponential backoff, and maps final failures onto the
triage error taxonomy.
"""

import asyncio
from typing import Any

import httpx

from app.features.triage.domain import (
    InsufficientScopeError,
    RateLimitedError,
    TransientProviderError,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

REQUEST_TIMEOUT = 30  # seconds
MAX_RETRIES = 3
BACKOFF_FACTOR = 0.5
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

SCOPE_ERROR_MARKERS = (
    "insufficientPermissions",
    "insufficient authentication scopes",
    "ACCESS_TOKEN_SCOPE_INSUFFICIENT",
)


class ProviderClient:
    """Base class for bearer-token JSON APIs."""

    provider_name = "provider"
    base_url = ""

    def __init__(self, access_token: str, http_client: httpx.AsyncClient | None = None):
        self._access_token = access_token
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(REQUEST_TIMEOUT),
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _get_auth_headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Accept": "application/json",
        }

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request with retry and backoff."""
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(
                    method, url, headers=self._get_auth_headers(), **kwargs
                )
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise TransientProviderError(
                        f"{self.provider_name} request failed: {type(e).__name__}"
                    ) from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Provider request error, retrying",
                    provider=self.provider_name,
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue

            if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Provider retrying request",
                    provider=self.provider_name,
                    attempt=attempt,
                    status_code=response.status_code,
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                continue
            return response

        raise RuntimeError("Provider retry loop exhausted")

    async def _get_json(self, path: str, operation: str, params: Any = None) -> Any:
        url = path if path.startswith("http") else f"{self.base_url}{path}"
        response = await self._request_with_retry("GET", url, params=params)
        return self._handle_api_response(response, operation)

    def _handle_api_response(self, response: httpx.Response, operation: str) -> Any:
        """
        Validate a provider response and return its JSON body.

        Raises:
            InsufficientScopeError: 403 caused by missing OAuth scopes
            RateLimitedError: 429 after retries
            TransientProviderError: Any other failure
        """
        logger.debug(
            f"{self.provider_name} {operation} response",
            status_code=response.status_code,
            response_size=len(response.content),
        )

        if response.is_success:
            try:
                return response.json() if response.content else {}
            except ValueError as e:
                logger.error(
                    f"Failed to parse {self.provider_name} {operation} response", error=str(e)
                )
                raise TransientProviderError(f"Invalid response format from {operation}") from e

        message = self._extract_error_message(response)
        logger.warning(
            f"{self.provider_name} {operation} failed",
            status_code=response.status_code,
            error_message=message,
        )

        if response.status_code == 403 and self._is_scope_error(response, message):
            raise InsufficientScopeError(message, status_code=403)
        if response.status_code == 429:
            raise RateLimitedError(f"{operation} rate limited", status_code=429)
        raise TransientProviderError(
            f"{operation} failed (HTTP {response.status_code}): {message}",
            status_code=response.status_code,
        )

    def _extract_error_message(self, response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text[:200] if response.text else "no response body"

        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                return str(error.get("message") or error)
            if error:
                return str(error)
        return str(data)[:200]

    def _is_scope_error(self, response: httpx.Response, message: str) -> bool:
        haystack = f"{message} {response.text}"
        return any(marker in haystack for marker in SCOPE_ERROR_MARKERS)
