"""
Backend API client.

The remote call primitive the resilience layer sits on. Every call returns an
ApiResponse instead of raising:
- 2xx -> ok=True with the decoded JSON body
- non-2xx -> ok=False with the backend's {"error": ...} text or the reason phrase
- no response at all (DNS, refused, timeout) -> ok=False, status=0, error
  mentioning "network" so it classifies as a connectivity failure

Usage:
    async with BackendClient(token="eyJ...") as client:
        response = await client.get("/plan/today")
"""

from typing import Any, Dict, Optional

import httpx

from config import Config
from core.types import ApiResponse
from logger import get_logger

logger = get_logger(__name__)


class BackendClient:
    """Async JSON client for the backend.

    Attributes:
        base_url: Base URL of the backend API
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Base URL of the backend (defaults to Config.BACKEND_URL)
            token: Bearer token sent with every request
            timeout: Request timeout in seconds
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.base_url = (base_url or Config.BACKEND_URL).rstrip("/")
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout if timeout is not None else Config.BACKEND_TIMEOUT,
            transport=transport,
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    async def request(self, method: str, path: str, body: Any = None) -> ApiResponse:
        """Send one request and normalize the outcome."""
        try:
            response = await self._client.request(
                method,
                path,
                json=body,
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            logger.warning(f"{method} {path} timed out: {e}")
            return ApiResponse(ok=False, status=0, error=f"network timeout: {e}")
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} could not reach backend: {e}")
            return ApiResponse(ok=False, status=0, error=f"network error: {e}")

        payload: Any = None
        if response.content:
            try:
                payload = response.json()
            except ValueError:
                payload = None

        if response.is_success:
            return ApiResponse(ok=True, status=response.status_code, data=payload)

        error = payload.get("error") if isinstance(payload, dict) else None
        logger.debug(f"{method} {path} -> {response.status_code} {error or response.reason_phrase}")
        return ApiResponse(
            ok=False,
            status=response.status_code,
            error=error or response.reason_phrase or f"HTTP {response.status_code}",
        )

    async def get(self, path: str) -> ApiResponse:
        return await self.request("GET", path)

    async def post(self, path: str, body: Any = None) -> ApiResponse:
        return await self.request("POST", path, body)

    async def patch(self, path: str, body: Any = None) -> ApiResponse:
        return await self.request("PATCH", path, body)

    async def put(self, path: str, body: Any = None) -> ApiResponse:
        return await self.request("PUT", path, body)

    async def delete(self, path: str) -> ApiResponse:
        return await self.request("DELETE", path)
