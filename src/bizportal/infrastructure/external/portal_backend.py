"""HTTP client for the remote portal backend.

The backend hosts the web portal. Operator tooling seeds it with a
session so a preview link works before the client has redeemed an
invite. Seeding is best-effort: local records are committed first and
never depend on this call.
"""

from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from bizportal.shared.exceptions import PortalBackendError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

SEED_PATH = "/api/portal-session/seed"
ADMIN_HEADER = "x-portal-admin"


class PortalSeedResponse(BaseModel):
    """Response of the seed route."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token: str
    expires_at: str | None = Field(default=None, alias="expiresAt")
    session: dict[str, Any] | None = None


class PortalBackendClient:
    """Async client for the portal backend admin API."""

    def __init__(
        self,
        base_url: str,
        admin_key: str,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Backend root URL, e.g. https://portal.example.com
            admin_key: Shared operator key sent as x-portal-admin
            timeout: Request timeout in seconds
            transport: Optional transport override (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.admin_key = admin_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.admin_key)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def seed_session(self, payload: dict[str, Any]) -> PortalSeedResponse:
        """Register a portal session with the backend.

        Raises:
            PortalBackendError: On missing configuration, transport failure,
                non-2xx status or an undecodable body.
        """
        if not self.is_configured:
            raise PortalBackendError("Portal backend is not configured.")

        client = await self._get_client()
        try:
            response = await client.post(
                SEED_PATH,
                json=payload,
                headers={ADMIN_HEADER: self.admin_key},
            )
        except httpx.RequestError as e:
            logger.error("portal_backend_request_failed", path=SEED_PATH, error=str(e))
            raise PortalBackendError(f"Portal backend request failed: {e}") from e

        if not response.is_success:
            logger.error(
                "portal_backend_http_error",
                path=SEED_PATH,
                status_code=response.status_code,
            )
            raise PortalBackendError(
                f"Portal backend returned HTTP {response.status_code}.",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return PortalSeedResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise PortalBackendError(
                "Portal backend response could not be decoded.",
                status_code=response.status_code,
                body=response.text,
            ) from e
