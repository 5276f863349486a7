"""Operator preview: open the client's portal as the client would see it."""

import asyncio
from dataclasses import dataclass
from uuid import UUID

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.identity import IdentityRegistry
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.domain.portal.sessions import SessionLifecycle
from bizportal.infrastructure.database.models import PortalSession
from bizportal.infrastructure.external.portal_backend import PortalBackendClient
from bizportal.shared.exceptions import PortalBackendError, ScopeViolationError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PREVIEW_DEVICE_LABEL = "Portal Preview"


@dataclass(frozen=True)
class PortalPreview:
    session: PortalSession
    raw_token: str
    remote_seeded: bool
    remote_token: str | None = None


class PortalPreviewService:
    """Enables the portal, issues a preview session and seeds the web portal."""

    def __init__(
        self,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        registry: IdentityRegistry,
        sessions: SessionLifecycle,
        backend: PortalBackendClient | None = None,
        device_label: str = DEFAULT_PREVIEW_DEVICE_LABEL,
    ) -> None:
        self.scope = scope
        self.audit = audit
        self.registry = registry
        self.sessions = sessions
        self.backend = backend
        self.device_label = device_label

    async def open_preview(self, business_id: UUID, client_id: UUID) -> PortalPreview:
        """Open a preview session for a client of the given business.

        The local session is committed before the backend is contacted; a
        failed seed leaves it valid and is reported as ``remote_seeded=False``.
        Cancelling the caller while it waits on the backend propagates.

        Raises:
            NotFoundError: If the client does not exist.
            ScopeViolationError: If the client belongs to another business.
        """
        try:
            await self.scope.require_client_in_business(business_id, client_id)
        except ScopeViolationError:
            await self.audit.record(
                client_id,
                "portal.preview.blocked_business_mismatch",
                entity_type="PortalIdentity",
                summary=f"Preview requested under business {business_id}.",
            )
            raise

        # Explicit enable: session creation itself never enables
        await self.registry.set_enabled(client_id, True)
        issued = await self.sessions.create(client_id, device_label=self.device_label)

        remote_token = await self._seed(issued.session)
        return PortalPreview(
            session=issued.session,
            raw_token=issued.raw_token,
            remote_seeded=remote_token is not None,
            remote_token=remote_token,
        )

    async def _seed(self, portal_session: PortalSession) -> str | None:
        if self.backend is None or not self.backend.is_configured:
            return None

        payload = {
            "businessId": str(portal_session.business_id),
            "clientId": str(portal_session.client_id),
            "sessionId": str(portal_session.id),
            "scope": "directory",
            "mode": "preview",
            "expiresAt": portal_session.expires_at.isoformat(),
        }
        try:
            response = await self.backend.seed_session(payload)
        except asyncio.CancelledError:
            logger.info("portal_preview_seed_cancelled", session_id=str(portal_session.id))
            raise
        except PortalBackendError as e:
            logger.warning(
                "portal_preview_seed_failed",
                session_id=str(portal_session.id),
                error=e.message,
                status_code=e.status_code,
            )
            return None

        logger.info("portal_preview_seeded", session_id=str(portal_session.id))
        return response.token
