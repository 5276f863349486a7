"""Wiring of the portal trust core for one unit of work."""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.config import Settings
from bizportal.domain.portal.actions import PortalActionGateway
from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.documents import PortalDocumentService
from bizportal.domain.portal.identity import IdentityRegistry
from bizportal.domain.portal.invites import InviteLifecycle
from bizportal.domain.portal.preview import PortalPreviewService
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.domain.portal.sessions import SessionLifecycle
from bizportal.infrastructure.external.portal_backend import PortalBackendClient
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.exceptions import ScopeViolationError


@dataclass
class PortalCore:
    scope: BusinessScopeResolver
    audit: AuditLog
    identities: IdentityRegistry
    sessions: SessionLifecycle
    invites: InviteLifecycle
    actions: PortalActionGateway
    documents: PortalDocumentService
    preview: PortalPreviewService

    async def require_client_scope(self, business_id: UUID, client_id: UUID) -> None:
        """Reject an operator call whose client is not in the given business.

        Raises:
            NotFoundError: If the client does not exist.
            ScopeViolationError: If the client belongs to another business.
        """
        try:
            await self.scope.require_client_in_business(business_id, client_id)
        except ScopeViolationError:
            await self.audit.record(
                client_id,
                "portal.admin.blocked_business_mismatch",
                entity_type="PortalIdentity",
                summary=f"Operator call under business {business_id}.",
            )
            raise


def build_portal_core(
    session: AsyncSession,
    settings: Settings,
    lock: WriterLock,
    clock: Clock = utc_now,
    backend: PortalBackendClient | None = None,
) -> PortalCore:
    """Build the portal services around one database session."""
    scope = BusinessScopeResolver(session)
    audit = AuditLog(session, scope, clock)
    sessions = SessionLifecycle(
        session,
        scope,
        audit,
        lock,
        clock,
        default_ttl=timedelta(days=settings.portal_session_ttl_days),
    )
    identities = IdentityRegistry(session, scope, audit, sessions, lock, clock)
    invites = InviteLifecycle(
        session,
        scope,
        audit,
        identities,
        sessions,
        lock,
        clock,
        default_ttl=timedelta(days=settings.portal_invite_ttl_days),
    )
    actions = PortalActionGateway(
        session,
        scope,
        audit,
        sessions,
        lock,
        clock,
        consent_version=settings.portal_consent_version,
    )
    documents = PortalDocumentService(session, scope, audit, sessions, lock)
    preview = PortalPreviewService(
        scope,
        audit,
        identities,
        sessions,
        backend=backend,
        device_label=settings.portal_preview_device_label,
    )
    return PortalCore(
        scope=scope,
        audit=audit,
        identities=identities,
        sessions=sessions,
        invites=invites,
        actions=actions,
        documents=documents,
        preview=preview,
    )
