"""Append-only audit trail for the portal."""

from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.infrastructure.database.models import PortalActionOrigin, PortalAuditEvent
from bizportal.infrastructure.database.repositories import PortalAuditEventRepository
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

# Marks an event whose business could not be resolved
UNRESOLVED_BUSINESS_ID = UUID(int=0)


class AuditLog:
    """Records security-relevant facts.

    Events are committed on their own, after the primary operation has
    committed. A failed audit write is logged and rolled back but never
    fails the operation it describes.
    """

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        clock: Clock = utc_now,
    ) -> None:
        self.session = session
        self.events = PortalAuditEventRepository(session)
        self.scope = scope
        self.clock = clock

    async def record(
        self,
        client_id: UUID,
        event_type: str,
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
        session_id: UUID | None = None,
        entity_type: str | None = None,
        entity_id: UUID | None = None,
        summary: str | None = None,
        business_id_hint: UUID | None = None,
    ) -> PortalAuditEvent | None:
        """Append one event, resolving the business from the client at call time.

        Returns:
            The stored event, or None if the write failed.
        """
        business_id = await self._resolve_business_id(client_id, business_id_hint)

        event = PortalAuditEvent(
            business_id=business_id,
            client_id=client_id,
            session_id=session_id,
            origin=origin.value,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            summary=summary,
            created_at=self.clock(),
        )
        try:
            self.session.add(event)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(
                "audit_write_failed",
                event_type=event_type,
                client_id=str(client_id),
                error=str(e),
            )
            return None

        logger.info(
            "portal_audit_recorded",
            event_type=event_type,
            client_id=str(client_id),
            session_id=str(session_id) if session_id else None,
            origin=origin.value,
        )
        return event

    async def list_for_client(
        self,
        client_id: UUID,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> list[PortalAuditEvent]:
        """Audit trail of a client, newest first."""
        return list(await self.events.list_for_client(client_id, limit=limit, offset=offset))

    async def _resolve_business_id(self, client_id: UUID, hint: UUID | None) -> UUID:
        try:
            business_id = await self.scope.try_business_id_for_client(client_id)
        except SQLAlchemyError as e:
            logger.warning("audit_business_lookup_failed", client_id=str(client_id), error=str(e))
            business_id = None
        if business_id is not None:
            return business_id
        return hint if hint is not None else UNRESOLVED_BUSINESS_ID
