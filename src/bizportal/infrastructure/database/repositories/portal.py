"""Portal repositories: identities, invites, sessions, audit events."""

from collections.abc import Sequence
from uuid import UUID

from bizportal.infrastructure.database.models.portal import (
    PortalAuditEvent,
    PortalIdentity,
    PortalInvite,
    PortalInviteState,
    PortalSession,
    PortalSessionState,
)
from bizportal.infrastructure.database.repositories.base import BaseRepository


class PortalIdentityRepository(BaseRepository[PortalIdentity]):
    """Repository for portal identities."""

    model_class = PortalIdentity

    async def list_for_client(self, client_id: UUID) -> Sequence[PortalIdentity]:
        """All identity rows of a client, newest first."""
        query = (
            self._base_query()
            .where(PortalIdentity.client_id == client_id)
            .order_by(PortalIdentity.created_at.desc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()


class PortalInviteRepository(BaseRepository[PortalInvite]):
    """Repository for portal invites."""

    model_class = PortalInvite

    async def get_by_code_hash(self, code_hash: str) -> PortalInvite | None:
        query = self._base_query().where(PortalInvite.code_hash == code_hash)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_active_for_client(self, client_id: UUID) -> Sequence[PortalInvite]:
        """Draft or sent invites of a client."""
        query = self._base_query().where(
            PortalInvite.client_id == client_id,
            PortalInvite.state.in_(
                [PortalInviteState.DRAFT.value, PortalInviteState.SENT.value]
            ),
        )
        result = await self.session.execute(query)
        return result.scalars().all()


class PortalSessionRepository(BaseRepository[PortalSession]):
    """Repository for portal sessions."""

    model_class = PortalSession

    async def get_by_token_hash(self, token_hash: str) -> PortalSession | None:
        query = self._base_query().where(PortalSession.token_hash == token_hash)
        result = await self.session.execute(query)
        return result.scalars().first()

    async def list_non_terminal_for_client(self, client_id: UUID) -> Sequence[PortalSession]:
        """Sessions still stored as active, including ones past expiry."""
        query = self._base_query().where(
            PortalSession.client_id == client_id,
            PortalSession.state == PortalSessionState.ACTIVE.value,
        )
        result = await self.session.execute(query)
        return result.scalars().all()


class PortalAuditEventRepository(BaseRepository[PortalAuditEvent]):
    """Append-only repository for audit events (no update or delete path)."""

    model_class = PortalAuditEvent

    async def list_for_client(
        self,
        client_id: UUID,
        *,
        limit: int = 100,
        offset: int = 0,
    ) -> Sequence[PortalAuditEvent]:
        """Audit trail of a client, newest first."""
        query = (
            self._base_query()
            .where(PortalAuditEvent.client_id == client_id)
            .order_by(PortalAuditEvent.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def list_by_type(self, client_id: UUID, event_type: str) -> Sequence[PortalAuditEvent]:
        query = (
            self._base_query()
            .where(
                PortalAuditEvent.client_id == client_id,
                PortalAuditEvent.event_type == event_type,
            )
            .order_by(PortalAuditEvent.created_at.asc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()
