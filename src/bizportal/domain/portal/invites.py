"""Invite lifecycle: one-time codes that exchange for a portal session.

States: draft -> sent -> accepted, or draft|sent -> revoked | expired.
accepted, revoked and expired are terminal.
"""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.identity import IdentityRegistry
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.domain.portal.sessions import IssuedSession, SessionLifecycle
from bizportal.infrastructure.database.models import (
    PortalActionOrigin,
    PortalInvite,
    PortalInviteDelivery,
    PortalInviteState,
)
from bizportal.infrastructure.database.repositories import (
    PortalIdentityRepository,
    PortalInviteRepository,
)
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.credentials import CredentialCodec
from bizportal.shared.exceptions import (
    BizPortalError,
    NotFoundError,
    ScopeViolationError,
    StateConflictError,
)
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_INVITE_TTL = timedelta(days=7)

TERMINAL_INVITE_STATES = (
    PortalInviteState.ACCEPTED,
    PortalInviteState.REVOKED,
    PortalInviteState.EXPIRED,
)


@dataclass(frozen=True)
class IssuedInvite:
    """A freshly created invite and its raw code (returned exactly once)."""

    invite: PortalInvite
    raw_code: str


class InviteLifecycle:
    """Issues, tracks, expires and redeems portal invites."""

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        registry: IdentityRegistry,
        sessions: SessionLifecycle,
        lock: WriterLock,
        clock: Clock = utc_now,
        default_ttl: timedelta = DEFAULT_INVITE_TTL,
    ) -> None:
        self.invites = PortalInviteRepository(session)
        self.identities = PortalIdentityRepository(session)
        self.scope = scope
        self.audit = audit
        self.registry = registry
        self.sessions = sessions
        self.lock = lock
        self.clock = clock
        self.default_ttl = default_ttl

    async def get_for_client(self, invite_id: UUID, client_id: UUID) -> PortalInvite:
        """Load an invite that belongs to the given client.

        Raises:
            NotFoundError: If no such invite exists for the client.
        """
        invite = await self.invites.get_by_id(invite_id)
        if invite is None or invite.client_id != client_id:
            raise NotFoundError("PortalInvite", str(invite_id))
        return invite

    async def create(
        self,
        client_id: UUID,
        ttl: timedelta | None = None,
        delivery_method: PortalInviteDelivery = PortalInviteDelivery.NONE,
        note: str | None = None,
    ) -> IssuedInvite:
        """Issue a new invite, revoking any other active invite of the client.

        Enables the client's portal as a side effect.

        Raises:
            NotFoundError: If the client does not exist.
        """
        async with self.lock.hold():
            identity = await self.registry.force_enable(client_id)

            now = self.clock()
            superseded = await self.invites.list_active_for_client(client_id)
            for previous in superseded:
                previous.state = PortalInviteState.REVOKED.value
                previous.revoked_at = now

            raw_code = CredentialCodec.new_invite_code()
            invite = PortalInvite(
                business_id=identity.business_id,
                client_id=client_id,
                portal_identity_id=identity.id,
                code_hash=CredentialCodec.digest(raw_code),
                expires_at=now + (ttl or self.default_ttl),
                state=PortalInviteState.DRAFT.value,
                delivery_method=delivery_method.value,
                send_count=0,
                note=note,
                created_at=now,
            )
            await self.invites.add(invite)
            await self.invites.commit()

        for previous in superseded:
            await self.audit.record(
                client_id,
                "portal.invite.revoked",
                entity_type="PortalInvite",
                entity_id=previous.id,
                summary="Superseded by a new invite.",
            )

        logger.info(
            "portal_invite_created",
            invite_id=str(invite.id),
            client_id=str(client_id),
            superseded=len(superseded),
            expires_at=invite.expires_at.isoformat(),
        )
        await self.audit.record(
            client_id,
            "portal.invite.created",
            entity_type="PortalInvite",
            entity_id=invite.id,
        )
        return IssuedInvite(invite=invite, raw_code=raw_code)

    async def mark_sent(
        self,
        invite: PortalInvite,
        delivery_method: PortalInviteDelivery | None = None,
    ) -> PortalInvite:
        """Record that the invite code was handed to the client.

        Raises:
            StateConflictError: If the invite is accepted, revoked or expired.
        """
        async with self.lock.hold():
            self._ensure_not_terminal(invite)

            now = self.clock()
            invite.state = PortalInviteState.SENT.value
            invite.send_count = (invite.send_count or 0) + 1
            invite.last_sent_at = now
            if delivery_method is not None:
                invite.delivery_method = delivery_method.value

            identity = await self.identities.get_by_id(invite.portal_identity_id)
            if identity is not None:
                identity.last_invite_sent_at = now
            await self.invites.commit()

        logger.info("portal_invite_sent", invite_id=str(invite.id), send_count=invite.send_count)
        await self.audit.record(
            invite.client_id,
            "portal.invite.sent",
            entity_type="PortalInvite",
            entity_id=invite.id,
            business_id_hint=invite.business_id,
        )
        return invite

    async def revoke(self, invite: PortalInvite) -> PortalInvite:
        """Revoke an invite.

        Raises:
            StateConflictError: If the invite is already terminal.
        """
        async with self.lock.hold():
            self._ensure_not_terminal(invite)
            invite.state = PortalInviteState.REVOKED.value
            invite.revoked_at = self.clock()
            await self.invites.commit()

        logger.info("portal_invite_revoked", invite_id=str(invite.id))
        await self.audit.record(
            invite.client_id,
            "portal.invite.revoked",
            entity_type="PortalInvite",
            entity_id=invite.id,
            business_id_hint=invite.business_id,
        )
        return invite

    async def validate(self, raw_code: str) -> PortalInvite | None:
        """Resolve a raw invite code to a redeemable invite.

        Advances an invite found past its expiry to ``expired``. Never
        raises; every invalid case yields None.
        """
        try:
            async with self.lock.hold():
                invite = await self.invites.get_by_code_hash(CredentialCodec.digest(raw_code))
                if invite is None:
                    return None
                if invite.state in TERMINAL_INVITE_STATES:
                    return None

                if invite.expires_at <= self.clock():
                    invite.state = PortalInviteState.EXPIRED.value
                    await self.invites.commit()
                    logger.info("portal_invite_expired", invite_id=str(invite.id))
                    return None

                identity = await self.identities.get_by_id(invite.portal_identity_id)
                if identity is None or not identity.is_enabled:
                    return None
                return invite
        except (BizPortalError, SQLAlchemyError) as e:
            logger.error("portal_invite_validation_failed", error=str(e))
            return None

    async def accept_and_create_session(
        self,
        raw_code: str,
        device_label: str | None = None,
        session_ttl: timedelta | None = None,
    ) -> IssuedSession | None:
        """Exchange an invite code for a new portal session.

        Consuming the invite and creating the session are one commit under
        one lock hold, so a code can never be exchanged twice.

        Returns:
            The issued session, or None if the code is not redeemable.

        Raises:
            ScopeViolationError: If the invite's business no longer matches
                the client's. The invite is revoked.
        """
        async with self.lock.hold():
            invite = await self.validate(raw_code)
            if invite is None:
                logger.info("portal_invite_accept_rejected")
                return None

            current_business_id = await self.scope.try_business_id_for_client(invite.client_id)
            identity = await self.identities.get_by_id(invite.portal_identity_id)
            if identity is None:
                raise NotFoundError("PortalIdentity", str(invite.portal_identity_id))

            if (
                current_business_id is None
                or current_business_id != invite.business_id
                or identity.business_id != invite.business_id
            ):
                invite.state = PortalInviteState.REVOKED.value
                invite.revoked_at = self.clock()
                await self.invites.commit()
                logger.warning(
                    "portal_invite_business_mismatch",
                    invite_id=str(invite.id),
                    client_id=str(invite.client_id),
                )
                await self.audit.record(
                    invite.client_id,
                    "portal.invite.blocked_business_mismatch",
                    origin=PortalActionOrigin.PORTAL,
                    entity_type="PortalInvite",
                    entity_id=invite.id,
                    summary="Invite business mismatch; revoked.",
                    business_id_hint=invite.business_id,
                )
                raise ScopeViolationError(
                    "Invite is not valid for this business.",
                    details={"invite_id": str(invite.id)},
                )

            issued = await self.sessions.stage(
                identity,
                invite.business_id,
                device_label=device_label,
                ttl=session_ttl,
            )
            invite.state = PortalInviteState.ACCEPTED.value
            invite.accepted_at = self.clock()
            invite.accepted_session_id = issued.session.id
            await self.invites.commit()

        logger.info(
            "portal_invite_accepted",
            invite_id=str(invite.id),
            session_id=str(issued.session.id),
        )
        await self.audit.record(
            invite.client_id,
            "portal.invite.accepted",
            origin=PortalActionOrigin.PORTAL,
            session_id=issued.session.id,
            entity_type="PortalInvite",
            entity_id=invite.id,
            business_id_hint=invite.business_id,
        )
        await self.sessions.record_created(issued.session, origin=PortalActionOrigin.PORTAL)
        return issued

    @staticmethod
    def _ensure_not_terminal(invite: PortalInvite) -> None:
        if invite.state in TERMINAL_INVITE_STATES:
            state = PortalInviteState(invite.state).value
            raise StateConflictError(
                f"Invite is already {state}.",
                details={"invite_id": str(invite.id), "state": state},
            )
