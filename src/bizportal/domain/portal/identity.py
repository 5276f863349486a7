"""Portal identity registry: the gate for whether a client has a portal."""

from collections.abc import Sequence
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.infrastructure.database.models import PortalActionOrigin, PortalIdentity
from bizportal.infrastructure.database.repositories import PortalIdentityRepository
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.credentials import CredentialCodec
from bizportal.shared.exceptions import NotFoundError
from bizportal.shared.logging import get_logger

if TYPE_CHECKING:
    from bizportal.domain.portal.sessions import SessionLifecycle

logger = get_logger(__name__)


def pick_canonical_identity(identities: Sequence[PortalIdentity]) -> PortalIdentity | None:
    """Prefer an enabled identity, else the most recently created one."""
    if not identities:
        return None
    newest_first = sorted(identities, key=lambda i: i.created_at, reverse=True)
    for identity in newest_first:
        if identity.is_enabled:
            return identity
    return newest_first[0]


class IdentityRegistry:
    """Creates, enables and disables portal identities.

    Duplicate identity rows for one client are tolerated: every row is
    moved to the same enabled/business state together so whichever one
    a lookup resolves agrees with the others.
    """

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        sessions: "SessionLifecycle",
        lock: WriterLock,
        clock: Clock = utc_now,
    ) -> None:
        self.identities = PortalIdentityRepository(session)
        self.scope = scope
        self.audit = audit
        self.sessions = sessions
        self.lock = lock
        self.clock = clock

    async def canonical(self, client_id: UUID) -> PortalIdentity | None:
        """Canonical identity of a client without creating one."""
        return pick_canonical_identity(await self.identities.list_for_client(client_id))

    async def ensure(self, client_id: UUID) -> PortalIdentity:
        """Canonical identity of a client, creating a disabled one if none exists.

        Raises:
            NotFoundError: If the client does not exist.
        """
        async with self.lock.hold():
            existing = await self.canonical(client_id)
            if existing is not None:
                return existing

            business_id = await self.scope.business_id_for_client(client_id)
            identity = await self._create(client_id, business_id, enabled=False)
            await self.identities.commit()
            return identity

    async def force_enable(self, client_id: UUID) -> PortalIdentity:
        """Enable every identity of a client and re-stamp its current business.

        Flushes only; the caller commits and audits.

        Raises:
            NotFoundError: If the client does not exist. Nothing is changed.
        """
        async with self.lock.hold():
            business_id = await self.scope.business_id_for_client(client_id)
            matches = await self.identities.list_for_client(client_id)
            if not matches:
                return await self._create(client_id, business_id, enabled=True)

            for identity in matches:
                if identity.business_id != business_id:
                    logger.warning(
                        "portal_identity_business_restamped",
                        identity_id=str(identity.id),
                        old_business_id=str(identity.business_id),
                        business_id=str(business_id),
                    )
                identity.is_enabled = True
                identity.business_id = business_id
            await self.identities.session.flush()

            canonical = pick_canonical_identity(matches)
            if canonical is None:
                raise NotFoundError("PortalIdentity", str(client_id))
            return canonical

    async def set_enabled(
        self,
        client_id: UUID,
        enabled: bool,
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
    ) -> PortalIdentity | None:
        """Enable or disable the portal for a client.

        Disabling revokes every live session of the client before
        returning.

        Returns:
            The canonical identity (None when disabling a client that never
            had one).

        Raises:
            NotFoundError: If the client does not exist.
        """
        if enabled:
            async with self.lock.hold():
                identity = await self.force_enable(client_id)
                await self.identities.commit()

            logger.info("portal_enabled", client_id=str(client_id))
            await self.audit.record(
                client_id,
                "portal.enabled",
                origin=origin,
                entity_type="PortalIdentity",
                entity_id=identity.id,
                summary="Portal enabled for client.",
            )
            return identity

        async with self.lock.hold():
            # Resolve first so an unknown client changes nothing
            await self.scope.business_id_for_client(client_id)
            matches = await self.identities.list_for_client(client_id)
            for identity in matches:
                identity.is_enabled = False
            await self.identities.commit()

            revoked = await self.sessions.revoke_all(client_id, reason="portal.disabled")

        logger.info("portal_disabled", client_id=str(client_id), sessions_revoked=revoked)
        canonical = pick_canonical_identity(matches)
        await self.audit.record(
            client_id,
            "portal.disabled",
            origin=origin,
            entity_type="PortalIdentity",
            entity_id=canonical.id if canonical else None,
            summary="Portal disabled for client.",
        )
        return canonical

    async def _create(self, client_id: UUID, business_id: UUID, *, enabled: bool) -> PortalIdentity:
        identity = PortalIdentity(
            business_id=business_id,
            client_id=client_id,
            is_enabled=enabled,
            public_handle=CredentialCodec.new_public_handle(),
            created_at=self.clock(),
        )
        await self.identities.add(identity)
        logger.info(
            "portal_identity_created",
            identity_id=str(identity.id),
            client_id=str(client_id),
            enabled=enabled,
        )
        return identity
