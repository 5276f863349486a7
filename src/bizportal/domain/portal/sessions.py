"""Portal session lifecycle: issue, validate and revoke bearer sessions.

States: active -> revoked | expired. Both are terminal. Expiry is lazy:
it is applied when a session is validated, never by a background sweep.
"""

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.identity import pick_canonical_identity
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.infrastructure.database.models import (
    PortalActionOrigin,
    PortalIdentity,
    PortalSession,
    PortalSessionState,
)
from bizportal.infrastructure.database.repositories import (
    PortalIdentityRepository,
    PortalSessionRepository,
)
from bizportal.observability.metrics import record_session_validation
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.credentials import CredentialCodec
from bizportal.shared.exceptions import (
    BizPortalError,
    NotFoundError,
    PortalDisabledError,
    StateConflictError,
)
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SESSION_TTL = timedelta(days=30)


@dataclass(frozen=True)
class IssuedSession:
    """A freshly created session and its raw token.

    The raw token is only ever available here; the store keeps its digest.
    """

    session: PortalSession
    raw_token: str


class SessionLifecycle:
    """Issues, validates and revokes portal sessions."""

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        lock: WriterLock,
        clock: Clock = utc_now,
        default_ttl: timedelta = DEFAULT_SESSION_TTL,
    ) -> None:
        self.sessions = PortalSessionRepository(session)
        self.identities = PortalIdentityRepository(session)
        self.scope = scope
        self.audit = audit
        self.lock = lock
        self.clock = clock
        self.default_ttl = default_ttl

    # ----- Lookup -----

    async def get_for_client(self, session_id: UUID, client_id: UUID) -> PortalSession:
        """Load a session that belongs to the given client.

        Raises:
            NotFoundError: If no such session exists for the client.
        """
        portal_session = await self.sessions.get_by_id(session_id)
        if portal_session is None or portal_session.client_id != client_id:
            raise NotFoundError("PortalSession", str(session_id))
        return portal_session

    # ----- Creation -----

    async def create(
        self,
        client_id: UUID,
        device_label: str | None = None,
        ttl: timedelta | None = None,
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
    ) -> IssuedSession:
        """Create a session for a client with an enabled portal.

        Never enables the portal as a side effect.

        Raises:
            NotFoundError: If the client does not exist.
            PortalDisabledError: If the client has no enabled identity.
        """
        async with self.lock.hold():
            business_id = await self.scope.business_id_for_client(client_id)
            identity = pick_canonical_identity(await self.identities.list_for_client(client_id))

            if identity is None or not identity.is_enabled:
                logger.warning("portal_session_create_blocked", client_id=str(client_id))
                await self.audit.record(
                    client_id,
                    "portal.session.blocked_disabled_identity",
                    origin=origin,
                    entity_type="PortalIdentity",
                    entity_id=identity.id if identity else None,
                    summary="Session creation rejected because portal is disabled for this client.",
                )
                raise PortalDisabledError(str(client_id))

            issued = await self.stage(identity, business_id, device_label=device_label, ttl=ttl)
            await self.sessions.commit()

        await self.record_created(issued.session, origin=origin)
        return issued

    async def stage(
        self,
        identity: PortalIdentity,
        business_id: UUID,
        *,
        device_label: str | None = None,
        ttl: timedelta | None = None,
    ) -> IssuedSession:
        """Add a new session to the unit of work without committing it.

        Lets invite acceptance create the session in the same commit that
        consumes the invite. The caller must hold the writer lock.
        """
        now = self.clock()
        raw_token = CredentialCodec.new_session_token()
        portal_session = PortalSession(
            business_id=business_id,
            client_id=identity.client_id,
            portal_identity_id=identity.id,
            token_hash=CredentialCodec.digest(raw_token),
            expires_at=now + (ttl or self.default_ttl),
            state=PortalSessionState.ACTIVE.value,
            device_label=device_label,
            created_at=now,
        )
        await self.sessions.add(portal_session)
        identity.last_login_at = now
        return IssuedSession(session=portal_session, raw_token=raw_token)

    async def record_created(
        self,
        portal_session: PortalSession,
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
    ) -> None:
        logger.info(
            "portal_session_created",
            session_id=str(portal_session.id),
            client_id=str(portal_session.client_id),
            business_id=str(portal_session.business_id),
            expires_at=portal_session.expires_at.isoformat(),
        )
        await self.audit.record(
            portal_session.client_id,
            "portal.session.created",
            origin=origin,
            session_id=portal_session.id,
            entity_type="PortalSession",
            entity_id=portal_session.id,
            business_id_hint=portal_session.business_id,
        )

    # ----- Revocation -----

    async def revoke(
        self,
        portal_session: PortalSession,
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
    ) -> PortalSession:
        """Revoke one session.

        Raises:
            StateConflictError: If the session is already revoked or expired.
        """
        async with self.lock.hold():
            if portal_session.state != PortalSessionState.ACTIVE:
                state = PortalSessionState(portal_session.state).value
                raise StateConflictError(
                    f"Session is already {state}.",
                    details={"session_id": str(portal_session.id), "state": state},
                )
            self._mark_revoked(portal_session)
            await self.sessions.commit()

        logger.info("portal_session_revoked", session_id=str(portal_session.id))
        await self.audit.record(
            portal_session.client_id,
            "portal.session.revoked",
            origin=origin,
            session_id=portal_session.id,
            entity_type="PortalSession",
            entity_id=portal_session.id,
            business_id_hint=portal_session.business_id,
        )
        return portal_session

    async def revoke_all(
        self,
        client_id: UUID,
        reason: str = "portal.disabled",
        *,
        origin: PortalActionOrigin = PortalActionOrigin.INTERNAL,
    ) -> int:
        """Revoke every session of a client that is not yet terminal.

        Sessions past expiry but still stored as active are revoked too.
        One summarised audit event is written when anything was revoked.

        Returns:
            Number of revoked sessions.
        """
        async with self.lock.hold():
            live = await self.sessions.list_non_terminal_for_client(client_id)
            if not live:
                return 0
            for portal_session in live:
                self._mark_revoked(portal_session)
            await self.sessions.commit()

        count = len(live)
        logger.info("portal_sessions_revoked", client_id=str(client_id), count=count, reason=reason)
        await self.audit.record(
            client_id,
            "portal.sessions.revoked",
            origin=origin,
            entity_type="PortalSession",
            summary=f"Revoked {count} session(s). Reason: {reason}",
        )
        return count

    # ----- Validation -----

    async def validate(self, raw_token: str) -> PortalSession | None:
        """Resolve a raw bearer token to a live, in-scope session.

        Never raises: every failure, including a storage error, yields
        None without saying why.
        """
        try:
            async with self.lock.hold():
                portal_session = await self.sessions.get_by_token_hash(
                    CredentialCodec.digest(raw_token)
                )
                if portal_session is None:
                    record_session_validation("unknown")
                    return None
                return await self._check(portal_session)
        except (BizPortalError, SQLAlchemyError) as e:
            logger.error("portal_session_validation_failed", error=str(e))
            record_session_validation("error")
            return None

    async def revalidate(self, portal_session: PortalSession) -> PortalSession | None:
        """Re-run the liveness and scope checks on an already-loaded session.

        Reloads the row first, so a revoke, disable or tenant move committed
        after the session was first validated is seen. Never raises.
        """
        try:
            async with self.lock.hold():
                await self.sessions.refresh(portal_session)
                return await self._check(portal_session)
        except (BizPortalError, SQLAlchemyError) as e:
            logger.error(
                "portal_session_validation_failed",
                session_id=str(portal_session.id),
                error=str(e),
            )
            record_session_validation("error")
            return None

    async def _check(self, portal_session: PortalSession) -> PortalSession | None:
        if portal_session.state == PortalSessionState.REVOKED:
            record_session_validation("revoked")
            return None
        if portal_session.state == PortalSessionState.EXPIRED:
            record_session_validation("expired")
            return None

        if portal_session.expires_at <= self.clock():
            portal_session.state = PortalSessionState.EXPIRED.value
            await self.sessions.commit()
            logger.info("portal_session_expired", session_id=str(portal_session.id))
            record_session_validation("expired")
            return None

        current_business_id = await self.scope.try_business_id_for_client(portal_session.client_id)
        if current_business_id is None:
            await self._reject(
                portal_session,
                "portal.session.revoked_client_missing",
                "Session client no longer exists; revoked.",
            )
            return None
        if current_business_id != portal_session.business_id:
            await self._reject(
                portal_session,
                "portal.session.revoked_business_mismatch",
                "Session business mismatch; revoked.",
            )
            return None

        identity = await self.identities.get_by_id(
            portal_session.portal_identity_id, fresh=True
        )
        if identity is None:
            await self._reject(
                portal_session,
                "portal.session.revoked_identity_missing",
                "Session identity no longer exists; revoked.",
            )
            return None
        if not identity.is_enabled:
            await self._reject(
                portal_session,
                "portal.session.blocked_disabled_identity",
                "Token rejected because portal is disabled for this client.",
            )
            return None
        if identity.business_id != portal_session.business_id:
            await self._reject(
                portal_session,
                "portal.session.revoked_identity_business_mismatch",
                "Identity/session business mismatch; revoked.",
            )
            return None

        record_session_validation("valid")
        return portal_session

    async def _reject(self, portal_session: PortalSession, event_type: str, summary: str) -> None:
        """Revoke a session that failed a scope check and audit why."""
        self._mark_revoked(portal_session)
        await self.sessions.commit()
        logger.warning(
            "portal_session_rejected",
            session_id=str(portal_session.id),
            client_id=str(portal_session.client_id),
            reason=event_type,
        )
        record_session_validation("rejected")
        await self.audit.record(
            portal_session.client_id,
            event_type,
            session_id=portal_session.id,
            entity_type="PortalSession",
            entity_id=portal_session.id,
            summary=summary,
            business_id_hint=portal_session.business_id,
        )

    def _mark_revoked(self, portal_session: PortalSession) -> None:
        portal_session.state = PortalSessionState.REVOKED.value
        portal_session.revoked_at = self.clock()
