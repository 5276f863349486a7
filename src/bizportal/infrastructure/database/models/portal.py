"""Portal trust models: identities, invites, sessions and the audit trail."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from bizportal.infrastructure.database.models.base import (
    Base,
    BusinessScopedMixin,
    CreatedAtMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)


class PortalActionOrigin(str, Enum):
    """Who triggered an audited action."""

    INTERNAL = "internal"  # operator / workspace app
    PORTAL = "portal"  # the client through the portal


class PortalInviteState(str, Enum):
    """Invite lifecycle.

    draft -> sent -> accepted; draft|sent -> revoked; draft|sent -> expired.
    """

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REVOKED = "revoked"
    EXPIRED = "expired"


ACTIVE_INVITE_STATES = (PortalInviteState.DRAFT, PortalInviteState.SENT)


class PortalInviteDelivery(str, Enum):
    """How an invite code reaches the client."""

    NONE = "none"
    EMAIL = "email"
    SMS = "sms"
    MANUAL = "manual"  # copy/paste


class PortalSessionState(str, Enum):
    """Session lifecycle: active -> revoked | expired."""

    ACTIVE = "active"
    REVOKED = "revoked"
    EXPIRED = "expired"


class PortalIdentity(Base, UUIDPrimaryKeyMixin, BusinessScopedMixin, CreatedAtMixin):
    """Portal enablement record for one client.

    Never deleted, only disabled. client_id is intentionally not unique:
    legacy duplicates are tolerated and kept in lockstep by the registry.
    """

    __tablename__ = "portal_identities"

    client_id: Mapped[UUID] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    is_enabled: Mapped[bool] = mapped_column(default=False, nullable=False)

    last_invite_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    # Stable subject from an external auth provider, if any
    external_auth_subject: Mapped[str | None] = mapped_column(String(255), nullable=True)
    public_handle: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<PortalIdentity client={self.client_id} enabled={self.is_enabled}>"


class PortalInvite(Base, UUIDPrimaryKeyMixin, BusinessScopedMixin, CreatedAtMixin):
    """Single-use invite code exchange. Only the code digest is stored."""

    __tablename__ = "portal_invites"

    client_id: Mapped[UUID] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    portal_identity_id: Mapped[UUID] = mapped_column(
        ForeignKey("portal_identities.id", ondelete="CASCADE"),
        nullable=False,
    )

    code_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    state: Mapped[PortalInviteState] = mapped_column(
        String(20),
        default=PortalInviteState.DRAFT,
        nullable=False,
        index=True,
    )

    delivery_method: Mapped[PortalInviteDelivery] = mapped_column(
        String(20),
        default=PortalInviteDelivery.NONE,
        nullable=False,
    )
    send_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    accepted_session_id: Mapped[UUID | None] = mapped_column(nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_INVITE_STATES

    def __repr__(self) -> str:
        return f"<PortalInvite client={self.client_id} state={self.state}>"


class PortalSession(Base, UUIDPrimaryKeyMixin, BusinessScopedMixin, CreatedAtMixin):
    """Bearer session for an authenticated client. Only the token digest is stored."""

    __tablename__ = "portal_sessions"

    client_id: Mapped[UUID] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    portal_identity_id: Mapped[UUID] = mapped_column(
        ForeignKey("portal_identities.id", ondelete="CASCADE"),
        nullable=False,
    )

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    state: Mapped[PortalSessionState] = mapped_column(
        String(20),
        default=PortalSessionState.ACTIVE,
        nullable=False,
        index=True,
    )

    # e.g. "Portal Preview", "Web", "iPhone"
    device_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return f"<PortalSession client={self.client_id} state={self.state}>"


class PortalAuditEvent(Base, UUIDPrimaryKeyMixin, CreatedAtMixin):
    """Immutable security-relevant fact.

    No foreign keys: the trail must outlive and never block on the
    records it describes.
    """

    __tablename__ = "portal_audit_events"

    business_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    client_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    session_id: Mapped[UUID | None] = mapped_column(nullable=True)
    origin: Mapped[PortalActionOrigin] = mapped_column(String(20), nullable=False)

    # e.g. "estimate.accepted.portal", "contract.signed.portal"
    event_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    entity_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[UUID | None] = mapped_column(nullable=True)

    summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PortalAuditEvent {self.event_type}>"
