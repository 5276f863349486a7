"""Operator endpoints for managing a client's portal access.

Everything here acts with ``internal`` origin and requires the operator
key. Every route first checks that the client belongs to the business in
the path.
"""

from datetime import datetime, timedelta
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from bizportal.api.deps import PortalCoreDep
from bizportal.api.middleware.auth import require_operator
from bizportal.api.schemas import APIRequestModel, APIResponseModel
from bizportal.infrastructure.database.models import (
    PortalActionOrigin,
    PortalIdentity,
    PortalInviteDelivery,
    PortalInviteState,
    PortalSessionState,
)

router = APIRouter(
    prefix="/admin/businesses/{business_id}/clients/{client_id}/portal",
    tags=["Portal Admin"],
    dependencies=[Depends(require_operator)],
)


# ----- Request/Response Schemas -----


class IdentityResponse(APIResponseModel):
    id: UUID
    business_id: UUID
    client_id: UUID
    is_enabled: bool
    public_handle: str
    created_at: datetime
    last_invite_sent_at: datetime | None
    last_login_at: datetime | None


class PortalStatusResponse(BaseModel):
    enabled: bool
    identity: IdentityResponse | None


class InviteCreateRequest(APIRequestModel):
    ttl_days: int | None = Field(default=None, ge=1, le=90)
    delivery_method: PortalInviteDelivery = PortalInviteDelivery.NONE
    note: str | None = Field(default=None, max_length=2000)


class InviteMarkSentRequest(APIRequestModel):
    delivery_method: PortalInviteDelivery | None = None


class InviteResponse(APIResponseModel):
    id: UUID
    client_id: UUID
    state: PortalInviteState
    delivery_method: PortalInviteDelivery
    expires_at: datetime
    send_count: int
    last_sent_at: datetime | None
    accepted_at: datetime | None
    accepted_session_id: UUID | None
    revoked_at: datetime | None
    note: str | None
    created_at: datetime


class IssuedInviteResponse(BaseModel):
    """The raw code is shown exactly once."""

    invite: InviteResponse
    code: str


class SessionCreateRequest(APIRequestModel):
    device_label: str | None = Field(default=None, max_length=100)
    ttl_days: int | None = Field(default=None, ge=1, le=365)


class SessionResponse(APIResponseModel):
    id: UUID
    business_id: UUID
    client_id: UUID
    state: PortalSessionState
    expires_at: datetime
    revoked_at: datetime | None
    device_label: str | None
    created_at: datetime


class IssuedSessionResponse(BaseModel):
    """The raw token is shown exactly once."""

    session: SessionResponse
    token: str


class RevokeAllRequest(APIRequestModel):
    reason: str = Field(default="operator", min_length=1, max_length=200)


class RevokeAllResponse(BaseModel):
    revoked: int


class PreviewResponse(BaseModel):
    session: SessionResponse
    token: str
    remote_seeded: bool
    remote_token: str | None


class AuditEventResponse(APIResponseModel):
    id: UUID
    business_id: UUID
    client_id: UUID
    session_id: UUID | None
    origin: PortalActionOrigin
    event_type: str
    entity_type: str | None
    entity_id: UUID | None
    summary: str | None
    created_at: datetime


def _status(identity: PortalIdentity | None) -> PortalStatusResponse:
    return PortalStatusResponse(
        enabled=bool(identity and identity.is_enabled),
        identity=IdentityResponse.model_validate(identity) if identity else None,
    )


# ----- Identity -----


@router.get("", response_model=PortalStatusResponse)
async def get_portal_status(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
) -> PortalStatusResponse:
    """Current portal enablement of a client."""
    await core.require_client_scope(business_id, client_id)
    return _status(await core.identities.canonical(client_id))


@router.post("/enable", response_model=PortalStatusResponse)
async def enable_portal(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
) -> PortalStatusResponse:
    await core.require_client_scope(business_id, client_id)
    identity = await core.identities.set_enabled(client_id, True)
    return _status(identity)


@router.post("/disable", response_model=PortalStatusResponse)
async def disable_portal(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
) -> PortalStatusResponse:
    """Disable the portal and revoke every live session of the client."""
    await core.require_client_scope(business_id, client_id)
    identity = await core.identities.set_enabled(client_id, False)
    return _status(identity)


# ----- Invites -----


@router.post("/invites", response_model=IssuedInviteResponse, status_code=201)
async def create_invite(
    business_id: UUID,
    client_id: UUID,
    body: InviteCreateRequest,
    core: PortalCoreDep,
) -> IssuedInviteResponse:
    """Issue an invite code; any earlier active invite is revoked."""
    await core.require_client_scope(business_id, client_id)
    issued = await core.invites.create(
        client_id,
        ttl=timedelta(days=body.ttl_days) if body.ttl_days else None,
        delivery_method=body.delivery_method,
        note=body.note,
    )
    return IssuedInviteResponse(
        invite=InviteResponse.model_validate(issued.invite),
        code=issued.raw_code,
    )


@router.post("/invites/{invite_id}/sent", response_model=InviteResponse)
async def mark_invite_sent(
    business_id: UUID,
    client_id: UUID,
    invite_id: UUID,
    core: PortalCoreDep,
    body: InviteMarkSentRequest | None = None,
) -> InviteResponse:
    await core.require_client_scope(business_id, client_id)
    invite = await core.invites.get_for_client(invite_id, client_id)
    invite = await core.invites.mark_sent(
        invite,
        delivery_method=body.delivery_method if body else None,
    )
    return InviteResponse.model_validate(invite)


@router.post("/invites/{invite_id}/revoke", response_model=InviteResponse)
async def revoke_invite(
    business_id: UUID,
    client_id: UUID,
    invite_id: UUID,
    core: PortalCoreDep,
) -> InviteResponse:
    await core.require_client_scope(business_id, client_id)
    invite = await core.invites.get_for_client(invite_id, client_id)
    invite = await core.invites.revoke(invite)
    return InviteResponse.model_validate(invite)


# ----- Sessions -----


@router.post("/sessions", response_model=IssuedSessionResponse, status_code=201)
async def create_session(
    business_id: UUID,
    client_id: UUID,
    body: SessionCreateRequest,
    core: PortalCoreDep,
) -> IssuedSessionResponse:
    """Issue a session directly. Fails with 403 while the portal is disabled."""
    await core.require_client_scope(business_id, client_id)
    issued = await core.sessions.create(
        client_id,
        device_label=body.device_label,
        ttl=timedelta(days=body.ttl_days) if body.ttl_days else None,
    )
    return IssuedSessionResponse(
        session=SessionResponse.model_validate(issued.session),
        token=issued.raw_token,
    )


@router.post("/sessions/revoke-all", response_model=RevokeAllResponse)
async def revoke_all_sessions(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
    body: RevokeAllRequest | None = None,
) -> RevokeAllResponse:
    await core.require_client_scope(business_id, client_id)
    revoked = await core.sessions.revoke_all(
        client_id,
        reason=body.reason if body else "operator",
    )
    return RevokeAllResponse(revoked=revoked)


@router.post("/sessions/{session_id}/revoke", response_model=SessionResponse)
async def revoke_session(
    business_id: UUID,
    client_id: UUID,
    session_id: UUID,
    core: PortalCoreDep,
) -> SessionResponse:
    await core.require_client_scope(business_id, client_id)
    portal_session = await core.sessions.get_for_client(session_id, client_id)
    portal_session = await core.sessions.revoke(portal_session)
    return SessionResponse.model_validate(portal_session)


# ----- Preview -----


@router.post("/preview", response_model=PreviewResponse, status_code=201)
async def open_preview(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
) -> PreviewResponse:
    """Enable the portal and open a preview session, seeding the web portal if configured."""
    preview = await core.preview.open_preview(business_id, client_id)
    return PreviewResponse(
        session=SessionResponse.model_validate(preview.session),
        token=preview.raw_token,
        remote_seeded=preview.remote_seeded,
        remote_token=preview.remote_token,
    )


# ----- Audit -----


@router.get("/audit", response_model=list[AuditEventResponse])
async def list_audit_events(
    business_id: UUID,
    client_id: UUID,
    core: PortalCoreDep,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
) -> list[AuditEventResponse]:
    """Audit trail of the client, newest first."""
    await core.require_client_scope(business_id, client_id)
    events = await core.audit.list_for_client(client_id, limit=limit, offset=offset)
    return [AuditEventResponse.model_validate(e) for e in events]
