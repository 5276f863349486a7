"""Client-facing portal endpoints.

Everything here acts with ``portal`` origin. Scope always comes from the
validated bearer session, never from the request.
"""

import base64
import binascii
from datetime import datetime
from typing import Literal
from uuid import UUID

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel, Field

from bizportal.api.deps import PortalCoreDep
from bizportal.api.middleware.auth import CurrentPortalSession
from bizportal.api.ratelimit import (
    RATE_LIMIT_INVITE_ACCEPT,
    RATE_LIMIT_PORTAL,
    RATE_LIMIT_PORTAL_ACTION,
    limiter,
)
from bizportal.api.schemas import APIRequestModel, APIResponseModel
from bizportal.infrastructure.database.models import (
    ContractStatus,
    DocumentType,
    EstimateStatus,
    SignatureType,
)
from bizportal.shared.exceptions import AuthenticationError, PayloadInvalidError

router = APIRouter(prefix="/portal", tags=["Portal"])


# ----- Request/Response Schemas -----


class AcceptInviteRequest(APIRequestModel):
    code: str = Field(..., min_length=1, max_length=64)
    device_label: str | None = Field(default=None, max_length=100)


class PortalSessionResponse(APIResponseModel):
    id: UUID
    business_id: UUID
    client_id: UUID
    expires_at: datetime
    device_label: str | None


class AcceptInviteResponse(BaseModel):
    """The raw token is shown exactly once."""

    session: PortalSessionResponse
    token: str


class InvoiceSummary(APIResponseModel):
    id: UUID
    number: str
    document_type: DocumentType
    estimate_status: EstimateStatus
    estimate_accepted_at: datetime | None
    created_at: datetime
    updated_at: datetime


class ContractSummary(APIResponseModel):
    id: UUID
    title: str
    status: ContractStatus
    invoice_id: UUID | None
    estimate_id: UUID | None
    signed_at: datetime | None
    signed_by_name: str
    updated_at: datetime


class DocumentsResponse(BaseModel):
    invoices: list[InvoiceSummary]
    estimates: list[InvoiceSummary]
    contracts: list[ContractSummary]


class SignContractRequest(APIRequestModel):
    signer_name: str = Field(..., max_length=255)
    signature_type: SignatureType
    # Drawn signature image, base64 encoded
    signature_image: str | None = None
    signature_text: str | None = Field(default=None, max_length=255)
    consent_version: str | None = Field(default=None, max_length=50)
    device_label: str | None = Field(default=None, max_length=100)


class SignatureResponse(APIResponseModel):
    id: UUID
    contract_id: UUID
    signer_name: str
    signature_type: SignatureType
    signed_at: datetime
    consent_version: str
    contract_body_hash: str
    device_label: str | None


def _normalize_code(raw: str) -> str:
    # Codes are read aloud and retyped: tolerate case, spaces and dashes
    return raw.strip().upper().replace(" ", "").replace("-", "")


def _decode_image(encoded: str | None) -> bytes | None:
    if not encoded:
        return None
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise PayloadInvalidError("Signature image is not valid base64.") from e


# ----- Invite exchange -----


@router.post("/invites/accept", response_model=AcceptInviteResponse, status_code=201)
@limiter.limit(RATE_LIMIT_INVITE_ACCEPT)
async def accept_invite(
    request: Request,
    body: AcceptInviteRequest,
    core: PortalCoreDep,
) -> AcceptInviteResponse:
    """Exchange an invite code for a bearer session."""
    issued = await core.invites.accept_and_create_session(
        _normalize_code(body.code),
        device_label=body.device_label,
    )
    if issued is None:
        raise AuthenticationError("Invite code is invalid or expired.")
    return AcceptInviteResponse(
        session=PortalSessionResponse.model_validate(issued.session),
        token=issued.raw_token,
    )


# ----- Session -----


@router.get("/session", response_model=PortalSessionResponse)
@limiter.limit(RATE_LIMIT_PORTAL)
async def get_session_info(
    request: Request,
    portal_session: CurrentPortalSession,
) -> PortalSessionResponse:
    return PortalSessionResponse.model_validate(portal_session)


# ----- Documents -----


@router.get("/documents", response_model=DocumentsResponse)
@limiter.limit(RATE_LIMIT_PORTAL)
async def list_documents(
    request: Request,
    portal_session: CurrentPortalSession,
    core: PortalCoreDep,
) -> DocumentsResponse:
    documents = await core.documents.list_for_session(portal_session)
    return DocumentsResponse(
        invoices=[InvoiceSummary.model_validate(i) for i in documents.invoices],
        estimates=[InvoiceSummary.model_validate(e) for e in documents.estimates],
        contracts=[ContractSummary.model_validate(c) for c in documents.contracts],
    )


@router.post("/documents/{entity_type}/{entity_id}/viewed", status_code=204)
@limiter.limit(RATE_LIMIT_PORTAL)
async def record_document_view(
    request: Request,
    entity_type: Literal["estimate", "invoice", "contract"],
    entity_id: UUID,
    portal_session: CurrentPortalSession,
    core: PortalCoreDep,
) -> Response:
    await core.documents.record_view(portal_session, entity_type, entity_id)
    return Response(status_code=204)


# ----- Actions -----


@router.post("/estimates/{estimate_id}/accept", response_model=InvoiceSummary)
@limiter.limit(RATE_LIMIT_PORTAL_ACTION)
async def accept_estimate(
    request: Request,
    estimate_id: UUID,
    portal_session: CurrentPortalSession,
    core: PortalCoreDep,
) -> InvoiceSummary:
    estimate = await core.actions.accept_estimate(estimate_id, portal_session)
    return InvoiceSummary.model_validate(estimate)


@router.post("/contracts/{contract_id}/sign", response_model=SignatureResponse, status_code=201)
@limiter.limit(RATE_LIMIT_PORTAL_ACTION)
async def sign_contract(
    request: Request,
    contract_id: UUID,
    body: SignContractRequest,
    portal_session: CurrentPortalSession,
    core: PortalCoreDep,
) -> SignatureResponse:
    signature = await core.actions.sign_contract(
        contract_id,
        portal_session,
        signer_name=body.signer_name,
        signature_type=body.signature_type,
        image_data=_decode_image(body.signature_image),
        text=body.signature_text,
        consent_version=body.consent_version,
        device_label=body.device_label,
    )
    return SignatureResponse.model_validate(signature)
