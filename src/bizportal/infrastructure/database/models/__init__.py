"""SQLAlchemy ORM models."""

from bizportal.infrastructure.database.models.base import (
    Base,
    BusinessScopedMixin,
    TimestampMixin,
    UTCDateTime,
)
from bizportal.infrastructure.database.models.billing import (
    DocumentType,
    EstimateStatus,
    Invoice,
)
from bizportal.infrastructure.database.models.business import Business, Client
from bizportal.infrastructure.database.models.contract import (
    Contract,
    ContractSignature,
    ContractStatus,
    SignatureType,
    SignerRole,
)
from bizportal.infrastructure.database.models.portal import (
    PortalActionOrigin,
    PortalAuditEvent,
    PortalIdentity,
    PortalInvite,
    PortalInviteDelivery,
    PortalInviteState,
    PortalSession,
    PortalSessionState,
)

__all__ = [
    "Base",
    "BusinessScopedMixin",
    "TimestampMixin",
    "UTCDateTime",
    "Business",
    "Client",
    "Invoice",
    "DocumentType",
    "EstimateStatus",
    "Contract",
    "ContractSignature",
    "ContractStatus",
    "SignatureType",
    "SignerRole",
    "PortalActionOrigin",
    "PortalAuditEvent",
    "PortalIdentity",
    "PortalInvite",
    "PortalInviteDelivery",
    "PortalInviteState",
    "PortalSession",
    "PortalSessionState",
]
