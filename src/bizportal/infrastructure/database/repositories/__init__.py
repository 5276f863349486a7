"""Repository pattern for data access."""

from bizportal.infrastructure.database.repositories.base import BaseRepository
from bizportal.infrastructure.database.repositories.billing import InvoiceRepository
from bizportal.infrastructure.database.repositories.business import (
    BusinessRepository,
    ClientRepository,
)
from bizportal.infrastructure.database.repositories.contract import (
    ContractRepository,
    ContractSignatureRepository,
)
from bizportal.infrastructure.database.repositories.portal import (
    PortalAuditEventRepository,
    PortalIdentityRepository,
    PortalInviteRepository,
    PortalSessionRepository,
)

__all__ = [
    "BaseRepository",
    "BusinessRepository",
    "ClientRepository",
    "InvoiceRepository",
    "ContractRepository",
    "ContractSignatureRepository",
    "PortalAuditEventRepository",
    "PortalIdentityRepository",
    "PortalInviteRepository",
    "PortalSessionRepository",
]
