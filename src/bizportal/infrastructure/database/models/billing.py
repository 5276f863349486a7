"""Invoice model (invoices and estimates share one table)."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizportal.infrastructure.database.models.base import (
    Base,
    BusinessScopedMixin,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)

if TYPE_CHECKING:
    from bizportal.infrastructure.database.models.business import Client


class DocumentType(str, Enum):
    """Kind of billing document."""

    INVOICE = "invoice"
    ESTIMATE = "estimate"


class EstimateStatus(str, Enum):
    """Estimate decision status."""

    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"  # final
    DECLINED = "declined"  # final


FINAL_ESTIMATE_STATUSES = (EstimateStatus.ACCEPTED, EstimateStatus.DECLINED)


class Invoice(Base, UUIDPrimaryKeyMixin, BusinessScopedMixin, TimestampMixin):
    """Invoice or estimate.

    The portal may only touch estimate_status, estimate_accepted_at and
    updated_at; everything else belongs to the workspace application.
    """

    __tablename__ = "invoices"

    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    document_type: Mapped[DocumentType] = mapped_column(
        String(20),
        default=DocumentType.INVOICE,
        nullable=False,
    )
    number: Mapped[str] = mapped_column(String(50), default="", nullable=False)

    estimate_status: Mapped[EstimateStatus] = mapped_column(
        String(20),
        default=EstimateStatus.DRAFT,
        nullable=False,
    )
    estimate_accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    client: Mapped["Client | None"] = relationship(
        "Client",
        back_populates="invoices",
    )

    @property
    def is_estimate(self) -> bool:
        return self.document_type == DocumentType.ESTIMATE

    def __repr__(self) -> str:
        return f"<Invoice {self.document_type} {self.number}>"
