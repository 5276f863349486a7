"""Contract and contract signature models."""

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, Index, LargeBinary, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizportal.infrastructure.database.models.base import (
    Base,
    BusinessScopedMixin,
    TimestampMixin,
    UTCDateTime,
    UUIDPrimaryKeyMixin,
)
from bizportal.shared.clock import utc_now

if TYPE_CHECKING:
    from bizportal.infrastructure.database.models.billing import Invoice


class ContractStatus(str, Enum):
    """Contract lifecycle status."""

    DRAFT = "draft"
    SENT = "sent"  # only state a client can sign from
    SIGNED = "signed"
    CANCELLED = "cancelled"


class SignerRole(str, Enum):
    """Who produced a signature."""

    CLIENT = "client"
    BUSINESS = "business"


class SignatureType(str, Enum):
    """How the signature was captured."""

    DRAWN = "drawn"  # image bytes from the drawing widget
    TYPED = "typed"  # typed full name


class Contract(Base, UUIDPrimaryKeyMixin, BusinessScopedMixin, TimestampMixin):
    """Contract generated by the workspace application.

    The portal may only set status, signed_at, signed_by_name and
    updated_at.
    """

    __tablename__ = "contracts"

    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    invoice_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Estimate this contract was generated from
    estimate_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("invoices.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    title: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    rendered_body: Mapped[str] = mapped_column(Text, default="", nullable=False)

    status: Mapped[ContractStatus] = mapped_column(
        String(20),
        default=ContractStatus.DRAFT,
        nullable=False,
        index=True,
    )
    signed_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    signed_by_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)

    invoice: Mapped["Invoice | None"] = relationship("Invoice", foreign_keys=[invoice_id])
    estimate: Mapped["Invoice | None"] = relationship("Invoice", foreign_keys=[estimate_id])
    signatures: Mapped[list["ContractSignature"]] = relationship(
        "ContractSignature",
        back_populates="contract",
        order_by="ContractSignature.signed_at",
    )

    @property
    def is_signed(self) -> bool:
        return self.status == ContractStatus.SIGNED

    def __repr__(self) -> str:
        return f"<Contract {self.title!r} {self.status}>"


class ContractSignature(Base, UUIDPrimaryKeyMixin):
    """Append-only signature artifact.

    Never edited after insert. contract_body_hash anchors the exact text
    that was signed; a later edit of the contract no longer matches it.
    """

    __tablename__ = "contract_signatures"
    __table_args__ = (
        # One client signature per contract
        Index(
            "uq_contract_signatures_client",
            "contract_id",
            unique=True,
            postgresql_where=text("signer_role = 'client'"),
            sqlite_where=text("signer_role = 'client'"),
        ),
    )

    business_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    client_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    contract_id: Mapped[UUID] = mapped_column(
        ForeignKey("contracts.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    session_id: Mapped[UUID | None] = mapped_column(nullable=True)

    signer_role: Mapped[SignerRole] = mapped_column(String(20), nullable=False)
    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Exactly one of image/text is set, matching signature_type
    signature_type: Mapped[SignatureType] = mapped_column(String(20), nullable=False)
    signature_image: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)
    signature_text: Mapped[str | None] = mapped_column(String(255), nullable=True)

    signed_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utc_now, nullable=False)
    consent_version: Mapped[str] = mapped_column(String(50), nullable=False)
    contract_body_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    device_label: Mapped[str | None] = mapped_column(String(100), nullable=True)

    contract: Mapped["Contract"] = relationship(
        "Contract",
        back_populates="signatures",
    )

    def __repr__(self) -> str:
        return f"<ContractSignature {self.signer_role} {self.signature_type}>"
