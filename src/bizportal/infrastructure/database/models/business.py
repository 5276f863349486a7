"""Business and client models.

Both are owned by the surrounding workspace application; the portal core
only reads them to resolve a client's current business.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bizportal.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)

if TYPE_CHECKING:
    from bizportal.infrastructure.database.models.billing import Invoice


class Business(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Business (tenant).

    Root entity for tenant isolation. Every scoped record references it
    through business_id.
    """

    __tablename__ = "businesses"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    clients: Mapped[list["Client"]] = relationship(
        "Client",
        back_populates="business",
    )

    def __repr__(self) -> str:
        return f"<Business {self.name}>"


class Client(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """Client of a business.

    business_id is the source of truth for the client's tenant; a client
    can be reassigned to another business by the workspace application.
    """

    __tablename__ = "clients"

    business_id: Mapped[UUID] = mapped_column(
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    business: Mapped["Business"] = relationship(
        "Business",
        back_populates="clients",
    )
    invoices: Mapped[list["Invoice"]] = relationship(
        "Invoice",
        back_populates="client",
    )

    def __repr__(self) -> str:
        return f"<Client {self.name}>"
