"""Invoice repository."""

from collections.abc import Sequence
from uuid import UUID

from bizportal.infrastructure.database.models.billing import Invoice
from bizportal.infrastructure.database.repositories.base import BaseRepository


class InvoiceRepository(BaseRepository[Invoice]):
    """Repository for invoices and estimates."""

    model_class = Invoice

    async def list_for_client(self, client_id: UUID) -> Sequence[Invoice]:
        """All invoices/estimates linked to a client, across businesses."""
        query = self._base_query().where(Invoice.client_id == client_id)
        result = await self.session.execute(query)
        return result.scalars().all()

    async def list_for_client_in_business(
        self,
        client_id: UUID,
        business_id: UUID,
    ) -> Sequence[Invoice]:
        """Invoices/estimates of a client within one business, newest first."""
        query = (
            self._scoped_query(business_id)
            .where(Invoice.client_id == client_id)
            .order_by(Invoice.created_at.desc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def get_many(self, ids: Sequence[UUID]) -> dict[UUID, Invoice]:
        if not ids:
            return {}
        result = await self.session.execute(self._base_query().where(Invoice.id.in_(ids)))
        return {inv.id: inv for inv in result.scalars().all()}
