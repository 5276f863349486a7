"""Business-scope resolution and drift reconciliation.

The client record is the source of truth for which business a client
belongs to. Nothing here reads an ambient "current business"; every
check re-derives scope from stored relationships.
"""

from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.infrastructure.database.models import Contract
from bizportal.infrastructure.database.repositories import (
    ClientRepository,
    ContractRepository,
    InvoiceRepository,
)
from bizportal.shared.exceptions import NotFoundError, ScopeViolationError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)


class BusinessScopeResolver:
    """Resolves a client's current business and repairs scope drift."""

    def __init__(self, session: AsyncSession) -> None:
        self.clients = ClientRepository(session)
        self.invoices = InvoiceRepository(session)
        self.contracts = ContractRepository(session)

    async def try_business_id_for_client(self, client_id: UUID) -> UUID | None:
        return await self.clients.get_business_id(client_id)

    async def business_id_for_client(self, client_id: UUID) -> UUID:
        """Current business of a client.

        Raises:
            NotFoundError: If the client does not exist.
        """
        business_id = await self.clients.get_business_id(client_id)
        if business_id is None:
            raise NotFoundError("Client", str(client_id))
        return business_id

    async def resolved_client_id(self, contract: Contract) -> UUID | None:
        """Client of a contract: direct link, else via its invoice, else its estimate."""
        if contract.client_id is not None:
            return contract.client_id
        for linked_id in (contract.invoice_id, contract.estimate_id):
            if linked_id is None:
                continue
            linked = await self.invoices.get_by_id(linked_id)
            if linked is not None and linked.client_id is not None:
                return linked.client_id
        return None

    async def inferred_business_id(self, contract: Contract) -> UUID | None:
        """Business implied by the contract's invoice or estimate."""
        for linked_id in (contract.invoice_id, contract.estimate_id):
            if linked_id is None:
                continue
            linked = await self.invoices.get_by_id(linked_id)
            if linked is not None:
                return linked.business_id
        return None

    async def reconcile_client_records(self, client_id: UUID, business_id: UUID) -> int:
        """Re-stamp a client's invoices and contracts onto the expected business.

        Data-quality repair only; scope checks must still run afterwards.
        Changes are flushed, the caller commits.

        Returns:
            Number of repaired records.
        """
        repaired = 0

        for invoice in await self.invoices.list_for_client(client_id):
            if invoice.business_id != business_id:
                invoice.business_id = business_id
                repaired += 1

        # Invoices first: a contract's inferred business reads them
        if repaired:
            await self.invoices.session.flush()

        for contract in await self.contracts.list_linked_to_client(client_id):
            if contract.business_id == business_id:
                continue
            if await self.resolved_client_id(contract) != client_id:
                continue
            if await self.inferred_business_id(contract) != business_id:
                continue
            contract.business_id = business_id
            repaired += 1

        if repaired:
            await self.contracts.session.flush()
            logger.info(
                "scope_drift_repaired",
                client_id=str(client_id),
                business_id=str(business_id),
                repaired=repaired,
            )
        return repaired

    async def require_client_in_business(self, business_id: UUID, client_id: UUID) -> None:
        """Check a caller-supplied (business, client) pair against the store.

        Raises:
            NotFoundError: If the client does not exist.
            ScopeViolationError: If the client belongs to another business.
        """
        current = await self.business_id_for_client(client_id)
        if current != business_id:
            raise ScopeViolationError(
                details={"client_id": str(client_id), "business_id": str(business_id)}
            )
