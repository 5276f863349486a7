"""Contract and contract signature repositories."""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import exists, func, or_, select

from bizportal.infrastructure.database.models.billing import Invoice
from bizportal.infrastructure.database.models.contract import (
    Contract,
    ContractSignature,
    ContractStatus,
    SignerRole,
)
from bizportal.infrastructure.database.repositories.base import BaseRepository


class ContractRepository(BaseRepository[Contract]):
    """Repository for Contract entities."""

    model_class = Contract

    async def list_linked_to_client(self, client_id: UUID) -> Sequence[Contract]:
        """Contracts whose client is set directly or through their invoice/estimate."""
        linked_invoice_ids = select(Invoice.id).where(Invoice.client_id == client_id)
        query = self._base_query().where(
            or_(
                Contract.client_id == client_id,
                Contract.invoice_id.in_(linked_invoice_ids),
                Contract.estimate_id.in_(linked_invoice_ids),
            )
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def has_signed_for_estimate(self, estimate_id: UUID) -> bool:
        """Whether any contract generated from the estimate is signed."""
        query = select(
            exists().where(
                Contract.estimate_id == estimate_id,
                Contract.status == ContractStatus.SIGNED.value,
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())


class ContractSignatureRepository(BaseRepository[ContractSignature]):
    """Append-only repository for signature artifacts (no update path)."""

    model_class = ContractSignature

    async def has_client_signature(self, contract_id: UUID) -> bool:
        query = select(
            exists().where(
                ContractSignature.contract_id == contract_id,
                ContractSignature.signer_role == SignerRole.CLIENT.value,
            )
        )
        result = await self.session.execute(query)
        return bool(result.scalar())

    async def list_for_contract(self, contract_id: UUID) -> Sequence[ContractSignature]:
        query = (
            self._base_query()
            .where(ContractSignature.contract_id == contract_id)
            .order_by(ContractSignature.signed_at.asc())
        )
        result = await self.session.execute(query)
        return result.scalars().all()

    async def count_for_contract(self, contract_id: UUID) -> int:
        query = select(func.count()).where(ContractSignature.contract_id == contract_id)
        result = await self.session.execute(query)
        return result.scalar_one()
