"""Scoped read model of the records a portal session may see."""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.domain.portal.sessions import SessionLifecycle
from bizportal.infrastructure.database.models import (
    Contract,
    DocumentType,
    Invoice,
    PortalActionOrigin,
    PortalSession,
)
from bizportal.infrastructure.database.repositories import ContractRepository, InvoiceRepository
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.exceptions import NotFoundError, ScopeViolationError, SessionInvalidError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

VIEWABLE_ENTITY_TYPES = ("estimate", "invoice", "contract")


@dataclass
class PortalDocuments:
    invoices: list[Invoice] = field(default_factory=list)
    estimates: list[Invoice] = field(default_factory=list)
    contracts: list[Contract] = field(default_factory=list)


class PortalDocumentService:
    """Lists and audits views of the documents inside a session's scope."""

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        sessions: SessionLifecycle,
        lock: WriterLock,
    ) -> None:
        self.invoices = InvoiceRepository(session)
        self.contracts = ContractRepository(session)
        self.scope = scope
        self.audit = audit
        self.sessions = sessions
        self.lock = lock

    async def list_for_session(self, portal_session: PortalSession) -> PortalDocuments:
        """Documents of the session's client within the session's business.

        Runs drift reconciliation first; the scope filter applies regardless.

        Raises:
            SessionInvalidError: If the session is no longer valid.
        """
        async with self.lock.hold():
            if await self.sessions.revalidate(portal_session) is None:
                raise SessionInvalidError()

            client_id = portal_session.client_id
            business_id = portal_session.business_id
            if await self.scope.reconcile_client_records(client_id, business_id):
                await self.invoices.commit()

        documents = PortalDocuments()
        for record in await self.invoices.list_for_client_in_business(client_id, business_id):
            if record.document_type == DocumentType.ESTIMATE:
                documents.estimates.append(record)
            else:
                documents.invoices.append(record)

        for contract in await self.contracts.list_linked_to_client(client_id):
            if contract.business_id != business_id:
                continue
            if await self.scope.resolved_client_id(contract) != client_id:
                continue
            documents.contracts.append(contract)
        documents.contracts.sort(key=lambda c: c.updated_at, reverse=True)

        logger.debug(
            "portal_documents_listed",
            session_id=str(portal_session.id),
            invoices=len(documents.invoices),
            estimates=len(documents.estimates),
            contracts=len(documents.contracts),
        )
        return documents

    async def record_view(
        self,
        portal_session: PortalSession,
        entity_type: str,
        entity_id: UUID,
    ) -> None:
        """Audit that the client opened a document.

        Raises:
            SessionInvalidError: If the session is no longer valid.
            NotFoundError: If the document does not exist.
            ScopeViolationError: If the document is outside the session's scope.
        """
        if entity_type not in VIEWABLE_ENTITY_TYPES:
            raise NotFoundError(entity_type.capitalize() or "Document", str(entity_id))

        async with self.lock.hold():
            if await self.sessions.revalidate(portal_session) is None:
                raise SessionInvalidError()

        if entity_type == "contract":
            audited_type = "Contract"
            in_scope = await self._contract_in_scope(portal_session, entity_id)
        else:
            audited_type = "Invoice"
            in_scope = await self._invoice_in_scope(portal_session, entity_type, entity_id)

        if not in_scope:
            logger.warning(
                "portal_view_blocked",
                entity_type=entity_type,
                entity_id=str(entity_id),
                session_id=str(portal_session.id),
            )
            await self.audit.record(
                portal_session.client_id,
                f"{entity_type}.view.blocked.portal",
                origin=PortalActionOrigin.PORTAL,
                session_id=portal_session.id,
                entity_type=audited_type,
                entity_id=entity_id,
                summary="Document outside session scope.",
                business_id_hint=portal_session.business_id,
            )
            raise ScopeViolationError()

        await self.audit.record(
            portal_session.client_id,
            f"{entity_type}.viewed",
            origin=PortalActionOrigin.PORTAL,
            session_id=portal_session.id,
            entity_type=audited_type,
            entity_id=entity_id,
            business_id_hint=portal_session.business_id,
        )

    async def _invoice_in_scope(
        self,
        portal_session: PortalSession,
        entity_type: str,
        entity_id: UUID,
    ) -> bool:
        record = await self.invoices.get_by_id(entity_id)
        if record is None or record.document_type != DocumentType(entity_type):
            raise NotFoundError(entity_type.capitalize(), str(entity_id))
        return (
            record.client_id == portal_session.client_id
            and record.business_id == portal_session.business_id
        )

    async def _contract_in_scope(self, portal_session: PortalSession, entity_id: UUID) -> bool:
        contract = await self.contracts.get_by_id(entity_id)
        if contract is None:
            raise NotFoundError("Contract", str(entity_id))
        if contract.business_id != portal_session.business_id:
            return False
        return await self.scope.resolved_client_id(contract) == portal_session.client_id
