"""State-changing actions a client may perform through the portal.

Authorization is always re-derived from the stored session; caller
supplied scope is never trusted. Every rejection past the session check
is audited before the error is raised.
"""

from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bizportal.domain.portal.audit import AuditLog
from bizportal.domain.portal.scope import BusinessScopeResolver
from bizportal.domain.portal.sessions import SessionLifecycle
from bizportal.infrastructure.database.models import (
    ContractSignature,
    ContractStatus,
    DocumentType,
    EstimateStatus,
    Invoice,
    PortalActionOrigin,
    PortalSession,
    SignatureType,
    SignerRole,
)
from bizportal.infrastructure.database.models.billing import FINAL_ESTIMATE_STATUSES
from bizportal.infrastructure.database.repositories import (
    ContractRepository,
    ContractSignatureRepository,
    InvoiceRepository,
)
from bizportal.observability.metrics import record_portal_action
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock
from bizportal.shared.credentials import CredentialCodec
from bizportal.shared.exceptions import (
    AlreadyFinalError,
    LockedError,
    NotFoundError,
    PayloadInvalidError,
    ScopeViolationError,
    SessionInvalidError,
    StateConflictError,
)
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONSENT_VERSION = "portal-consent-v1"

ESTIMATE_BLOCKED = "estimate.accept.blocked.portal"
CONTRACT_BLOCKED = "contract.sign.blocked.portal"


class PortalActionGateway:
    """Estimate acceptance and contract signing on behalf of a portal session."""

    def __init__(
        self,
        session: AsyncSession,
        scope: BusinessScopeResolver,
        audit: AuditLog,
        sessions: SessionLifecycle,
        lock: WriterLock,
        clock: Clock = utc_now,
        consent_version: str = DEFAULT_CONSENT_VERSION,
    ) -> None:
        self.invoices = InvoiceRepository(session)
        self.contracts = ContractRepository(session)
        self.signatures = ContractSignatureRepository(session)
        self.scope = scope
        self.audit = audit
        self.sessions = sessions
        self.lock = lock
        self.clock = clock
        self.consent_version = consent_version

    # ----- Estimates -----

    async def accept_estimate(self, estimate_id: UUID, portal_session: PortalSession) -> Invoice:
        """Accept an estimate as the session's client.

        Raises:
            SessionInvalidError: If the session is no longer valid.
            NotFoundError: If the estimate does not exist or is not an estimate.
            ScopeViolationError: If the estimate belongs to another client or business.
            LockedError: If a contract generated from the estimate is signed.
            AlreadyFinalError: If the estimate is already accepted or declined.
        """
        async with self.lock.hold():
            await self._require_live(portal_session, "accept_estimate")

            estimate = await self.invoices.get_by_id(estimate_id)
            if estimate is None:
                record_portal_action("accept_estimate", "not_found")
                raise NotFoundError("Estimate", str(estimate_id))

            if estimate.document_type != DocumentType.ESTIMATE:
                await self._block(
                    "accept_estimate", ESTIMATE_BLOCKED, portal_session, "Invoice", estimate.id,
                    "Document is not an estimate.",
                )
                raise NotFoundError("Estimate", str(estimate_id))

            if estimate.client_id != portal_session.client_id:
                await self._block(
                    "accept_estimate", ESTIMATE_BLOCKED, portal_session, "Invoice", estimate.id,
                    "Client mismatch.",
                )
                raise ScopeViolationError()

            if estimate.business_id != portal_session.business_id:
                await self._block(
                    "accept_estimate", ESTIMATE_BLOCKED, portal_session, "Invoice", estimate.id,
                    "Business mismatch.",
                )
                raise ScopeViolationError()

            if await self.contracts.has_signed_for_estimate(estimate.id):
                await self._block(
                    "accept_estimate", ESTIMATE_BLOCKED, portal_session, "Invoice", estimate.id,
                    "Locked by a signed contract.",
                )
                raise LockedError(
                    "Estimate is locked by a signed contract.",
                    details={"estimate_id": str(estimate.id)},
                )

            if estimate.estimate_status in FINAL_ESTIMATE_STATUSES:
                status = EstimateStatus(estimate.estimate_status).value
                await self._block(
                    "accept_estimate", ESTIMATE_BLOCKED, portal_session, "Invoice", estimate.id,
                    f"Estimate already {status}.",
                )
                raise AlreadyFinalError("Estimate", status)

            now = self.clock()
            estimate.estimate_status = EstimateStatus.ACCEPTED.value
            estimate.estimate_accepted_at = now
            estimate.updated_at = now
            await self.invoices.commit()

            logger.info(
                "portal_estimate_accepted",
                estimate_id=str(estimate.id),
                session_id=str(portal_session.id),
            )
            record_portal_action("accept_estimate", "success")
            await self.audit.record(
                portal_session.client_id,
                "estimate.accepted.portal",
                origin=PortalActionOrigin.PORTAL,
                session_id=portal_session.id,
                entity_type="Invoice",
                entity_id=estimate.id,
                summary="Estimate accepted via client portal.",
                business_id_hint=portal_session.business_id,
            )
            return estimate

    # ----- Contracts -----

    async def sign_contract(
        self,
        contract_id: UUID,
        portal_session: PortalSession,
        signer_name: str,
        signature_type: SignatureType,
        image_data: bytes | None = None,
        text: str | None = None,
        consent_version: str | None = None,
        device_label: str | None = None,
    ) -> ContractSignature:
        """Capture the client's signature on a sent contract.

        Writes a ``submitted`` event before the signature is stored and a
        ``signed`` event after the contract status changes, so a failure
        in between stays visible in the trail.

        Raises:
            SessionInvalidError: If the session is no longer valid.
            NotFoundError: If the contract does not exist.
            ScopeViolationError: If the contract belongs to another business or client.
            StateConflictError: If the contract is not ``sent`` or already
                carries a client signature.
            PayloadInvalidError: If the signer name or signature payload is invalid.
        """
        async with self.lock.hold():
            await self._require_live(portal_session, "sign_contract")

            contract = await self.contracts.get_by_id(contract_id)
            if contract is None:
                record_portal_action("sign_contract", "not_found")
                raise NotFoundError("Contract", str(contract_id))

            if contract.business_id != portal_session.business_id:
                await self._block(
                    "sign_contract", CONTRACT_BLOCKED, portal_session, "Contract", contract.id,
                    "Business mismatch.",
                )
                raise ScopeViolationError()

            if await self.scope.resolved_client_id(contract) != portal_session.client_id:
                await self._block(
                    "sign_contract", CONTRACT_BLOCKED, portal_session, "Contract", contract.id,
                    "Client mismatch.",
                )
                raise ScopeViolationError()

            if contract.status != ContractStatus.SENT:
                status = ContractStatus(contract.status).value
                await self._block(
                    "sign_contract", CONTRACT_BLOCKED, portal_session, "Contract", contract.id,
                    f"Contract must be 'sent' to sign. Current: {status}",
                )
                raise StateConflictError(
                    "Contract must be sent before it can be signed.",
                    details={"contract_id": str(contract.id), "status": status},
                )

            if await self.signatures.has_client_signature(contract.id):
                await self._block(
                    "sign_contract", CONTRACT_BLOCKED, portal_session, "Contract", contract.id,
                    "Client signature already exists.",
                )
                raise StateConflictError(
                    "Contract is already signed.",
                    details={"contract_id": str(contract.id)},
                )

            try:
                clean_name, clean_text = self._validate_payload(
                    signer_name, signature_type, image_data, text
                )
            except PayloadInvalidError as e:
                await self._block(
                    "sign_contract", CONTRACT_BLOCKED, portal_session, "Contract", contract.id,
                    e.message,
                )
                raise

            signature_type = SignatureType(signature_type)
            await self.audit.record(
                portal_session.client_id,
                "contract.sign.submitted.portal",
                origin=PortalActionOrigin.PORTAL,
                session_id=portal_session.id,
                entity_type="Contract",
                entity_id=contract.id,
                summary=f"Signature submitted ({signature_type.value}).",
                business_id_hint=portal_session.business_id,
            )

            now = self.clock()
            signature = ContractSignature(
                business_id=portal_session.business_id,
                client_id=portal_session.client_id,
                contract_id=contract.id,
                session_id=portal_session.id,
                signer_role=SignerRole.CLIENT.value,
                signer_name=clean_name,
                signature_type=signature_type.value,
                signature_image=image_data if signature_type == SignatureType.DRAWN else None,
                signature_text=clean_text if signature_type == SignatureType.TYPED else None,
                signed_at=now,
                consent_version=consent_version or self.consent_version,
                contract_body_hash=CredentialCodec.contract_body_digest(
                    contract.title, contract.rendered_body
                ),
                device_label=device_label or portal_session.device_label,
            )
            contract.status = ContractStatus.SIGNED.value
            contract.signed_at = now
            contract.signed_by_name = clean_name
            contract.updated_at = now

            try:
                await self.signatures.add(signature)
            except IntegrityError as e:
                # Partial unique index: a concurrent writer got there first
                await self.signatures.session.rollback()
                logger.warning("portal_signature_conflict", contract_id=str(contract_id), error=str(e))
                record_portal_action("sign_contract", "conflict")
                raise StateConflictError(
                    "Contract is already signed.",
                    details={"contract_id": str(contract_id)},
                ) from e
            await self.signatures.commit()

            logger.info(
                "portal_contract_signed",
                contract_id=str(contract.id),
                signature_id=str(signature.id),
                session_id=str(portal_session.id),
            )
            record_portal_action("sign_contract", "success")
            await self.audit.record(
                portal_session.client_id,
                "contract.signed.portal",
                origin=PortalActionOrigin.PORTAL,
                session_id=portal_session.id,
                entity_type="Contract",
                entity_id=contract.id,
                summary="Contract signed by client.",
                business_id_hint=portal_session.business_id,
            )
            return signature

    # ----- Helpers -----

    async def _require_live(self, portal_session: PortalSession, action: str) -> None:
        if await self.sessions.revalidate(portal_session) is None:
            record_portal_action(action, "session_invalid")
            raise SessionInvalidError()

    async def _block(
        self,
        action: str,
        event_type: str,
        portal_session: PortalSession,
        entity_type: str,
        entity_id: UUID,
        summary: str,
    ) -> None:
        logger.warning(
            "portal_action_blocked",
            action=action,
            entity_id=str(entity_id),
            session_id=str(portal_session.id),
            reason=summary,
        )
        record_portal_action(action, "blocked")
        await self.audit.record(
            portal_session.client_id,
            event_type,
            origin=PortalActionOrigin.PORTAL,
            session_id=portal_session.id,
            entity_type=entity_type,
            entity_id=entity_id,
            summary=summary,
            business_id_hint=portal_session.business_id,
        )

    @staticmethod
    def _validate_payload(
        signer_name: str,
        signature_type: SignatureType | str,
        image_data: bytes | None,
        text: str | None,
    ) -> tuple[str, str | None]:
        """Return the trimmed signer name and typed text, or raise PayloadInvalidError."""
        clean_name = (signer_name or "").strip()
        if not clean_name:
            raise PayloadInvalidError("Signer name is required.")

        try:
            kind = SignatureType(signature_type)
        except ValueError as e:
            raise PayloadInvalidError(f"Unknown signature type: {signature_type}.") from e

        clean_text = (text or "").strip() or None
        if kind == SignatureType.DRAWN:
            if not image_data:
                raise PayloadInvalidError("Drawn signature data is required.")
            if clean_text is not None:
                raise PayloadInvalidError("A drawn signature must not carry typed text.")
        else:
            if clean_text is None:
                raise PayloadInvalidError("Typed signature text is required.")
            if image_data:
                raise PayloadInvalidError("A typed signature must not carry image data.")
        return clean_name, clean_text
