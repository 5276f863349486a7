"""Custom exception hierarchy for BizPortal."""

from typing import Any


class BizPortalError(Exception):
    """Base exception for all BizPortal errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


# ----- Authentication Errors -----


class AuthenticationError(BizPortalError):
    """Authentication failed."""

    pass


class SessionInvalidError(AuthenticationError):
    """Portal session is revoked, expired or out of scope."""

    def __init__(self) -> None:
        super().__init__(message="Portal session is invalid or expired.")


class UnauthorizedError(BizPortalError):
    """Caller is not allowed to perform this action."""

    pass


class PortalDisabledError(UnauthorizedError):
    """Portal access is disabled for the client."""

    def __init__(self, client_id: str) -> None:
        super().__init__(
            message="Portal is disabled for this client.",
            details={"client_id": client_id},
        )


# ----- Resource Errors -----


class NotFoundError(BizPortalError):
    """Requested resource was not found."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(
            message=f"{resource} not found.",
            details={"resource": resource, "identifier": identifier},
        )


class ScopeViolationError(BizPortalError):
    """Record lies outside the caller's business/client scope.

    Always audited before it is raised.
    """

    def __init__(self, message: str = "Not authorized.", details: dict[str, Any] | None = None) -> None:
        super().__init__(message=message, details=details)


# ----- Lifecycle Errors -----


class StateConflictError(BizPortalError):
    """Record is in the wrong lifecycle state for the requested transition."""

    pass


class LockedError(StateConflictError):
    """Record is locked by a dependent record (e.g. a signed contract)."""

    pass


class AlreadyFinalError(StateConflictError):
    """Record already reached a final state."""

    def __init__(self, resource: str, state: str) -> None:
        super().__init__(
            message=f"{resource} is already {state}.",
            details={"resource": resource, "state": state},
        )


# ----- Validation Errors -----


class ValidationError(BizPortalError):
    """Input validation failed."""

    pass


class PayloadInvalidError(ValidationError):
    """Signature payload is malformed."""

    pass


# ----- External Service Errors -----


class ExternalServiceError(BizPortalError):
    """Error from an external service."""

    pass


class StorageError(ExternalServiceError):
    """Record store commit failed."""

    pass


class PortalBackendError(ExternalServiceError):
    """Remote portal backend rejected or failed a request."""

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None) -> None:
        super().__init__(
            message=message,
            details={"status_code": status_code, "body": body},
        )
        self.status_code = status_code
