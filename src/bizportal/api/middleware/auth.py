"""Authentication dependencies for operator and portal routes."""

import secrets
from typing import Annotated

import structlog
from fastapi import Depends, Request, Security
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer

from bizportal.api.deps import PortalCoreDep
from bizportal.config import get_settings
from bizportal.infrastructure.database.models import PortalSession
from bizportal.shared.exceptions import AuthenticationError, SessionInvalidError
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

OPERATOR_HEADER = "X-Portal-Admin"

# HTTP Bearer scheme for portal sessions
security = HTTPBearer(auto_error=False)
operator_key_header = APIKeyHeader(name=OPERATOR_HEADER, auto_error=False)


async def require_operator(
    request: Request,
    api_key: Annotated[str | None, Security(operator_key_header)],
) -> None:
    """Dependency guarding operator endpoints.

    An unset PORTAL_ADMIN_KEY rejects every call.
    """
    expected = get_settings().portal_admin_key
    if not expected or not api_key or not secrets.compare_digest(api_key, expected):
        logger.warning(
            "operator_auth_failed",
            path=request.url.path,
            key_present=api_key is not None,
        )
        raise AuthenticationError("Operator authentication required.")


async def get_portal_session(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    core: PortalCoreDep,
) -> PortalSession:
    """Dependency resolving the bearer token to a live portal session.

    Every failure produces the same error so callers learn nothing about
    why a token was rejected.
    """
    if credentials is None:
        raise SessionInvalidError()

    portal_session = await core.sessions.validate(credentials.credentials)
    if portal_session is None:
        raise SessionInvalidError()

    # Rate limiter keys on the session; log lines carry it
    request.state.portal_session_id = portal_session.id
    structlog.contextvars.bind_contextvars(
        portal_session_id=str(portal_session.id),
        client_id=str(portal_session.client_id),
    )
    return portal_session


RequireOperator = Annotated[None, Depends(require_operator)]
CurrentPortalSession = Annotated[PortalSession, Depends(get_portal_session)]
