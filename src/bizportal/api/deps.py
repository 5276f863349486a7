"""FastAPI dependencies for API routes."""

from typing import Annotated

from fastapi import Depends, Request

from bizportal.config import get_settings
from bizportal.domain.portal import PortalCore, build_portal_core
from bizportal.infrastructure.database.connection import SessionDep
from bizportal.infrastructure.external.portal_backend import PortalBackendClient
from bizportal.shared.clock import Clock, utc_now
from bizportal.shared.concurrency import WriterLock


def get_write_lock(request: Request) -> WriterLock:
    """Process-wide writer lock (one per FastAPI app)."""
    lock = getattr(request.app.state, "portal_write_lock", None)
    if lock is None:
        lock = WriterLock()
        request.app.state.portal_write_lock = lock
    return lock


def get_portal_backend(request: Request) -> PortalBackendClient | None:
    return getattr(request.app.state, "portal_backend", None)


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "portal_clock", None) or utc_now


async def get_portal_core(
    request: Request,
    session: SessionDep,
) -> PortalCore:
    """Portal services bound to the request's database session."""
    return build_portal_core(
        session,
        get_settings(),
        get_write_lock(request),
        clock=get_clock(request),
        backend=get_portal_backend(request),
    )


PortalCoreDep = Annotated[PortalCore, Depends(get_portal_core)]

__all__ = [
    "PortalCoreDep",
    "SessionDep",
    "get_clock",
    "get_portal_backend",
    "get_portal_core",
    "get_write_lock",
]
