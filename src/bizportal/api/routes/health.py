"""Health check endpoints."""

from fastapi import APIRouter, Request
from pydantic import BaseModel
from sqlalchemy import literal, select
from sqlalchemy.exc import SQLAlchemyError

from bizportal.api.deps import SessionDep
from bizportal.shared.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    ready: bool
    checks: dict[str, bool]


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check - always returns OK if service is running."""
    from bizportal import __version__

    return HealthResponse(status="healthy", version=__version__)


@router.get("/ready", response_model=ReadyResponse)
async def readiness_check(request: Request, session: SessionDep) -> ReadyResponse:
    """Readiness check - verifies the record store and writer lock."""
    checks: dict[str, bool] = {}

    try:
        await session.execute(select(literal(1)))
        checks["database"] = True
    except SQLAlchemyError as e:
        logger.warning("database_health_check_failed", error=str(e))
        checks["database"] = False

    checks["write_lock"] = getattr(request.app.state, "portal_write_lock", None) is not None

    return ReadyResponse(ready=all(checks.values()), checks=checks)
