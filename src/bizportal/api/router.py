"""Main API router aggregating all v1 routes."""

from fastapi import APIRouter

from bizportal.api.routes import health, portal, portal_admin

# Create main router
api_router = APIRouter()

# Include route modules
api_router.include_router(health.router)
api_router.include_router(portal_admin.router)  # operator, X-Portal-Admin
api_router.include_router(portal.router)  # client, bearer session
