"""Router registrations."""

from fastapi import APIRouter

from authcore.api.routers import (
    assignments,
    audit,
    auth,
    authorization,
    health,
    permissions,
    roles,
)


def get_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router, tags=["health"])
    router.include_router(auth.router, prefix="/api/v1/auth", tags=["auth"])
    router.include_router(authorization.router, prefix="/api/v1", tags=["authorization"])
    router.include_router(roles.router, prefix="/api/v1/roles", tags=["roles"])
    router.include_router(permissions.router, prefix="/api/v1/permissions", tags=["permissions"])
    router.include_router(assignments.router, prefix="/api/v1/assignments", tags=["assignments"])
    router.include_router(audit.router, prefix="/api/v1/audit", tags=["audit"])
    return router
