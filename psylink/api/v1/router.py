"""
Router principal API v1.

Agrège les routers des modules du moteur d'association.

Usage dans main.py:
    from psylink.api.v1.router import api_router

    app = FastAPI(title="PsyLink API")
    app.include_router(api_router)
"""
from fastapi import APIRouter

from psylink.core.config import settings

from .associations import router as associations_router
from .invitations import router as invitations_router
from .licenses import router as licenses_router


# =============================================================================
# ROUTER PRINCIPAL
# =============================================================================

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(invitations_router)
api_router.include_router(associations_router)
api_router.include_router(licenses_router)


# =============================================================================
# HEALTH CHECK
# =============================================================================

@api_router.get(
    "/health",
    tags=["System"],
    summary="Health check",
    description="Vérifie que l'API est opérationnelle.",
)
async def health_check():
    """
    Endpoint de santé pour les load balancers et le monitoring.

    Returns:
        Statut de l'API
    """
    return {
        "status": "healthy",
        "service": "psylink-api",
        "version": settings.APP_VERSION,
        "api_version": "v1",
    }
