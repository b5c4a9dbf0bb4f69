"""API v1 du moteur d'association PsyLink."""
from psylink.api.v1.router import api_router

__all__ = ["api_router"]
