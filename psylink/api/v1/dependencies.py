"""
Dépendances générales de l'API v1.

- get_request_context : RequestContext construit depuis le token Bearer
- get_engine : AssociationEngine lié à la session de la requête
- PaginationParams : paramètres de pagination standardisés
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.security import InvalidTokenError, context_from_token
from psylink.database.session import get_db
from psylink.services.engine import AssociationEngine

bearer_scheme = HTTPBearer(auto_error=False)


def get_request_context(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> RequestContext:
    """Extrait l'acteur et son rôle du token du fournisseur d'identité."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "UNAUTHENTICATED"},
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return context_from_token(credentials.credentials)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": "INVALID_TOKEN"},
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_engine(db: Session = Depends(get_db)) -> AssociationEngine:
    return AssociationEngine(db)


class PaginationParams:
    """
    Paramètres de pagination standardisés pour les routes de liste.

    Usage:
        @router.get("/entities")
        def list_entities(pagination: PaginationParams = Depends()):
            ...
    """

    def __init__(
            self,
            page: Annotated[int, Query(ge=1, description="Numéro de page (commence à 1)")] = 1,
            size: Annotated[int, Query(ge=1, le=100, description="Nombre d'éléments par page")] = 20,
    ):
        self.page = page
        self.size = size

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.size

    def slice(self, items: list) -> list:
        return items[self.offset:self.offset + self.size]


# =============================================================================
# TYPE ALIASES
# =============================================================================

Pagination = Annotated[PaginationParams, Depends()]
CurrentContext = Annotated[RequestContext, Depends(get_request_context)]
Engine = Annotated[AssociationEngine, Depends(get_engine)]
