"""
Traduction des erreurs du moteur en réponses HTTP.

Le corps d'erreur porte le `code` machine ; la traduction en texte lisible
reste du ressort de l'interface.
"""
from fastapi import HTTPException, status

from psylink.core.exceptions import (
    AmbiguousTargetError,
    CapacityExceededError,
    ConflictError,
    EngineError,
    ExternalServiceFailureError,
    ForbiddenError,
    InvalidQuantityError,
    InvalidTransitionError,
    LicenseInUseError,
    NotFoundError,
)

STATUS_BY_ERROR = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    ConflictError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    LicenseInUseError: status.HTTP_409_CONFLICT,
    AmbiguousTargetError: status.HTTP_409_CONFLICT,
    InvalidQuantityError: 422,
    ExternalServiceFailureError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def to_http_exception(error: EngineError) -> HTTPException:
    """Construit l'HTTPException correspondant à une erreur du moteur."""
    status_code = STATUS_BY_ERROR.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, **error.details},
    )
