"""Vérification des tokens JWT émis par le fournisseur d'identité externe."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError

from psylink.core.config import settings
from psylink.core.context import RequestContext
from psylink.models.enums import ActorRole


class InvalidTokenError(Exception):
    """Token absent, invalide, expiré ou incomplet."""
    pass


def create_access_token(
        actor_id: int,
        role: ActorRole,
        expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Crée un token d'accès signé.

    Le moteur n'émet pas de credentials en production : cette fonction
    sert aux tests et aux outils d'administration.
    """
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))

    to_encode: Dict[str, Any] = {
        "sub": str(actor_id),
        "role": role.value,
        "exp": expire,
        "iat": now,
    }
    if settings.TOKEN_ISSUER:
        to_encode["iss"] = settings.TOKEN_ISSUER

    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.ALGORITHM)


def verify_token(token: str) -> Dict[str, Any]:
    """
    Vérifie et décode un token JWT.

    Raises:
        InvalidTokenError: Si la signature, l'expiration ou l'émetteur est invalide
    """
    options = {"verify_signature": True, "verify_exp": True, "require_exp": True}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            issuer=settings.TOKEN_ISSUER,
            options=options,
        )
    except JWTError as e:
        raise InvalidTokenError(f"Token invalide : {e}") from e


def context_from_token(token: str) -> RequestContext:
    """
    Construit le RequestContext à partir des claims `sub` et `role`.

    Le rôle SYSTEM ne peut pas être obtenu via un token.
    """
    payload = verify_token(token)

    try:
        actor_id = int(payload["sub"])
        role = ActorRole(str(payload["role"]).upper())
    except (KeyError, ValueError) as e:
        raise InvalidTokenError(f"Claims incomplets : {e}") from e

    if role == ActorRole.SYSTEM:
        raise InvalidTokenError("Le rôle SYSTEM est réservé au moteur")

    return RequestContext(actor_id=actor_id, role=role)
