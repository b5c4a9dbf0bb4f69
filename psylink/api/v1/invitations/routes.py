"""
Routes FastAPI pour le module Invitations.

Endpoints pour :
- POST /invitations : inviter par email
- GET /invitations/lookup : code en attente pour un email
- POST /invitations/{code}/redeem : utiliser un code
- POST /invitations/{id}/cancel : annuler (émetteur)
"""
from fastapi import APIRouter, Query, status
from pydantic import EmailStr

from psylink.api.v1.associations.schemas import AssociationResponse
from psylink.api.v1.dependencies import CurrentContext, Engine
from psylink.api.v1.errors import to_http_exception
from psylink.api.v1.invitations.schemas import (
    InvitationCreate,
    InvitationList,
    InvitationLookup,
    InvitationResponse,
    InviteResultResponse,
)
from psylink.core.exceptions import EngineError

router = APIRouter(prefix="/invitations", tags=["Invitations"])


@router.post("", response_model=InviteResultResponse, status_code=status.HTTP_201_CREATED)
def invite_by_email(data: InvitationCreate, ctx: CurrentContext, engine: Engine):
    """Invite par email ; crée directement la demande si le compte existe."""
    try:
        result = engine.invite_by_email(ctx, data.email)
    except EngineError as e:
        raise to_http_exception(e)

    if result.is_association:
        return InviteResultResponse(
            kind="ASSOCIATION",
            association=AssociationResponse.model_validate(result.association),
        )
    return InviteResultResponse(
        kind="INVITATION",
        invitation=InvitationResponse.model_validate(result.invitation),
    )


@router.get("", response_model=InvitationList)
def list_pending_invitations(ctx: CurrentContext, engine: Engine):
    """Invitations en attente émises par l'appelant."""
    try:
        items = engine.list_pending_invitations(ctx)
    except EngineError as e:
        raise to_http_exception(e)
    return InvitationList(
        items=[InvitationResponse.model_validate(i) for i in items],
        total=len(items),
    )


@router.get("/lookup", response_model=InvitationLookup)
def lookup_invitation(
        ctx: CurrentContext,
        engine: Engine,
        email: EmailStr = Query(..., description="Email du compte nouvellement inscrit"),
):
    """Retrouve le code d'une invitation en attente pour un email."""
    try:
        return InvitationLookup(code=engine.resolve_invitation_by_email(email))
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{code}/redeem", response_model=AssociationResponse)
def redeem_invitation(code: str, ctx: CurrentContext, engine: Engine):
    """Utilise un code ; produit une association PENDING à accepter par l'émetteur."""
    try:
        return engine.redeem_invitation(code, ctx)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{invitation_id}/cancel", response_model=InvitationResponse)
def cancel_invitation(invitation_id: int, ctx: CurrentContext, engine: Engine):
    """Annule une invitation en attente (émetteur uniquement)."""
    try:
        return engine.cancel_invitation(invitation_id, ctx)
    except EngineError as e:
        raise to_http_exception(e)
