"""
Routes FastAPI pour le module Associations.

Endpoints pour :
- /associations : demandes, liste, demandes en attente
- /associations/{id}/accept|reject|disconnect|withdraw : transitions
"""
from typing import Optional

from fastapi import APIRouter, Query, status

from psylink.api.v1.associations.schemas import (
    AssociationCreate,
    AssociationList,
    AssociationResponse,
    AssociationTransitionResponse,
    CascadeSummaryResponse,
    PendingCount,
)
from psylink.api.v1.dependencies import CurrentContext, Engine, Pagination
from psylink.api.v1.errors import to_http_exception
from psylink.core.exceptions import EngineError
from psylink.models.enums import AssociationStatus, RelationKind

router = APIRouter(prefix="/associations", tags=["Associations"])


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _build_transition_response(engine, association) -> AssociationTransitionResponse:
    """Ajoute le résumé de cascade si la transition en a déclenché une."""
    summary = engine.cascade.last_summary
    return AssociationTransitionResponse(
        association=AssociationResponse.model_validate(association),
        cascade=CascadeSummaryResponse.model_validate(summary) if summary else None,
    )


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("", response_model=AssociationList)
def list_associations(
        ctx: CurrentContext,
        engine: Engine,
        pagination: Pagination,
        relation_kind: Optional[RelationKind] = Query(None, description="Filtrer par type de relation"),
        status_filter: Optional[AssociationStatus] = Query(None, alias="status", description="Filtrer par statut"),
):
    """Liste les associations dont l'appelant est partie."""
    try:
        items = engine.list_associations(ctx, relation_kind=relation_kind, status=status_filter)
    except EngineError as e:
        raise to_http_exception(e)

    total = len(items)
    pages = (total + pagination.size - 1) // pagination.size
    return AssociationList(
        items=[AssociationResponse.model_validate(a) for a in pagination.slice(items)],
        total=total,
        page=pagination.page,
        size=pagination.size,
        pages=pages,
    )


@router.get("/pending", response_model=list[AssociationResponse])
def list_pending_associations(ctx: CurrentContext, engine: Engine):
    """Demandes en attente d'une réponse de l'appelant."""
    try:
        return engine.list_pending(ctx)
    except EngineError as e:
        raise to_http_exception(e)


@router.get("/pending/count", response_model=PendingCount)
def count_pending_associations(ctx: CurrentContext, engine: Engine):
    """Nombre de demandes en attente (badge de notification)."""
    try:
        return PendingCount(count=engine.count_pending(ctx))
    except EngineError as e:
        raise to_http_exception(e)


@router.post("", response_model=AssociationResponse, status_code=status.HTTP_201_CREATED)
def request_association(data: AssociationCreate, ctx: CurrentContext, engine: Engine):
    """Crée une demande d'association PENDING."""
    try:
        return engine.request_association(ctx, data.target_id, data.relation_kind)
    except EngineError as e:
        raise to_http_exception(e)


@router.get("/{association_id}", response_model=AssociationResponse)
def get_association(association_id: int, ctx: CurrentContext, engine: Engine):
    """Récupère une association dont l'appelant est partie."""
    try:
        return engine.get_association(association_id, ctx)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{association_id}/accept", response_model=AssociationTransitionResponse)
def accept_association(association_id: int, ctx: CurrentContext, engine: Engine):
    """Accepte une demande (destinataire uniquement). Idempotent."""
    try:
        association = engine.accept_association(association_id, ctx)
        return _build_transition_response(engine, association)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{association_id}/reject", response_model=AssociationTransitionResponse)
def reject_association(association_id: int, ctx: CurrentContext, engine: Engine):
    """Refuse une demande (destinataire uniquement). Idempotent."""
    try:
        association = engine.reject_association(association_id, ctx)
        return _build_transition_response(engine, association)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{association_id}/disconnect", response_model=AssociationTransitionResponse)
def disconnect_association(association_id: int, ctx: CurrentContext, engine: Engine):
    """Déconnecte une association active (l'une ou l'autre partie). Idempotent."""
    try:
        association = engine.disassociate(association_id, ctx)
        return _build_transition_response(engine, association)
    except EngineError as e:
        raise to_http_exception(e)


@router.post("/{association_id}/withdraw", response_model=AssociationTransitionResponse)
def withdraw_association(association_id: int, ctx: CurrentContext, engine: Engine):
    """Retire une demande encore en attente (demandeur uniquement)."""
    try:
        association = engine.withdraw_association(association_id, ctx)
        return _build_transition_response(engine, association)
    except EngineError as e:
        raise to_http_exception(e)
