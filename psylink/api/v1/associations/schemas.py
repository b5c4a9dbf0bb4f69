"""Schémas Pydantic pour le module Associations."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from psylink.models.enums import AssociationSide, AssociationStatus, RelationKind


# =============================================================================
# ASSOCIATION SCHEMAS
# =============================================================================

class AssociationCreate(BaseModel):
    """Demande de relation vers un acteur identifié."""
    target_id: int = Field(..., ge=1, description="ID du psychologue, patient ou entreprise visé")
    relation_kind: Optional[RelationKind] = Field(
        None, description="Requis pour un psychologue visant une entreprise"
    )


class AssociationResponse(BaseModel):
    """Schéma de réponse pour une association."""
    id: int
    subject_id: int
    object_id: int
    relation_kind: RelationKind
    status: AssociationStatus
    initiated_by: AssociationSide
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    company_id: Optional[int] = None
    license_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AssociationList(BaseModel):
    """Liste paginée d'associations."""
    items: List[AssociationResponse]
    total: int
    page: int
    size: int
    pages: int


class PendingCount(BaseModel):
    count: int


# =============================================================================
# CASCADE SCHEMAS
# =============================================================================

class CascadeFailureResponse(BaseModel):
    actor_id: int
    code: str
    association_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class CascadeSummaryResponse(BaseModel):
    """Résultat d'une cascade entreprise → employés."""
    connected: List[int] = []
    skipped_for_capacity: List[int] = []
    failed: List[CascadeFailureResponse] = []
    disconnected: List[int] = []

    model_config = ConfigDict(from_attributes=True)


class AssociationTransitionResponse(BaseModel):
    """Association après transition, avec la cascade éventuellement déclenchée."""
    association: AssociationResponse
    cascade: Optional[CascadeSummaryResponse] = None
