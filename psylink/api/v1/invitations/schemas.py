"""Schémas Pydantic pour le module Invitations."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from psylink.api.v1.associations.schemas import AssociationResponse
from psylink.models.enums import ActorRole, InvitationStatus, RelationKind


class InvitationCreate(BaseModel):
    """Invitation par email (patient pour un psychologue, psychologue pour une entreprise)."""
    email: EmailStr = Field(..., description="Email de la personne invitée")


class InvitationResponse(BaseModel):
    """Schéma de réponse pour une invitation."""
    id: int
    code: str
    target_email: str
    issuer_id: int
    issuer_role: ActorRole
    relation_kind: RelationKind
    status: InvitationStatus
    created_at: datetime
    expires_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    association_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class InviteResultResponse(BaseModel):
    """Résultat d'une invitation : association directe ou invitation à code."""
    kind: Literal["ASSOCIATION", "INVITATION"]
    association: Optional[AssociationResponse] = None
    invitation: Optional[InvitationResponse] = None


class InvitationLookup(BaseModel):
    """Code d'invitation en attente pour un email (None si aucune)."""
    code: Optional[str] = None


class InvitationList(BaseModel):
    items: List[InvitationResponse]
    total: int
