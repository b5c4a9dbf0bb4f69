"""
Modèle Invitation - Demande de relation adressée à un email.

Créée lorsque l'email invité ne correspond à aucun compte ; convertie en
Association lorsque la personne s'inscrit et utilise le code.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from psylink.database.base_class import Base
from psylink.models.enums import ActorRole, InvitationStatus, OBJECT_ROLE_BY_KIND, RelationKind
from psylink.models.mixins import TimestampMixin, as_utc, utcnow


class Invitation(Base, TimestampMixin):
    """
    Invitation par email.

    Attributes:
        code: Code unique URL-safe transmis à l'invité
        target_email: Email normalisé (minuscules, sans espaces)
        issuer_id: Psychologue ou entreprise émettrice (selon issuer_role)
        relation_kind: Relation qui sera créée à l'utilisation du code
        expires_at: Fin de validité (NULL = pas d'expiration)
        association_id: Association créée lors de l'utilisation
    """

    __tablename__ = "invitations"
    __table_args__ = (
        Index("ix_invitations_email_status", "target_email", "status"),
        Index("ix_invitations_issuer", "issuer_role", "issuer_id"),
        {"comment": "Invitations par email en attente d'inscription"},
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    code: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        doc="Code unique d'invitation",
    )

    target_email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        doc="Email invité (normalisé)",
    )

    issuer_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="ID de l'émetteur",
        info={"description": "psychologists.id ou companies.id selon issuer_role"}
    )

    issuer_role: Mapped[ActorRole] = mapped_column(
        Enum(ActorRole, name="actor_role_enum", create_constraint=True),
        nullable=False,
        doc="Rôle de l'émetteur (PSYCHOLOGIST ou COMPANY)",
    )

    relation_kind: Mapped[RelationKind] = mapped_column(
        Enum(RelationKind, name="relation_kind_enum", create_constraint=True),
        nullable=False,
        doc="Type de relation proposée",
    )

    status: Mapped[InvitationStatus] = mapped_column(
        Enum(InvitationStatus, name="invitation_status_enum", create_constraint=True),
        nullable=False,
        default=InvitationStatus.PENDING,
        doc="Statut de l'invitation",
        info={"description": "PENDING, ACCEPTED, CANCELED, EXPIRED"}
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Fin de validité",
    )

    accepted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    redeemed_by_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        doc="Acteur ayant utilisé le code",
    )

    association_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("associations.id", ondelete="SET NULL"),
        nullable=True,
        doc="Association créée à l'utilisation",
    )

    # =========================================================================
    # PROPRIÉTÉS
    # =========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == InvitationStatus.PENDING

    @property
    def target_role(self) -> ActorRole:
        """Rôle attendu de l'invité (patient ou psychologue)."""
        if self.issuer_role == ActorRole.PSYCHOLOGIST:
            return OBJECT_ROLE_BY_KIND[RelationKind(self.relation_kind)]
        return ActorRole.PSYCHOLOGIST

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= (now or utcnow())

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def accept(self, redeemed_by_id: int, association_id: int, now: Optional[datetime] = None) -> None:
        """Marque l'invitation comme utilisée."""
        if not self.is_pending:
            raise ValueError(f"Invitation {self.id} non utilisable ({self.status.value})")
        self.status = InvitationStatus.ACCEPTED
        self.redeemed_by_id = redeemed_by_id
        self.association_id = association_id
        self.accepted_at = now or utcnow()

    def cancel(self) -> None:
        if not self.is_pending:
            raise ValueError(f"Seule une invitation PENDING peut être annulée ({self.status.value})")
        self.status = InvitationStatus.CANCELED

    def expire(self) -> None:
        if not self.is_pending:
            raise ValueError(f"Invitation {self.id} déjà {self.status.value}")
        self.status = InvitationStatus.EXPIRED

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, email='{self.target_email}', status={self.status.value})>"
