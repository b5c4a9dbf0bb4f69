"""
Modèle Association - Relation dirigée entre un psychologue et un patient
ou une entreprise.

Une seule table porte les deux types de relation (RelationKind) afin que
la machine à états soit partagée. Les enregistrements ne sont jamais
supprimés : les statuts REJECTED / INACTIVE servent de suppression logique
et peuvent être rouverts par une nouvelle demande.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Index, Integer, text
from sqlalchemy.orm import Mapped, mapped_column

from psylink.database.base_class import Base
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    OBJECT_ROLE_BY_KIND,
    OPEN_ASSOCIATION_STATUSES,
    RelationKind,
    TERMINAL_ASSOCIATION_STATUSES,
)
from psylink.models.mixins import TimestampMixin, as_utc


_OPEN_STATUS_CLAUSE = "status IN ('PENDING', 'ACTIVE')"

# Graphe des transitions appliquées par la machine à états
ALLOWED_TRANSITIONS = {
    AssociationStatus.PENDING: {
        AssociationStatus.ACTIVE,
        AssociationStatus.REJECTED,
        AssociationStatus.INACTIVE,
    },
    AssociationStatus.ACTIVE: {AssociationStatus.INACTIVE},
    AssociationStatus.REJECTED: set(),
    AssociationStatus.INACTIVE: set(),
}


class Association(Base, TimestampMixin):
    """
    Relation dirigée sujet (psychologue) → objet (entreprise ou patient).

    Le côté demandeur est tracé par `initiated_by` ; le destinataire
    (seul autorisé à accepter ou refuser) est le côté opposé.

    Invariants:
        - au plus une ligne PENDING/ACTIVE par triplet
          (subject_id, object_id, relation_kind), garanti par l'index
          partiel uq_associations_open_triple
        - ended_at renseigné si et seulement si le statut est terminal

    Example:
        assoc = Association(
            subject_id=psychologist.id,
            object_id=company.id,
            relation_kind=RelationKind.PSYCHOLOGIST_COMPANY,
            initiated_by=AssociationSide.OBJECT,
        )
    """

    __tablename__ = "associations"
    __table_args__ = (
        Index(
            "uq_associations_open_triple",
            "subject_id", "object_id", "relation_kind",
            unique=True,
            sqlite_where=text(_OPEN_STATUS_CLAUSE),
            postgresql_where=text(_OPEN_STATUS_CLAUSE),
        ),
        Index("ix_associations_object", "object_id", "relation_kind"),
        Index("ix_associations_derived", "company_id", "subject_id", "status"),
        CheckConstraint(
            f"(ended_at IS NULL) = ({_OPEN_STATUS_CLAUSE})",
            name="ck_associations_ended_at_terminal",
        ),
        {"comment": "Relations psychologue-patient et psychologue-entreprise"},
    )

    # ========================
    # Clé primaire
    # ========================
    id: Mapped[int] = mapped_column(primary_key=True)

    # ========================
    # Parties
    # ========================
    subject_id: Mapped[int] = mapped_column(
        ForeignKey("psychologists.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Psychologue (sujet)",
    )

    object_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Entreprise ou patient selon relation_kind",
        info={"description": "companies.id ou patients.id"}
    )

    relation_kind: Mapped[RelationKind] = mapped_column(
        Enum(RelationKind, name="relation_kind_enum", create_constraint=True),
        nullable=False,
        doc="Type de relation",
    )

    initiated_by: Mapped[AssociationSide] = mapped_column(
        Enum(AssociationSide, name="association_side_enum", create_constraint=True),
        nullable=False,
        default=AssociationSide.SUBJECT,
        doc="Côté ayant émis la demande",
        info={"description": "Le destinataire est le côté opposé"}
    )

    # ========================
    # Statut
    # ========================
    status: Mapped[AssociationStatus] = mapped_column(
        Enum(AssociationStatus, name="association_status_enum", create_constraint=True),
        nullable=False,
        default=AssociationStatus.PENDING,
        doc="Statut de la relation",
        info={"description": "PENDING, ACTIVE, REJECTED, INACTIVE"}
    )

    started_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Date d'activation",
    )

    ended_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="Date de fin (refus ou déconnexion)",
    )

    # ========================
    # Cascade entreprise
    # ========================
    company_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        doc="Entreprise à l'origine d'un lien employé dérivé",
        info={"description": "NULL = relation directe"}
    )

    license_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("company_licenses.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Licence dont une place est consommée par ce lien",
    )

    # =========================================================================
    # PROPRIÉTÉS
    # =========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == AssociationStatus.PENDING

    @property
    def is_active(self) -> bool:
        return self.status == AssociationStatus.ACTIVE

    @property
    def is_open(self) -> bool:
        """PENDING ou ACTIVE : compte pour l'unicité du triplet."""
        return self.status in OPEN_ASSOCIATION_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ASSOCIATION_STATUSES

    @property
    def is_derived(self) -> bool:
        """Lien employé créé par la cascade d'une entreprise."""
        return self.company_id is not None

    @property
    def recipient_side(self) -> AssociationSide:
        return AssociationSide(self.initiated_by).opposite

    @property
    def object_role(self) -> ActorRole:
        return OBJECT_ROLE_BY_KIND[RelationKind(self.relation_kind)]

    @property
    def started_at_utc(self) -> Optional[datetime]:
        return as_utc(self.started_at)

    @property
    def ended_at_utc(self) -> Optional[datetime]:
        return as_utc(self.ended_at)

    # =========================================================================
    # PARTIES
    # =========================================================================

    def side_of(self, actor_id: int, role: ActorRole) -> Optional[AssociationSide]:
        """
        Retourne le côté occupé par un acteur, ou None s'il n'est pas partie.

        Les IDs n'étant uniques que dans leur table, le rôle est comparé
        avant l'ID.
        """
        if role == ActorRole.PSYCHOLOGIST and actor_id == self.subject_id:
            return AssociationSide.SUBJECT
        if role == self.object_role and actor_id == self.object_id:
            return AssociationSide.OBJECT
        return None

    def actor_on(self, side: AssociationSide) -> tuple[int, ActorRole]:
        """Retourne (actor_id, rôle) de l'acteur occupant un côté."""
        if side == AssociationSide.SUBJECT:
            return self.subject_id, ActorRole.PSYCHOLOGIST
        return self.object_id, self.object_role

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def can_transition_to(self, new_status: AssociationStatus) -> bool:
        return new_status in ALLOWED_TRANSITIONS[AssociationStatus(self.status)]

    def __repr__(self) -> str:
        return (
            f"<Association(id={self.id}, {self.relation_kind.value} "
            f"{self.subject_id}→{self.object_id}, status={self.status.value})>"
        )
