"""
Modèles des acteurs : Psychologist, Company, Patient.

Ces tables forment l'annuaire consulté par le moteur (résolution d'email,
liste des employés d'une entreprise). Les comptes eux-mêmes appartiennent
au système d'identité externe ; le moteur ne fait que les référencer.
"""

from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from psylink.database.base_class import Base
from psylink.models.mixins import TimestampMixin


class _ActorColumns(TimestampMixin):
    """Colonnes communes aux trois types d'acteurs."""

    id: Mapped[int] = mapped_column(
        primary_key=True,
        doc="Identifiant stable de l'acteur"
    )

    name: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
        doc="Nom affiché",
        info={"description": "Nom de la personne ou raison sociale"}
    )

    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
        doc="Email de contact (normalisé en minuscules)",
        info={"description": "Clé de résolution des invitations", "example": "jane@acme.fr"}
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Compte actif",
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id}, email='{self.email}')>"


class Psychologist(_ActorColumns, Base):
    """Psychologue : toujours le sujet d'une association."""

    __tablename__ = "psychologists"
    __table_args__ = {"comment": "Annuaire des psychologues"}


class Company(_ActorColumns, Base):
    """Entreprise cliente, propriétaire d'un pool de licences."""

    __tablename__ = "companies"
    __table_args__ = {"comment": "Annuaire des entreprises clientes"}

    employees: Mapped[List["Patient"]] = relationship(
        back_populates="company",
        order_by="Patient.id",
    )


class Patient(_ActorColumns, Base):
    """
    Patient : employé d'une entreprise ou patient direct.

    Attributes:
        company_id: Entreprise employeuse (NULL = patient direct)
    """

    __tablename__ = "patients"
    __table_args__ = {"comment": "Annuaire des patients (employés ou directs)"}

    company_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
        doc="Entreprise employeuse",
        info={"description": "NULL = patient direct"}
    )

    company: Mapped[Optional["Company"]] = relationship(back_populates="employees")

    @property
    def is_employee(self) -> bool:
        return self.company_id is not None
