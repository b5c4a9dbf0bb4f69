"""
Modèles LicensePlan et CompanyLicense - Pool de licences des entreprises.

Une licence entreprise regroupe N places ; chaque lien employé ↔ psychologue
actif consomme une place. Les compteurs ne sont modifiés que par des
UPDATE conditionnels (voir LicenseRepository).
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    Boolean, CheckConstraint, Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from psylink.database.base_class import Base
from psylink.models.enums import LicenseStatus, PaymentStatus
from psylink.models.mixins import TimestampMixin, VersionedMixin


# =============================================================================
# CATALOGUE
# =============================================================================

class LicensePlan(Base, TimestampMixin):
    """
    Offre de licences (données de catalogue immuables).

    Example:
        plan = LicensePlan(
            name="Équipe",
            max_users=50,
            price_monthly=Decimal("199.00"),
            price_yearly=Decimal("1990.00"),
        )
    """

    __tablename__ = "license_plans"
    __table_args__ = {"comment": "Catalogue des offres de licences"}

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        doc="Nom commercial de l'offre",
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    max_users: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Nombre d'utilisateurs annoncé par l'offre",
    )

    price_monthly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        doc="Prix mensuel",
    )

    price_yearly: Mapped[Decimal] = mapped_column(
        Numeric(10, 2),
        nullable=False,
        doc="Prix annuel",
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Offre proposée à l'achat",
    )

    licenses: Mapped[List["CompanyLicense"]] = relationship(back_populates="plan")

    def __repr__(self) -> str:
        return f"<LicensePlan(id={self.id}, name='{self.name}')>"


# =============================================================================
# LICENCE ENTREPRISE
# =============================================================================

class CompanyLicense(Base, TimestampMixin, VersionedMixin):
    """
    Licence achetée par une entreprise.

    Une licence ne compte dans le pool disponible que si elle est ACTIVE,
    payée (COMPLETED) et non expirée.

    Invariant:
        0 <= used_licenses <= total_licenses (contrainte CHECK)
    """

    __tablename__ = "company_licenses"
    __table_args__ = (
        CheckConstraint(
            "used_licenses >= 0 AND used_licenses <= total_licenses",
            name="ck_company_licenses_used_within_total",
        ),
        CheckConstraint("total_licenses >= 1", name="ck_company_licenses_total_positive"),
        {"comment": "Licences achetées par les entreprises"},
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    company_id: Mapped[int] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Entreprise propriétaire",
    )

    plan_id: Mapped[int] = mapped_column(
        ForeignKey("license_plans.id", ondelete="RESTRICT"),
        nullable=False,
        doc="Offre achetée",
    )

    # ========================
    # Compteurs
    # ========================
    total_licenses: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        doc="Places achetées",
    )

    used_licenses: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        doc="Places consommées",
    )

    # ========================
    # Période
    # ========================
    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    expiry_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True,
        doc="Date d'expiration",
        info={"description": "NULL = pas d'expiration fixe"}
    )

    # ========================
    # Statuts
    # ========================
    status: Mapped[LicenseStatus] = mapped_column(
        Enum(LicenseStatus, name="license_status_enum", create_constraint=True),
        nullable=False,
        default=LicenseStatus.PENDING,
        doc="Statut de la licence",
        info={"description": "PENDING, ACTIVE, CANCELED"}
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status_enum", create_constraint=True),
        nullable=False,
        default=PaymentStatus.PENDING,
        doc="Statut de paiement (rapporté par la facturation externe)",
        info={"description": "PENDING, COMPLETED, CANCELED, FAILED"}
    )

    canceled_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    plan: Mapped["LicensePlan"] = relationship(back_populates="licenses")

    # =========================================================================
    # PROPRIÉTÉS
    # =========================================================================

    @property
    def available_licenses(self) -> int:
        return max(self.total_licenses - self.used_licenses, 0)

    @property
    def is_canceled(self) -> bool:
        return self.status == LicenseStatus.CANCELED

    def is_expired(self, today: Optional[date] = None) -> bool:
        return self.expiry_date is not None and self.expiry_date < (today or date.today())

    def counts_toward_pool(self, today: Optional[date] = None) -> bool:
        """ACTIVE, payée et non expirée."""
        return (
            self.status == LicenseStatus.ACTIVE
            and self.payment_status == PaymentStatus.COMPLETED
            and not self.is_expired(today)
        )

    def __repr__(self) -> str:
        return (
            f"<CompanyLicense(id={self.id}, company_id={self.company_id}, "
            f"{self.used_licenses}/{self.total_licenses}, status={self.status.value})>"
        )
