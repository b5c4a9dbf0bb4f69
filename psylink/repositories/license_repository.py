"""
Repository du pool de licences.

Les compteurs used_licenses ne sont jamais modifiés en mémoire : seuls des
UPDATE conditionnels (capacité restante, plancher à 0) les changent, et
chacun incrémente `version`. Sous concurrence, un UPDATE qui n'affecte
aucune ligne signale que la condition a été perdue.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy import case, func, or_, select, update

from psylink.models.enums import LicenseStatus, PaymentStatus
from psylink.models.license import CompanyLicense, LicensePlan
from psylink.repositories.base import BaseRepository


def _counts_toward_pool(today: date):
    """Clause SQL : licence ACTIVE, payée et non expirée."""
    return (
        (CompanyLicense.status == LicenseStatus.ACTIVE)
        & (CompanyLicense.payment_status == PaymentStatus.COMPLETED)
        & or_(CompanyLicense.expiry_date.is_(None), CompanyLicense.expiry_date >= today)
    )


class LicenseRepository(BaseRepository):

    # =========================================================================
    # CATALOGUE
    # =========================================================================

    def get_plan(self, plan_id: int) -> Optional[LicensePlan]:
        with self.translate_errors("lecture offre"):
            return self.db.get(LicensePlan, plan_id)

    def list_active_plans(self) -> List[LicensePlan]:
        query = (
            select(LicensePlan)
            .where(LicensePlan.active.is_(True))
            .order_by(LicensePlan.price_monthly, LicensePlan.id)
        )
        with self.translate_errors("catalogue des offres"):
            return list(self.db.execute(query).scalars().all())

    # =========================================================================
    # LICENCES
    # =========================================================================

    def get(self, license_id: int) -> Optional[CompanyLicense]:
        """Relit la licence depuis la base (les compteurs changent hors ORM)."""
        with self.translate_errors("lecture licence"):
            return self.db.get(CompanyLicense, license_id, populate_existing=True)

    def list_for_company(self, company_id: int) -> List[CompanyLicense]:
        query = (
            select(CompanyLicense)
            .where(CompanyLicense.company_id == company_id)
            .order_by(CompanyLicense.created_at.desc(), CompanyLicense.id.desc())
            .execution_options(populate_existing=True)
        )
        with self.translate_errors("licences de l'entreprise"):
            return list(self.db.execute(query).scalars().all())

    def add(self, license: CompanyLicense) -> CompanyLicense:
        self.db.add(license)
        self.flush("écriture licence")
        return license

    def availability(self, company_id: int, today: date) -> tuple[int, int, int]:
        """
        Agrège les compteurs d'une entreprise.

        Returns:
            (total, used) des licences comptées dans le pool, et les places
            des licences PENDING en attente d'activation
        """
        counting = _counts_toward_pool(today)
        query = select(
            func.coalesce(func.sum(case((counting, CompanyLicense.total_licenses), else_=0)), 0),
            func.coalesce(func.sum(case((counting, CompanyLicense.used_licenses), else_=0)), 0),
            func.coalesce(
                func.sum(
                    case(
                        (CompanyLicense.status == LicenseStatus.PENDING, CompanyLicense.total_licenses),
                        else_=0,
                    )
                ),
                0,
            ),
        ).where(CompanyLicense.company_id == company_id)

        with self.translate_errors("disponibilité des licences"):
            total, used, pending = self.db.execute(query).one()
        return int(total), int(used), int(pending)

    def candidate_ids_with_capacity(self, company_id: int, today: date) -> List[int]:
        """Licences comptées avec au moins une place libre, ID croissant."""
        query = (
            select(CompanyLicense.id)
            .where(
                CompanyLicense.company_id == company_id,
                _counts_toward_pool(today),
                CompanyLicense.used_licenses < CompanyLicense.total_licenses,
            )
            .order_by(CompanyLicense.id)
        )
        with self.translate_errors("recherche de place libre"):
            return list(self.db.execute(query).scalars().all())

    def increment_used(self, license_id: int, today: date) -> bool:
        """
        Incrémente used_licenses si et seulement s'il reste une place.

        Returns:
            True si une place a été réservée sur cette licence
        """
        statement = (
            update(CompanyLicense)
            .where(
                CompanyLicense.id == license_id,
                _counts_toward_pool(today),
                CompanyLicense.used_licenses < CompanyLicense.total_licenses,
            )
            .values(
                used_licenses=CompanyLicense.used_licenses + 1,
                version=CompanyLicense.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with self.translate_errors("réservation de place"):
            result = self.db.execute(statement)
        return result.rowcount == 1

    def decrement_used(self, license_id: int, company_id: int) -> bool:
        """
        Décrémente used_licenses avec plancher à 0.

        Returns:
            False si la licence n'appartient pas à l'entreprise ou est déjà à 0
        """
        statement = (
            update(CompanyLicense)
            .where(
                CompanyLicense.id == license_id,
                CompanyLicense.company_id == company_id,
                CompanyLicense.used_licenses > 0,
            )
            .values(
                used_licenses=CompanyLicense.used_licenses - 1,
                version=CompanyLicense.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        with self.translate_errors("libération de place"):
            result = self.db.execute(statement)
        return result.rowcount == 1
