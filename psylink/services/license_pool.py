"""
LicensePool - Source de vérité des places de licence d'une entreprise.

Toutes les mutations sont des écritures mono-ligne ; aucun effet ne
traverse vers les associations (la cascade est orchestrée par
CascadeCoordinator).
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from psylink.core.exceptions import (
    CapacityExceededError,
    InvalidQuantityError,
    InvalidTransitionError,
    LicenseInUseError,
    NotFoundError,
)
from psylink.models.association import Association
from psylink.models.enums import LicenseStatus, PaymentStatus
from psylink.models.license import CompanyLicense, LicensePlan
from psylink.models.mixins import utcnow
from psylink.repositories.association_repository import AssociationRepository
from psylink.repositories.license_repository import LicenseRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LicenseAvailability:
    """Compteurs agrégés d'une entreprise."""

    total: int
    used: int
    available: int
    pending: int


class LicensePool:
    """
    Pool de licences des entreprises.

    Usage:
        pool = LicensePool(db)
        license = pool.acquire(company_id, plan_id, 10, date.today(), None)
        pool.activate(license.id)
        license_id = pool.reserve_seat(company_id)
    """

    def __init__(self, db: Session):
        self.db = db
        self.licenses = LicenseRepository(db)

    # =========================================================================
    # CATALOGUE
    # =========================================================================

    def list_plans(self) -> List[LicensePlan]:
        """Offres actives, de la moins chère à la plus chère."""
        return self.licenses.list_active_plans()

    # =========================================================================
    # CYCLE DE VIE
    # =========================================================================

    def get_license(self, license_id: int) -> CompanyLicense:
        license = self.licenses.get(license_id)
        if license is None:
            raise NotFoundError(f"Licence {license_id} non trouvée", license_id=license_id)
        return license

    def list_company_licenses(self, company_id: int) -> List[CompanyLicense]:
        return self.licenses.list_for_company(company_id)

    def acquire(
            self,
            company_id: int,
            plan_id: int,
            quantity: int,
            start_date: date,
            expiry_date: Optional[date] = None,
    ) -> CompanyLicense:
        """
        Crée une licence en attente de paiement.

        Raises:
            InvalidQuantityError: quantité < 1 ou expiration avant le début
            NotFoundError: offre inconnue ou retirée du catalogue
        """
        if quantity < 1:
            raise InvalidQuantityError(f"Quantité invalide : {quantity}", quantity=quantity)
        if expiry_date is not None and expiry_date < start_date:
            raise InvalidQuantityError("La date d'expiration précède la date de début")

        plan = self.licenses.get_plan(plan_id)
        if plan is None or not plan.active:
            raise NotFoundError(f"Offre {plan_id} non trouvée", plan_id=plan_id)

        license = CompanyLicense(
            company_id=company_id,
            plan_id=plan.id,
            total_licenses=quantity,
            used_licenses=0,
            start_date=start_date,
            expiry_date=expiry_date,
            status=LicenseStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )
        self.licenses.add(license)
        self.licenses.commit("acquisition licence")
        self.db.refresh(license)

        logger.info(
            f"🧾 Licence {license.id} acquise : entreprise {company_id}, "
            f"offre {plan.name}, {quantity} places"
        )
        return license

    def activate(self, license_id: int) -> CompanyLicense:
        """
        PENDING → ACTIVE ; le paiement est enregistré comme COMPLETED.

        Raises:
            InvalidTransitionError: déjà active/annulée, ou paiement refusé/annulé
        """
        license = self.get_license(license_id)

        if license.status != LicenseStatus.PENDING:
            raise InvalidTransitionError(
                f"Licence {license_id} non activable ({license.status.value})",
                status=license.status.value,
            )
        if license.payment_status in (PaymentStatus.FAILED, PaymentStatus.CANCELED):
            raise InvalidTransitionError(
                f"Licence {license_id} : paiement {license.payment_status.value}",
                payment_status=license.payment_status.value,
            )

        license.status = LicenseStatus.ACTIVE
        license.payment_status = PaymentStatus.COMPLETED
        license.version += 1
        self.licenses.commit("activation licence")
        self.db.refresh(license)

        logger.info(f"✅ Licence {license_id} activée ({license.total_licenses} places)")
        return license

    def record_payment(self, license_id: int, payment_status: PaymentStatus) -> CompanyLicense:
        """Enregistre le statut de paiement rapporté par la facturation externe."""
        license = self.get_license(license_id)
        if license.is_canceled:
            raise InvalidTransitionError(f"Licence {license_id} annulée")

        license.payment_status = payment_status
        license.version += 1
        self.licenses.commit("enregistrement paiement")
        self.db.refresh(license)

        logger.info(f"💳 Licence {license_id} : paiement {payment_status.value}")
        return license

    def cancel(self, license_id: int) -> CompanyLicense:
        """
        Annule une licence.

        Les places consommées ne sont jamais réattribuées silencieusement :
        les liens dépendants doivent être déconnectés avant (voir
        CascadeCoordinator.cancel_license_with_cascade).

        Raises:
            InvalidTransitionError: licence déjà annulée, ou ni active ni en attente de paiement
            LicenseInUseError: des places sont encore consommées
        """
        license = self.get_license(license_id)

        if license.is_canceled:
            raise InvalidTransitionError(f"Licence {license_id} déjà annulée")

        if license.status != LicenseStatus.ACTIVE and license.payment_status != PaymentStatus.PENDING:
            raise InvalidTransitionError(
                f"Licence {license_id} non annulable "
                f"({license.status.value}, paiement {license.payment_status.value})",
                status=license.status.value,
                payment_status=license.payment_status.value,
            )

        if license.used_licenses > 0:
            raise LicenseInUseError(
                f"Licence {license_id} : {license.used_licenses} places encore utilisées",
                used_licenses=license.used_licenses,
            )

        license.status = LicenseStatus.CANCELED
        license.canceled_at = utcnow()
        if license.payment_status == PaymentStatus.PENDING:
            license.payment_status = PaymentStatus.CANCELED
        license.version += 1
        self.licenses.commit("annulation licence")
        self.db.refresh(license)

        logger.info(f"🚫 Licence {license_id} annulée")
        return license

    # =========================================================================
    # CAPACITÉ
    # =========================================================================

    def check_availability(self, company_id: int) -> LicenseAvailability:
        total, used, pending = self.licenses.availability(company_id, date.today())
        return LicenseAvailability(
            total=total,
            used=used,
            available=max(total - used, 0),
            pending=pending,
        )

    def reserve_seat(self, company_id: int) -> int:
        """
        Réserve une place sur la première licence (ID croissant) qui en a.

        Chaque tentative est un UPDATE conditionnel ; si un appel concurrent
        a pris la dernière place entre la lecture et l'écriture, la licence
        suivante est essayée.

        Returns:
            ID de la licence débitée

        Raises:
            CapacityExceededError: aucune place disponible
        """
        today = date.today()
        for license_id in self.licenses.candidate_ids_with_capacity(company_id, today):
            if self.licenses.increment_used(license_id, today):
                self.licenses.commit("réservation de place")
                logger.info(f"🎟️ Place réservée : entreprise {company_id}, licence {license_id}")
                return license_id
            logger.debug(f"Licence {license_id} pleine entre lecture et écriture, suivante")

        logger.info(f"⚠️ Plus de place disponible pour l'entreprise {company_id}")
        raise CapacityExceededError(
            f"Aucune licence disponible pour l'entreprise {company_id}",
            company_id=company_id,
        )

    def release_seat(self, company_id: int, license_id: int) -> None:
        """
        Libère une place (plancher à 0).

        Raises:
            NotFoundError: licence inconnue ou appartenant à une autre entreprise
        """
        if self.licenses.decrement_used(license_id, company_id):
            self.licenses.commit("libération de place")
            logger.info(f"♻️ Place libérée : entreprise {company_id}, licence {license_id}")
            return

        license = self.licenses.get(license_id)
        if license is None or license.company_id != company_id:
            raise NotFoundError(
                f"Licence {license_id} non trouvée pour l'entreprise {company_id}",
                license_id=license_id,
            )
        logger.warning(f"⚠️ Licence {license_id} déjà à 0 place utilisée, rien à libérer")

    def list_seat_holders(self, license_id: int) -> List[Association]:
        """Associations actives dont la place est portée par cette licence."""
        self.get_license(license_id)
        return AssociationRepository(self.db).list_by_license(license_id)
