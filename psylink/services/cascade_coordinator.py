"""
CascadeCoordinator - Cohérence entre liens entreprise et liens employés.

Quand une association psychologue ↔ entreprise devient ACTIVE, chaque
employé actif de l'entreprise est relié au psychologue (lien ACTIVE
directement, le consentement ayant été donné au niveau entreprise) dans
la limite des licences disponibles. Quand elle devient INACTIVE, ces
liens dérivés sont déconnectés et leurs places libérées.

La cascade n'est pas tout-ou-rien : chaque employé est traité et commité
indépendamment, et le résultat est un résumé, jamais une exception.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.orm import Session

from psylink.core.config import settings
from psylink.core.context import RequestContext
from psylink.core.exceptions import (
    CapacityExceededError,
    ConflictError,
    EngineError,
    InvalidTransitionError,
)
from psylink.models.association import Association
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    RelationKind,
)
from psylink.models.license import CompanyLicense
from psylink.repositories.actor_repository import ActorRepository
from psylink.repositories.association_repository import AssociationRepository
from psylink.services.association_store import AssociationStore
from psylink.services.connection_state_machine import ConnectionStateMachine
from psylink.services.license_pool import LicensePool
from psylink.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CascadeFailure:
    """Échec isolé pendant une cascade."""

    actor_id: int
    code: str
    association_id: Optional[int] = None


@dataclass
class CascadeSummary:
    """Résultat d'une cascade : IDs traités, par issue."""

    connected: List[int] = field(default_factory=list)
    skipped_for_capacity: List[int] = field(default_factory=list)
    failed: List[CascadeFailure] = field(default_factory=list)
    disconnected: List[int] = field(default_factory=list)


class CascadeCoordinator:
    """
    Orchestration des cascades entreprise → employés.

    S'enregistre comme listener de la machine à états via register().
    """

    def __init__(
            self,
            db: Session,
            state_machine: ConnectionStateMachine,
            pool: Optional[LicensePool] = None,
            notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.state_machine = state_machine
        self.store: AssociationStore = state_machine.store
        self.pool = pool or LicensePool(db)
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.actors = ActorRepository(db)
        self.associations = AssociationRepository(db)
        self._system = RequestContext.system()
        # Liens en cours de déconnexion par la cascade elle-même
        self._disconnecting: set[int] = set()
        # Résumé de la dernière cascade déclenchée par une transition
        self.last_summary: Optional[CascadeSummary] = None

    def register(self) -> "CascadeCoordinator":
        self.state_machine.add_listener(self.handle_transition)
        return self

    # =========================================================================
    # LISTENER
    # =========================================================================

    def handle_transition(
            self,
            association: Association,
            previous: AssociationStatus,
            current: AssociationStatus,
    ) -> None:
        """
        Déclenche la cascade sur les transitions psychologue ↔ entreprise,
        et libère la place d'un lien dérivé déconnecté par l'une des parties.
        """
        if association.relation_kind == RelationKind.PSYCHOLOGIST_PATIENT:
            if (
                    previous == AssociationStatus.ACTIVE
                    and association.license_id is not None
                    and association.id not in self._disconnecting
            ):
                self._release_quietly(
                    association.company_id, association.license_id,
                    CascadeSummary(), association.object_id, association.id,
                )
            return

        company_id, psychologist_id = association.object_id, association.subject_id
        if current == AssociationStatus.ACTIVE:
            if not settings.CASCADE_ON_COMPANY_ACCEPT:
                logger.info(f"Cascade désactivée (entreprise {company_id}, psychologue {psychologist_id})")
                return
            self.last_summary = self.cascade_on_company_accept(company_id, psychologist_id)
        elif previous == AssociationStatus.ACTIVE and current == AssociationStatus.INACTIVE:
            self.last_summary = self.cascade_on_company_disconnect(company_id, psychologist_id)

    # =========================================================================
    # CONNEXION
    # =========================================================================

    def cascade_on_company_accept(self, company_id: int, psychologist_id: int) -> CascadeSummary:
        """
        Relie chaque employé actif de l'entreprise au psychologue.

        Raises:
            InvalidTransitionError: le lien entreprise ↔ psychologue n'est pas ACTIVE
        """
        link = self.store.find_active_or_pending(
            psychologist_id, company_id, RelationKind.PSYCHOLOGIST_COMPANY
        )
        if link is None or link.status != AssociationStatus.ACTIVE:
            raise InvalidTransitionError(
                f"Psychologue {psychologist_id} non connecté à l'entreprise {company_id}"
            )

        summary = CascadeSummary()
        for employee in self.actors.list_employees(company_id):
            self._connect_employee(company_id, psychologist_id, employee.id, summary)

        logger.info(
            f"🌊 Cascade entreprise {company_id} → psychologue {psychologist_id} : "
            f"{len(summary.connected)} connecté(s), "
            f"{len(summary.skipped_for_capacity)} sans licence, {len(summary.failed)} échec(s)"
        )
        return summary

    def cascade_on_employee_joined(self, company_id: int, employee_id: int) -> CascadeSummary:
        """Relie un nouvel employé à tous les psychologues connectés à l'entreprise."""
        summary = CascadeSummary()
        for psychologist_id in self.associations.list_active_psychologist_ids(company_id):
            self._connect_employee(company_id, psychologist_id, employee_id, summary)

        logger.info(
            f"🌊 Nouvel employé {employee_id} (entreprise {company_id}) : "
            f"{len(summary.connected)} psychologue(s) connecté(s)"
        )
        return summary

    def _connect_employee(
            self,
            company_id: int,
            psychologist_id: int,
            employee_id: int,
            summary: CascadeSummary,
    ) -> None:
        """Une itération de cascade ; toute erreur typée est consignée dans le résumé."""
        existing = self.store.find_active_or_pending(
            psychologist_id, employee_id, RelationKind.PSYCHOLOGIST_PATIENT
        )
        if existing is not None:
            summary.failed.append(CascadeFailure(
                actor_id=employee_id, code=ConflictError.code, association_id=existing.id
            ))
            return

        try:
            license_id = self.pool.reserve_seat(company_id)
        except CapacityExceededError:
            summary.skipped_for_capacity.append(employee_id)
            return
        except EngineError as e:
            logger.warning(f"⚠️ Cascade : réservation impossible pour l'employé {employee_id} ({e.code})")
            summary.failed.append(CascadeFailure(actor_id=employee_id, code=e.code))
            return

        try:
            association = self.store.create(
                psychologist_id,
                employee_id,
                RelationKind.PSYCHOLOGIST_PATIENT,
                initiated_by=AssociationSide.SUBJECT,
                status=AssociationStatus.ACTIVE,
                company_id=company_id,
                license_id=license_id,
            )
        except EngineError as e:
            # Création concurrente : la place réservée est rendue
            logger.warning(f"⚠️ Cascade : lien employé {employee_id} non créé ({e.code}), place rendue")
            self._release_quietly(company_id, license_id, summary, employee_id)
            summary.failed.append(CascadeFailure(actor_id=employee_id, code=e.code))
            return

        summary.connected.append(employee_id)
        self.notifier.dispatch(NotificationEvent(
            kind=NotificationKind.ASSOCIATION_ACTIVATED_BY_COMPANY,
            recipient_id=employee_id,
            recipient_role=ActorRole.PATIENT,
            association_id=association.id,
        ))

    # =========================================================================
    # DÉCONNEXION
    # =========================================================================

    def cascade_on_company_disconnect(self, company_id: int, psychologist_id: int) -> CascadeSummary:
        """Déconnecte les liens dérivés de la paire et libère leurs places."""
        summary = CascadeSummary()
        for association in self.store.list_derived(company_id, psychologist_id):
            self._disconnect_derived(association, summary)

        logger.info(
            f"🌊 Déconnexion entreprise {company_id} / psychologue {psychologist_id} : "
            f"{len(summary.disconnected)} lien(s) fermé(s), {len(summary.failed)} échec(s)"
        )
        return summary

    def _disconnect_derived(self, association: Association, summary: CascadeSummary) -> None:
        employee_id, license_id, company_id = (
            association.object_id, association.license_id, association.company_id
        )
        self._disconnecting.add(association.id)
        try:
            self.state_machine.disconnect(association.id, self._system)
        except EngineError as e:
            logger.warning(f"⚠️ Déconnexion du lien {association.id} impossible ({e.code})")
            summary.failed.append(CascadeFailure(
                actor_id=employee_id, code=e.code, association_id=association.id
            ))
            return
        finally:
            self._disconnecting.discard(association.id)

        summary.disconnected.append(employee_id)
        if license_id is not None:
            self._release_quietly(company_id, license_id, summary, employee_id, association.id)

    def _release_quietly(
            self,
            company_id: int,
            license_id: int,
            summary: CascadeSummary,
            employee_id: int,
            association_id: Optional[int] = None,
    ) -> None:
        try:
            self.pool.release_seat(company_id, license_id)
        except EngineError as e:
            logger.warning(f"⚠️ Place de la licence {license_id} non libérée ({e.code})")
            summary.failed.append(CascadeFailure(
                actor_id=employee_id, code=e.code, association_id=association_id
            ))

    # =========================================================================
    # ANNULATION FORCÉE
    # =========================================================================

    def cancel_license_with_cascade(self, license_id: int) -> tuple[CompanyLicense, CascadeSummary]:
        """
        Déconnecte les liens portés par la licence, libère leurs places,
        puis annule la licence.

        Raises:
            LicenseInUseError: des places restent consommées après la cascade
        """
        license = self.pool.get_license(license_id)
        summary = CascadeSummary()
        for association in self.pool.list_seat_holders(license_id):
            self._disconnect_derived(association, summary)

        logger.info(
            f"🌊 Annulation forcée licence {license_id} : "
            f"{len(summary.disconnected)} lien(s) déconnecté(s)"
        )
        license = self.pool.cancel(license.id)
        return license, summary
