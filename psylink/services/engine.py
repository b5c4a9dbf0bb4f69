"""
AssociationEngine - Façade des opérations exposées à l'interface.

Assemble les composants (dans l'ordre de dépendance) sur une même
session et branche le CascadeCoordinator comme listener de la machine à
états. Chaque méthode est une unité de travail déclenchée par un appel.
"""
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.exceptions import ForbiddenError, NotFoundError
from psylink.models.association import Association
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    OBJECT_ROLE_BY_KIND,
    PaymentStatus,
    RelationKind,
)
from psylink.models.invitation import Invitation
from psylink.models.license import CompanyLicense, LicensePlan
from psylink.repositories.actor_repository import ActorRepository
from psylink.services.association_store import AssociationStore
from psylink.services.cascade_coordinator import CascadeCoordinator, CascadeSummary
from psylink.services.connection_state_machine import ConnectionStateMachine
from psylink.services.invitation_service import InvitationService, InviteResult
from psylink.services.license_pool import LicenseAvailability, LicensePool
from psylink.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)


class AssociationEngine:
    """
    Point d'entrée unique du moteur.

    Usage:
        engine = AssociationEngine(db)
        result = engine.invite_by_email(ctx, "jane@acme.fr")
        engine.accept_association(association_id, ctx)
    """

    def __init__(self, db: Session, notifier: Optional[NotificationDispatcher] = None):
        self.db = db
        self.notifier = notifier or LoggingNotificationDispatcher()

        self.pool = LicensePool(db)
        self.store = AssociationStore(db)
        self.state_machine = ConnectionStateMachine(db, self.store, self.notifier)
        self.invitations = InvitationService(db, self.store, self.notifier)
        self.cascade = CascadeCoordinator(db, self.state_machine, self.pool, self.notifier).register()
        self.actors = ActorRepository(db)

    # =========================================================================
    # INVITATIONS
    # =========================================================================

    def invite_by_email(self, ctx: RequestContext, target_email: str) -> InviteResult:
        return self.invitations.invite(ctx, target_email)

    def resolve_invitation_by_email(self, target_email: str) -> Optional[str]:
        return self.invitations.resolve_by_email(target_email)

    def redeem_invitation(self, code: str, ctx: RequestContext) -> Association:
        return self.invitations.redeem(code, ctx)

    def cancel_invitation(self, invitation_id: int, ctx: RequestContext) -> Invitation:
        return self.invitations.cancel(invitation_id, ctx)

    def list_pending_invitations(self, ctx: RequestContext) -> List[Invitation]:
        return self.invitations.list_pending_by_issuer(ctx)

    # =========================================================================
    # ASSOCIATIONS
    # =========================================================================

    def request_association(
            self,
            ctx: RequestContext,
            target_id: int,
            relation_kind: Optional[RelationKind] = None,
    ) -> Association:
        """
        Demande de relation vers un acteur identifié.

        - psychologue → patient (par défaut) ou entreprise
        - entreprise → psychologue
        - patient → psychologue

        Raises:
            ForbiddenError, NotFoundError, ConflictError
        """
        if ctx.role == ActorRole.PSYCHOLOGIST:
            relation_kind = relation_kind or RelationKind.PSYCHOLOGIST_PATIENT
            target_role = OBJECT_ROLE_BY_KIND[relation_kind]
            subject_id, object_id, side = ctx.actor_id, target_id, AssociationSide.SUBJECT
        elif ctx.role in (ActorRole.COMPANY, ActorRole.PATIENT):
            relation_kind = next(
                kind for kind, role in OBJECT_ROLE_BY_KIND.items() if role == ctx.role
            )
            target_role = ActorRole.PSYCHOLOGIST
            subject_id, object_id, side = target_id, ctx.actor_id, AssociationSide.OBJECT
        else:
            raise ForbiddenError(f"{ctx} ne peut pas demander d'association")

        target = self.actors.get_or_raise(target_role, target_id)
        if not target.is_active:
            raise NotFoundError(f"{target_role.value} {target_id} inactif")

        association = self.store.create(subject_id, object_id, relation_kind, initiated_by=side)
        self.notifier.dispatch(NotificationEvent(
            kind=NotificationKind.ASSOCIATION_REQUESTED,
            recipient_id=target_id,
            recipient_role=target_role,
            association_id=association.id,
        ))
        return association

    def get_association(self, association_id: int, ctx: RequestContext) -> Association:
        association = self.store.get(association_id)
        if not ctx.is_system and association.side_of(ctx.actor_id, ctx.role) is None:
            raise ForbiddenError(f"{ctx} n'est pas partie de l'association {association_id}")
        return association

    def accept_association(self, association_id: int, ctx: RequestContext) -> Association:
        return self.state_machine.accept(association_id, ctx)

    def reject_association(self, association_id: int, ctx: RequestContext) -> Association:
        return self.state_machine.reject(association_id, ctx)

    def disassociate(self, association_id: int, ctx: RequestContext) -> Association:
        return self.state_machine.disconnect(association_id, ctx)

    def withdraw_association(self, association_id: int, ctx: RequestContext) -> Association:
        return self.state_machine.withdraw(association_id, ctx)

    def list_associations(
            self,
            ctx: RequestContext,
            relation_kind: Optional[RelationKind] = None,
            status: Optional[AssociationStatus] = None,
    ) -> List[Association]:
        return self.store.list_by_actor(
            ctx, relation_kind=relation_kind, status_filter=[status] if status else None
        )

    def list_pending(self, ctx: RequestContext) -> List[Association]:
        return self.store.list_pending_for_recipient(ctx)

    def count_pending(self, ctx: RequestContext) -> int:
        return self.store.count_pending_for_recipient(ctx)

    # =========================================================================
    # LICENCES
    # =========================================================================

    def _ensure_company(self, ctx: RequestContext, company_id: int) -> None:
        if ctx.is_system:
            return
        if ctx.role != ActorRole.COMPANY or ctx.actor_id != company_id:
            raise ForbiddenError(f"{ctx} ne gère pas les licences de l'entreprise {company_id}")

    def list_plans(self) -> List[LicensePlan]:
        return self.pool.list_plans()

    def list_company_licenses(self, ctx: RequestContext, company_id: int) -> List[CompanyLicense]:
        self._ensure_company(ctx, company_id)
        return self.pool.list_company_licenses(company_id)

    def acquire_license(
            self,
            ctx: RequestContext,
            company_id: int,
            plan_id: int,
            quantity: int,
            start_date: date,
            expiry_date: Optional[date] = None,
    ) -> CompanyLicense:
        self._ensure_company(ctx, company_id)
        self.actors.get_or_raise(ActorRole.COMPANY, company_id)
        return self.pool.acquire(company_id, plan_id, quantity, start_date, expiry_date)

    def activate_license(self, ctx: RequestContext, license_id: int) -> CompanyLicense:
        self._ensure_company(ctx, self.pool.get_license(license_id).company_id)
        return self.pool.activate(license_id)

    def record_license_payment(
            self,
            ctx: RequestContext,
            license_id: int,
            payment_status: PaymentStatus,
    ) -> CompanyLicense:
        self._ensure_company(ctx, self.pool.get_license(license_id).company_id)
        return self.pool.record_payment(license_id, payment_status)

    def cancel_license(
            self,
            ctx: RequestContext,
            license_id: int,
            force: bool = False,
    ) -> tuple[CompanyLicense, Optional[CascadeSummary]]:
        """
        Annule une licence.

        Sans `force`, échoue avec LicenseInUseError tant que des places sont
        consommées ; avec `force`, les liens portés par la licence sont
        d'abord déconnectés par la cascade.
        """
        self._ensure_company(ctx, self.pool.get_license(license_id).company_id)
        if force:
            return self.cascade.cancel_license_with_cascade(license_id)
        return self.pool.cancel(license_id), None

    def check_license_availability(self, company_id: int) -> LicenseAvailability:
        return self.pool.check_availability(company_id)

    # =========================================================================
    # CASCADES
    # =========================================================================

    def _ensure_pair_party(
            self,
            ctx: Optional[RequestContext],
            company_id: int,
            psychologist_id: Optional[int] = None,
    ) -> None:
        """L'entreprise, ou le psychologue de la paire, peut relancer une cascade."""
        if ctx is None or ctx.is_system:
            return
        if ctx.role == ActorRole.COMPANY and ctx.actor_id == company_id:
            return
        if ctx.role == ActorRole.PSYCHOLOGIST and ctx.actor_id == psychologist_id:
            return
        raise ForbiddenError(f"{ctx} ne peut pas déclencher de cascade pour l'entreprise {company_id}")

    def cascade_on_company_accept(
            self,
            company_id: int,
            psychologist_id: int,
            ctx: Optional[RequestContext] = None,
    ) -> CascadeSummary:
        """Relance la cascade (employés ajoutés, licences achetées depuis l'acceptation)."""
        self._ensure_pair_party(ctx, company_id, psychologist_id)
        return self.cascade.cascade_on_company_accept(company_id, psychologist_id)

    def employee_joined(
            self,
            company_id: int,
            employee_id: int,
            ctx: Optional[RequestContext] = None,
    ) -> CascadeSummary:
        self._ensure_pair_party(ctx, company_id)
        employee = self.actors.get_or_raise(ActorRole.PATIENT, employee_id)
        if employee.company_id != company_id:
            raise ForbiddenError(f"Patient {employee_id} n'est pas employé de l'entreprise {company_id}")
        return self.cascade.cascade_on_employee_joined(company_id, employee_id)
