"""
Tests de l'InvitationService : invitation par email, résolution, utilisation
du code, annulation et expiration.
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.exceptions import (
    AmbiguousTargetError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from psylink.models import Invitation, Patient, Psychologist
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    InvitationStatus,
    RelationKind,
)
from psylink.models.mixins import utcnow
from psylink.services.association_store import AssociationStore
from psylink.services.invitation_service import InvitationService
from psylink.services.notifications import NotificationKind


@pytest.fixture
def service(db_session: Session, notifier) -> InvitationService:
    return InvitationService(db_session, AssociationStore(db_session), notifier)


def _register_patient(db_session: Session, email: str) -> Patient:
    patient = Patient(name="Nouvel inscrit", email=email, is_active=True)
    db_session.add(patient)
    db_session.commit()
    return patient


# =============================================================================
# INVITER
# =============================================================================

class TestInvite:

    def test_invite_unknown_email_creates_invitation(self, service, psy_ctx, notifier):
        result = service.invite(psy_ctx, "  Nouveau@Mail.FR ")

        assert result.is_association is False
        invitation = result.invitation
        assert invitation.status == InvitationStatus.PENDING
        assert invitation.target_email == "nouveau@mail.fr"
        assert invitation.relation_kind == RelationKind.PSYCHOLOGIST_PATIENT
        assert len(invitation.code) >= 16

        event = notifier.events[-1]
        assert event.kind == NotificationKind.INVITATION_CREATED
        assert event.recipient_email == "nouveau@mail.fr"

    def test_invite_existing_account_creates_association(self, service, psy_ctx, patient, notifier):
        result = service.invite(psy_ctx, patient.email.upper())

        assert result.is_association is True
        association = result.association
        assert association.object_id == patient.id
        assert association.status == AssociationStatus.PENDING
        assert association.initiated_by == AssociationSide.SUBJECT
        assert notifier.events[-1].kind == NotificationKind.ASSOCIATION_REQUESTED

    def test_company_invites_psychologist(self, service, company_ctx, psychologist, company):
        result = service.invite(company_ctx, psychologist.email)

        association = result.association
        assert association.relation_kind == RelationKind.PSYCHOLOGIST_COMPANY
        assert association.subject_id == psychologist.id
        assert association.object_id == company.id
        assert association.initiated_by == AssociationSide.OBJECT

    def test_patient_cannot_invite(self, service, patient_ctx):
        with pytest.raises(ForbiddenError):
            service.invite(patient_ctx, "someone@mail.fr")

    def test_ambiguous_email(self, db_session: Session, service, company_ctx):
        """Plusieurs comptes pour le même email : aucune écriture."""
        db_session.add_all([
            Psychologist(name="Dr A", email="cabinet@psy.fr", is_active=True),
            Psychologist(name="Dr B", email="Cabinet@psy.fr", is_active=True),
        ])
        db_session.commit()

        with pytest.raises(AmbiguousTargetError) as exc:
            service.invite(company_ctx, "cabinet@psy.fr")
        assert exc.value.details["matches"] == 2
        assert db_session.query(Invitation).count() == 0

    def test_inactive_accounts_are_ignored(self, db_session: Session, service, psy_ctx):
        db_session.add(Patient(name="Ancien", email="ancien@mail.fr", is_active=False))
        db_session.commit()

        assert service.invite(psy_ctx, "ancien@mail.fr").is_association is False

    def test_invite_twice_returns_pending_invitation(self, service, psy_ctx):
        first = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        second = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        assert second.id == first.id

    def test_invite_existing_open_association_conflicts(self, service, psy_ctx, patient):
        service.invite(psy_ctx, patient.email)
        with pytest.raises(ConflictError):
            service.invite(psy_ctx, patient.email)


# =============================================================================
# RÉSOUDRE / UTILISER
# =============================================================================

class TestRedeem:

    def test_resolve_by_email(self, service, psy_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        assert service.resolve_by_email("NOUVEAU@mail.fr") == invitation.code
        assert service.resolve_by_email("inconnu@mail.fr") is None

    def test_redeem_creates_pending_association_for_issuer(
            self, db_session: Session, service, psy_ctx, psychologist, notifier,
    ):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        new_patient = _register_patient(db_session, "nouveau@mail.fr")
        ctx = RequestContext(new_patient.id, ActorRole.PATIENT)

        association = service.redeem(invitation.code, ctx)

        assert association.status == AssociationStatus.PENDING
        assert association.subject_id == psychologist.id
        assert association.object_id == new_patient.id
        # L'invité a demandé : l'émetteur doit accepter
        assert association.recipient_side == AssociationSide.SUBJECT

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.ACCEPTED
        assert invitation.association_id == association.id
        assert notifier.events[-1].recipient_id == psychologist.id

    def test_redeem_is_idempotent(self, db_session: Session, service, psy_ctx):
        """Rejouer le code retourne la même association, sans doublon."""
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        new_patient = _register_patient(db_session, "nouveau@mail.fr")
        ctx = RequestContext(new_patient.id, ActorRole.PATIENT)

        first = service.redeem(invitation.code, ctx)
        second = service.redeem(invitation.code, ctx)

        assert second.id == first.id

    def test_redeem_by_someone_else_after_use(self, db_session: Session, service, psy_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        first = _register_patient(db_session, "nouveau@mail.fr")
        other = _register_patient(db_session, "autre@mail.fr")
        service.redeem(invitation.code, RequestContext(first.id, ActorRole.PATIENT))

        with pytest.raises(InvalidTransitionError):
            service.redeem(invitation.code, RequestContext(other.id, ActorRole.PATIENT))

    def test_redeem_wrong_role(self, service, psy_ctx, other_psychologist):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        with pytest.raises(ForbiddenError):
            service.redeem(invitation.code, RequestContext(other_psychologist.id, ActorRole.PSYCHOLOGIST))

    def test_redeem_unknown_code(self, service, patient_ctx):
        with pytest.raises(NotFoundError):
            service.redeem("inconnu", patient_ctx)

    def test_redeem_canceled(self, service, psy_ctx, patient_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        service.cancel(invitation.id, psy_ctx)

        with pytest.raises(InvalidTransitionError):
            service.redeem(invitation.code, patient_ctx)

    def test_redeem_expired(self, db_session: Session, service, psy_ctx, patient_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        invitation.expires_at = utcnow() - timedelta(hours=1)
        db_session.commit()

        with pytest.raises(InvalidTransitionError):
            service.redeem(invitation.code, patient_ctx)

        db_session.refresh(invitation)
        assert invitation.status == InvitationStatus.EXPIRED

    def test_redeem_attaches_to_existing_open_association(
            self, service, psy_ctx, patient, patient_ctx,
    ):
        """Une relation déjà ouverte est réutilisée plutôt que dupliquée."""
        invitation = service.invite(psy_ctx, "adresse-perso@mail.fr").invitation
        existing = service.invite(psy_ctx, patient.email).association

        association = service.redeem(invitation.code, patient_ctx)
        assert association.id == existing.id


# =============================================================================
# ANNULER / EXPIRER
# =============================================================================

class TestCancelAndExpire:

    def test_cancel_by_issuer(self, service, psy_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        assert service.cancel(invitation.id, psy_ctx).status == InvitationStatus.CANCELED
        assert service.list_pending_by_issuer(psy_ctx) == []

    def test_cancel_by_other_actor(self, service, psy_ctx, other_psychologist):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        with pytest.raises(ForbiddenError):
            service.cancel(invitation.id, RequestContext(other_psychologist.id, ActorRole.PSYCHOLOGIST))

    def test_cancel_twice(self, service, psy_ctx):
        invitation = service.invite(psy_ctx, "nouveau@mail.fr").invitation
        service.cancel(invitation.id, psy_ctx)
        with pytest.raises(InvalidTransitionError):
            service.cancel(invitation.id, psy_ctx)

    def test_expire_stale(self, db_session: Session, service, psy_ctx):
        old = service.invite(psy_ctx, "ancien@mail.fr").invitation
        fresh = service.invite(psy_ctx, "recent@mail.fr").invitation
        old.expires_at = utcnow() - timedelta(days=1)
        fresh.expires_at = utcnow() + timedelta(days=1)
        db_session.commit()

        assert service.expire_stale() == 1

        db_session.refresh(old)
        db_session.refresh(fresh)
        assert old.status == InvitationStatus.EXPIRED
        assert fresh.status == InvitationStatus.PENDING
