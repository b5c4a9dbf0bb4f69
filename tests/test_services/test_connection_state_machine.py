"""
Tests de la ConnectionStateMachine : qui peut faire quoi, idempotence,
notifications et listeners.
"""
import pytest
from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.exceptions import ForbiddenError, InvalidTransitionError, NotFoundError
from psylink.models.enums import (
    ActorRole,
    AssociationSide,
    AssociationStatus,
    RelationKind,
)
from psylink.services.association_store import AssociationStore
from psylink.services.connection_state_machine import ConnectionStateMachine
from psylink.services.notifications import NotificationKind


@pytest.fixture
def store(db_session: Session) -> AssociationStore:
    return AssociationStore(db_session)


@pytest.fixture
def machine(db_session: Session, store, notifier) -> ConnectionStateMachine:
    return ConnectionStateMachine(db_session, store, notifier)


@pytest.fixture
def pending(store, psychologist, patient):
    """Demande psychologue → patient."""
    return store.create(psychologist.id, patient.id, RelationKind.PSYCHOLOGIST_PATIENT)


class TestAccept:

    def test_recipient_accepts(self, machine, pending, patient_ctx, notifier, psychologist):
        association = machine.accept(pending.id, patient_ctx)

        assert association.status == AssociationStatus.ACTIVE
        assert association.started_at is not None

        event = notifier.events[-1]
        assert event.kind == NotificationKind.ASSOCIATION_ACCEPTED
        assert event.recipient_id == psychologist.id
        assert event.recipient_role == ActorRole.PSYCHOLOGIST

    def test_initiator_cannot_accept(self, machine, pending, psy_ctx):
        with pytest.raises(ForbiddenError):
            machine.accept(pending.id, psy_ctx)

    def test_third_party_cannot_accept(self, machine, pending, other_psychologist):
        ctx = RequestContext(other_psychologist.id, ActorRole.PSYCHOLOGIST)
        with pytest.raises(ForbiddenError):
            machine.accept(pending.id, ctx)

    def test_same_id_other_role_is_not_party(self, machine, pending, patient):
        """Un ID identique dans une autre table ne donne aucun droit."""
        ctx = RequestContext(patient.id, ActorRole.COMPANY)
        with pytest.raises(ForbiddenError):
            machine.accept(pending.id, ctx)

    def test_accept_is_idempotent(self, machine, pending, patient_ctx, notifier):
        """Deux acceptations : même résultat, une seule notification."""
        first = machine.accept(pending.id, patient_ctx)
        second = machine.accept(pending.id, patient_ctx)

        assert second.id == first.id
        assert second.status == AssociationStatus.ACTIVE
        assert second.started_at == first.started_at
        assert notifier.kinds().count(NotificationKind.ASSOCIATION_ACCEPTED) == 1

    def test_accept_rejected_fails(self, machine, pending, patient_ctx):
        machine.reject(pending.id, patient_ctx)
        with pytest.raises(InvalidTransitionError):
            machine.accept(pending.id, patient_ctx)

    def test_accept_unknown(self, machine, patient_ctx):
        with pytest.raises(NotFoundError):
            machine.accept(9999, patient_ctx)


class TestOtherTransitions:

    def test_reject(self, machine, pending, patient_ctx):
        association = machine.reject(pending.id, patient_ctx)
        assert association.status == AssociationStatus.REJECTED
        assert association.ended_at is not None

    def test_reject_is_idempotent(self, machine, pending, patient_ctx):
        machine.reject(pending.id, patient_ctx)
        assert machine.reject(pending.id, patient_ctx).status == AssociationStatus.REJECTED

    def test_either_party_disconnects(self, machine, pending, patient_ctx, psy_ctx, notifier, patient):
        machine.accept(pending.id, patient_ctx)
        association = machine.disconnect(pending.id, psy_ctx)

        assert association.status == AssociationStatus.INACTIVE
        assert notifier.events[-1].kind == NotificationKind.ASSOCIATION_DISCONNECTED
        assert notifier.events[-1].recipient_id == patient.id

    def test_disconnect_pending_fails(self, machine, pending, psy_ctx):
        with pytest.raises(InvalidTransitionError):
            machine.disconnect(pending.id, psy_ctx)

    def test_withdraw_by_initiator(self, machine, pending, psy_ctx):
        association = machine.withdraw(pending.id, psy_ctx)
        assert association.status == AssociationStatus.INACTIVE

    def test_withdraw_by_recipient_forbidden(self, machine, pending, patient_ctx):
        with pytest.raises(ForbiddenError):
            machine.withdraw(pending.id, patient_ctx)

    def test_object_initiated_request(self, machine, store, psychologist, company, psy_ctx, company_ctx):
        """Une entreprise demande : le psychologue est le destinataire."""
        association = store.create(
            psychologist.id, company.id, RelationKind.PSYCHOLOGIST_COMPANY,
            initiated_by=AssociationSide.OBJECT,
        )
        with pytest.raises(ForbiddenError):
            machine.accept(association.id, company_ctx)
        assert machine.accept(association.id, psy_ctx).status == AssociationStatus.ACTIVE

    def test_system_bypasses_party_check(self, machine, pending, patient_ctx, notifier):
        machine.accept(pending.id, patient_ctx)
        count = len(notifier.events)

        association = machine.disconnect(pending.id, RequestContext.system())

        assert association.status == AssociationStatus.INACTIVE
        assert len(notifier.events) == count


class TestListeners:

    def test_listener_called_once_per_effective_transition(self, machine, pending, patient_ctx):
        calls = []
        machine.add_listener(lambda a, previous, current: calls.append((a.id, previous, current)))

        machine.accept(pending.id, patient_ctx)
        machine.accept(pending.id, patient_ctx)

        assert calls == [(pending.id, AssociationStatus.PENDING, AssociationStatus.ACTIVE)]
