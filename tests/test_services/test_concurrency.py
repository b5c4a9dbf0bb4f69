"""
Tests des écritures concurrentes.

Deux sessions sur une même base SQLite fichier simulent deux requêtes
simultanées : la session B lit l'état, la session A écrit et commite
avant que B n'écrive à son tour. Les garanties testées viennent des
écritures conditionnelles et de l'index partiel, pas des lectures.
"""
from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from psylink.core.context import RequestContext
from psylink.core.exceptions import CapacityExceededError, ConflictError, InvalidTransitionError
from psylink.database.base import Base
from psylink.models import Association, Company, CompanyLicense, LicensePlan, Patient, Psychologist
from psylink.models.enums import (
    ActorRole,
    AssociationStatus,
    LicenseStatus,
    PaymentStatus,
    RelationKind,
)
from psylink.services.association_store import AssociationStore
from psylink.services.connection_state_machine import ConnectionStateMachine
from psylink.services.license_pool import LicensePool
from psylink.services.notifications import NotificationKind

from conftest import RecordingNotificationDispatcher


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def file_engine(tmp_path):
    """Base SQLite fichier : chaque session a sa propre connexion."""
    engine = create_engine(f"sqlite:///{tmp_path / 'psylink.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def open_session(file_engine):
    factory = sessionmaker(bind=file_engine, autoflush=False, expire_on_commit=False)
    sessions = []

    def _open():
        session = factory()
        sessions.append(session)
        return session

    yield _open
    for session in sessions:
        session.close()


@pytest.fixture
def seeded(open_session):
    """Annuaire minimal : un psychologue, une patiente, une entreprise et une offre."""
    db = open_session()
    psychologist = Psychologist(name="Dr Claire Martin", email="claire.martin@cabinet.fr", is_active=True)
    patient = Patient(name="Léa Petit", email="lea.petit@mail.fr", is_active=True)
    company = Company(name="Acme SAS", email="rh@acme.fr", is_active=True)
    plan = LicensePlan(
        name="Équipe", max_users=50,
        price_monthly=Decimal("199.00"), price_yearly=Decimal("1990.00"), active=True,
    )
    db.add_all([psychologist, patient, company, plan])
    db.commit()
    return SimpleNamespace(
        db=db,
        psychologist_id=psychologist.id,
        patient_id=patient.id,
        company_id=company.id,
        plan_id=plan.id,
    )


def _add_license(seeded, total: int) -> int:
    license = CompanyLicense(
        company_id=seeded.company_id,
        plan_id=seeded.plan_id,
        total_licenses=total,
        used_licenses=0,
        start_date=date.today(),
        status=LicenseStatus.ACTIVE,
        payment_status=PaymentStatus.COMPLETED,
    )
    seeded.db.add(license)
    seeded.db.commit()
    return license.id


def _rows(open_session, seeded):
    db = open_session()
    query = select(Association.id, Association.status).where(
        Association.subject_id == seeded.psychologist_id,
        Association.object_id == seeded.patient_id,
    )
    return [tuple(row) for row in db.execute(query).all()]


def _then(original, concurrent_write):
    """Appelle la lecture d'origine, puis laisse l'autre session écrire."""
    def _wrapped(*args, **kwargs):
        result = original(*args, **kwargs)
        concurrent_write()
        return result
    return _wrapped


# =============================================================================
# CRÉATION D'ASSOCIATION
# =============================================================================

class TestConcurrentCreate:

    def test_reopen_race_has_single_winner(self, monkeypatch, open_session, seeded):
        """Deux réouvertures du même enregistrement REJECTED : une seule réussit."""
        store_a = AssociationStore(open_session())
        store_b = AssociationStore(open_session())
        rejected = store_a.create(seeded.psychologist_id, seeded.patient_id, RelationKind.PSYCHOLOGIST_PATIENT)
        store_a.set_status(rejected.id, AssociationStatus.REJECTED)

        outcome = {}

        def a_creates():
            outcome["a"] = store_a.create(
                seeded.psychologist_id, seeded.patient_id,
                RelationKind.PSYCHOLOGIST_PATIENT, status=AssociationStatus.ACTIVE,
            )

        monkeypatch.setattr(
            store_b.associations, "find_latest_terminal",
            _then(store_b.associations.find_latest_terminal, a_creates),
        )

        with pytest.raises(ConflictError):
            store_b.create(seeded.psychologist_id, seeded.patient_id, RelationKind.PSYCHOLOGIST_PATIENT)

        assert outcome["a"].status == AssociationStatus.ACTIVE
        assert _rows(open_session, seeded) == [(rejected.id, AssociationStatus.ACTIVE)]

    def test_insert_race_hits_unique_index(self, monkeypatch, open_session, seeded):
        """Aucune ligne au départ : l'index partiel refuse la seconde insertion."""
        store_a = AssociationStore(open_session())
        store_b = AssociationStore(open_session())

        def a_creates():
            store_a.create(seeded.psychologist_id, seeded.patient_id, RelationKind.PSYCHOLOGIST_PATIENT)

        monkeypatch.setattr(
            store_b.associations, "find_open",
            _then(store_b.associations.find_open, a_creates),
        )

        with pytest.raises(ConflictError):
            store_b.create(seeded.psychologist_id, seeded.patient_id, RelationKind.PSYCHOLOGIST_PATIENT)

        rows = _rows(open_session, seeded)
        assert len(rows) == 1
        assert rows[0][1] == AssociationStatus.PENDING


# =============================================================================
# RÉSERVATION DE PLACES
# =============================================================================

class TestConcurrentSeatReservation:

    def test_lost_update_moves_to_next_license(self, monkeypatch, open_session, seeded):
        first = _add_license(seeded, total=1)
        second = _add_license(seeded, total=1)
        pool_a = LicensePool(open_session())
        pool_b = LicensePool(open_session())

        taken = {}
        monkeypatch.setattr(
            pool_b.licenses, "candidate_ids_with_capacity",
            _then(
                pool_b.licenses.candidate_ids_with_capacity,
                lambda: taken.setdefault("a", pool_a.reserve_seat(seeded.company_id)),
            ),
        )

        assert pool_b.reserve_seat(seeded.company_id) == second
        assert taken["a"] == first

        licenses = LicensePool(open_session())
        assert licenses.get_license(first).used_licenses == 1
        assert licenses.get_license(second).used_licenses == 1

    def test_last_seat_is_never_oversold(self, monkeypatch, open_session, seeded):
        only = _add_license(seeded, total=1)
        pool_a = LicensePool(open_session())
        pool_b = LicensePool(open_session())

        monkeypatch.setattr(
            pool_b.licenses, "candidate_ids_with_capacity",
            _then(
                pool_b.licenses.candidate_ids_with_capacity,
                lambda: pool_a.reserve_seat(seeded.company_id),
            ),
        )

        with pytest.raises(CapacityExceededError):
            pool_b.reserve_seat(seeded.company_id)

        license = LicensePool(open_session()).get_license(only)
        assert license.used_licenses == license.total_licenses == 1


# =============================================================================
# TRANSITIONS
# =============================================================================

def _before(original, concurrent_write):
    """Laisse l'autre session écrire, puis tente l'écriture d'origine."""
    def _wrapped(*args, **kwargs):
        concurrent_write()
        return original(*args, **kwargs)
    return _wrapped


def _machine(db):
    notifier = RecordingNotificationDispatcher()
    machine = ConnectionStateMachine(db, AssociationStore(db), notifier)
    transitions = []
    machine.add_listener(lambda association, previous, current: transitions.append(current))
    return machine, notifier, transitions


class TestConcurrentTransitions:

    @pytest.fixture
    def side_a(self, open_session):
        """Machine à états de la requête A, avec ses notifications et transitions."""
        return _machine(open_session())

    @pytest.fixture
    def side_b(self, open_session):
        return _machine(open_session())

    @pytest.fixture
    def pending(self, side_a, seeded) -> int:
        machine = side_a[0]
        association = machine.store.create(
            seeded.psychologist_id, seeded.patient_id, RelationKind.PSYCHOLOGIST_PATIENT
        )
        return association.id

    def test_concurrent_accept_is_idempotent(self, monkeypatch, seeded, side_a, side_b, pending):
        (machine_a, notifier_a, transitions_a) = side_a
        (machine_b, notifier_b, transitions_b) = side_b
        ctx = RequestContext(seeded.patient_id, ActorRole.PATIENT)

        repository_b = machine_b.store.associations
        monkeypatch.setattr(
            repository_b, "compare_and_set_status",
            _before(repository_b.compare_and_set_status, lambda: machine_a.accept(pending, ctx)),
        )

        accepted = machine_b.accept(pending, ctx)

        assert accepted.status == AssociationStatus.ACTIVE
        assert transitions_a == [AssociationStatus.ACTIVE]
        assert transitions_b == []
        assert notifier_a.kinds() == [NotificationKind.ASSOCIATION_ACCEPTED]
        assert notifier_b.events == []

    def test_accept_after_concurrent_reject(self, monkeypatch, seeded, side_a, side_b, pending):
        machine_a = side_a[0]
        (machine_b, notifier_b, transitions_b) = side_b
        ctx = RequestContext(seeded.patient_id, ActorRole.PATIENT)

        repository_b = machine_b.store.associations
        monkeypatch.setattr(
            repository_b, "compare_and_set_status",
            _before(repository_b.compare_and_set_status, lambda: machine_a.reject(pending, ctx)),
        )

        with pytest.raises(InvalidTransitionError) as exc:
            machine_b.accept(pending, ctx)

        assert exc.value.details["status"] == AssociationStatus.REJECTED.value
        assert transitions_b == []
        assert notifier_b.events == []
