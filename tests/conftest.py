"""
Fixtures pytest partagées pour les tests PsyLink.

Ce module fournit :
- Une base de données SQLite en mémoire pour les tests (rapide, isolé)
- Des fixtures pour créer l'annuaire (psychologues, entreprise, employés)
- Des fixtures de licences (offre, licence active)
- Le moteur d'association avec un dispatcher de notifications en mémoire
- Un client FastAPI et des en-têtes d'authentification par rôle
"""
import os

# Les settings sont lus à l'import : l'environnement de test doit être posé avant
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")

from datetime import date
from decimal import Decimal
from typing import Callable, Generator, List

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from psylink.core.context import RequestContext
from psylink.core.security import create_access_token
from psylink.database.base import Base
from psylink.database.session import get_db
from psylink.main import app
from psylink.models import (
    Company,
    CompanyLicense,
    LicensePlan,
    Patient,
    Psychologist,
)
from psylink.models.enums import ActorRole, LicenseStatus, PaymentStatus
from psylink.services.engine import AssociationEngine
from psylink.services.notifications import NotificationEvent, NotificationKind


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def engine():
    """
    Crée un engine SQLite en mémoire pour les tests.

    Avantages :
    - Rapide (pas d'I/O disque)
    - Isolé (chaque test a sa propre base)
    - Pas besoin de PostgreSQL pour les tests unitaires
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,  # Mettre True pour debug SQL
    )

    # Créer toutes les tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Nettoyer
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    """
    Fournit une session sur la base du test.

    Les services commitent chaque unité de travail : l'isolation vient de
    la base en mémoire recréée à chaque test.
    """
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = factory()
    try:
        yield session
    finally:
        session.close()


# =============================================================================
# ANNUAIRE
# =============================================================================

@pytest.fixture
def psychologist(db_session: Session) -> Psychologist:
    """Psychologue principal."""
    psy = Psychologist(name="Dr Claire Martin", email="claire.martin@cabinet.fr", is_active=True)
    db_session.add(psy)
    db_session.commit()
    return psy


@pytest.fixture
def other_psychologist(db_session: Session) -> Psychologist:
    psy = Psychologist(name="Dr Hugo Bernard", email="hugo.bernard@cabinet.fr", is_active=True)
    db_session.add(psy)
    db_session.commit()
    return psy


@pytest.fixture
def company(db_session: Session) -> Company:
    """Entreprise cliente, sans licence."""
    company = Company(name="Acme SAS", email="rh@acme.fr", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture
def patient(db_session: Session) -> Patient:
    """Patient direct (sans employeur)."""
    patient = Patient(name="Léa Petit", email="lea.petit@mail.fr", is_active=True)
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def employees(db_session: Session, company: Company) -> List[Patient]:
    """Trois employés actifs de l'entreprise."""
    employees = [
        Patient(name=f"Employé {i}", email=f"employe{i}@acme.fr", company_id=company.id, is_active=True)
        for i in range(1, 4)
    ]
    db_session.add_all(employees)
    db_session.commit()
    return employees


# =============================================================================
# LICENCES
# =============================================================================

@pytest.fixture
def plan(db_session: Session) -> LicensePlan:
    """Offre de catalogue active."""
    plan = LicensePlan(
        name="Équipe",
        description="Jusqu'à 50 collaborateurs",
        max_users=50,
        price_monthly=Decimal("199.00"),
        price_yearly=Decimal("1990.00"),
        active=True,
    )
    db_session.add(plan)
    db_session.commit()
    return plan


@pytest.fixture
def make_license(db_session: Session, plan: LicensePlan) -> Callable[..., CompanyLicense]:
    """
    Factory de licences entreprise.

    Usage:
        license = make_license(company, total=2)
    """
    def _make(
            company: Company,
            total: int = 2,
            used: int = 0,
            status: LicenseStatus = LicenseStatus.ACTIVE,
            payment_status: PaymentStatus = PaymentStatus.COMPLETED,
            expiry_date: date | None = None,
    ) -> CompanyLicense:
        license = CompanyLicense(
            company_id=company.id,
            plan_id=plan.id,
            total_licenses=total,
            used_licenses=used,
            start_date=date.today(),
            expiry_date=expiry_date,
            status=status,
            payment_status=payment_status,
        )
        db_session.add(license)
        db_session.commit()
        return license

    return _make


@pytest.fixture
def active_license(make_license, company: Company) -> CompanyLicense:
    """Licence active et payée de 2 places."""
    return make_license(company, total=2)


# =============================================================================
# MOTEUR
# =============================================================================

class RecordingNotificationDispatcher:
    """Dispatcher de test : conserve les événements en mémoire."""

    def __init__(self):
        self.events: List[NotificationEvent] = []

    def dispatch(self, event: NotificationEvent) -> None:
        self.events.append(event)

    def kinds(self) -> List[NotificationKind]:
        return [event.kind for event in self.events]


@pytest.fixture
def notifier() -> RecordingNotificationDispatcher:
    return RecordingNotificationDispatcher()


@pytest.fixture
def association_engine(db_session: Session, notifier) -> AssociationEngine:
    """Moteur complet (pool, store, machine à états, invitations, cascade)."""
    return AssociationEngine(db_session, notifier=notifier)


def ctx_for(actor, role: ActorRole) -> RequestContext:
    return RequestContext(actor_id=actor.id, role=role)


@pytest.fixture
def psy_ctx(psychologist) -> RequestContext:
    return ctx_for(psychologist, ActorRole.PSYCHOLOGIST)


@pytest.fixture
def company_ctx(company) -> RequestContext:
    return ctx_for(company, ActorRole.COMPANY)


@pytest.fixture
def patient_ctx(patient) -> RequestContext:
    return ctx_for(patient, ActorRole.PATIENT)


# =============================================================================
# API CLIENT FIXTURES
# =============================================================================

@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """
    Client de test FastAPI.

    Override get_db pour utiliser la base SQLite du test ; l'authentification
    passe par de vrais tokens (voir auth_headers).
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Callable[[object, ActorRole], dict]:
    """
    Factory d'en-têtes Authorization.

    Usage:
        client.get("/api/v1/associations", headers=auth_headers(psychologist, ActorRole.PSYCHOLOGIST))
    """
    def _headers(actor, role: ActorRole) -> dict:
        token = create_access_token(actor.id, role)
        return {"Authorization": f"Bearer {token}"}

    return _headers
