"""
Tests des tâches de maintenance (balayage des invitations expirées).
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session, sessionmaker

from psylink.database import maintenance
from psylink.models.enums import InvitationStatus
from psylink.models.invitation import Invitation
from psylink.models.mixins import utcnow
from psylink.services.invitation_service import InvitationService


@pytest.fixture
def bound_sessions(monkeypatch, engine):
    """db_session() ouvre ses sessions sur la base du test."""
    monkeypatch.setattr(
        "psylink.database.session.SessionLocal",
        sessionmaker(bind=engine, autoflush=False, expire_on_commit=False),
    )


class TestExpireInvitations:

    def test_sweep_expires_stale_invitations(self, bound_sessions, db_session: Session, psy_ctx):
        service = InvitationService(db_session)
        old = service.invite(psy_ctx, "ancien@mail.fr").invitation
        fresh = service.invite(psy_ctx, "recent@mail.fr").invitation
        old.expires_at = utcnow() - timedelta(days=2)
        fresh.expires_at = utcnow() + timedelta(days=2)
        db_session.commit()

        assert maintenance.expire_invitations() == 1

        db_session.expire_all()
        assert db_session.get(Invitation, old.id).status == InvitationStatus.EXPIRED
        assert db_session.get(Invitation, fresh.id).status == InvitationStatus.PENDING

    def test_sweep_aborts_when_database_down(self, monkeypatch, bound_sessions):
        monkeypatch.setattr(maintenance, "check_database_connection", lambda: False)
        assert maintenance.expire_invitations() is None

    def test_cli_exit_codes(self, monkeypatch, bound_sessions):
        assert maintenance.main(["expire-invitations"]) == 0

        monkeypatch.setattr(maintenance, "check_database_connection", lambda: False)
        assert maintenance.main(["expire-invitations"]) == 1
