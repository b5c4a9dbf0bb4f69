"""Repository des invitations (table `invitations`)."""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select

from psylink.models.enums import ActorRole, InvitationStatus
from psylink.models.invitation import Invitation
from psylink.repositories.base import BaseRepository


class InvitationRepository(BaseRepository):

    def get(self, invitation_id: int) -> Optional[Invitation]:
        with self.translate_errors("lecture invitation"):
            return self.db.get(Invitation, invitation_id, populate_existing=True)

    def get_by_code(self, code: str) -> Optional[Invitation]:
        query = select(Invitation).where(Invitation.code == code)
        with self.translate_errors("lecture invitation par code"):
            return self.db.execute(query).scalars().first()

    def code_exists(self, code: str) -> bool:
        return self.get_by_code(code) is not None

    def list_pending_for_email(self, email: str) -> List[Invitation]:
        """Invitations PENDING pour un email normalisé, la plus récente d'abord."""
        query = (
            select(Invitation)
            .where(Invitation.target_email == email, Invitation.status == InvitationStatus.PENDING)
            .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        )
        with self.translate_errors("invitations par email"):
            return list(self.db.execute(query).scalars().all())

    def find_pending(self, issuer_id: int, issuer_role: ActorRole, email: str) -> Optional[Invitation]:
        """Invitation PENDING déjà émise par le même émetteur vers le même email."""
        query = select(Invitation).where(
            Invitation.issuer_id == issuer_id,
            Invitation.issuer_role == issuer_role,
            Invitation.target_email == email,
            Invitation.status == InvitationStatus.PENDING,
        )
        with self.translate_errors("recherche invitation en attente"):
            return self.db.execute(query).scalars().first()

    def list_pending_by_issuer(self, issuer_id: int, issuer_role: ActorRole) -> List[Invitation]:
        query = (
            select(Invitation)
            .where(
                Invitation.issuer_id == issuer_id,
                Invitation.issuer_role == issuer_role,
                Invitation.status == InvitationStatus.PENDING,
            )
            .order_by(Invitation.created_at.desc(), Invitation.id.desc())
        )
        with self.translate_errors("invitations de l'émetteur"):
            return list(self.db.execute(query).scalars().all())

    def list_expirable(self, now: datetime) -> List[Invitation]:
        query = (
            select(Invitation)
            .where(
                Invitation.status == InvitationStatus.PENDING,
                Invitation.expires_at.is_not(None),
                Invitation.expires_at <= now,
            )
            .order_by(Invitation.id)
        )
        with self.translate_errors("invitations expirées"):
            return list(self.db.execute(query).scalars().all())

    def add(self, invitation: Invitation) -> Invitation:
        self.db.add(invitation)
        self.flush("écriture invitation")
        return invitation
