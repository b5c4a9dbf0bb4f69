"""
InvitationService - Du « inviter par email » à l'Association.

Un psychologue invite un patient, une entreprise invite un psychologue.
Si l'email correspond à un compte, la demande d'association est créée
directement ; sinon une invitation à code unique attend l'inscription
de la personne.

Politique de redemption : le code produit une association PENDING dont le
destinataire est l'émetteur de l'invitation, qui doit l'accepter
explicitement.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from psylink.core.config import settings
from psylink.core.context import RequestContext
from psylink.core.exceptions import (
    AmbiguousTargetError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
)
from psylink.models.association import Association
from psylink.models.enums import ActorRole, AssociationSide, InvitationStatus, RelationKind
from psylink.models.invitation import Invitation
from psylink.models.mixins import utcnow
from psylink.repositories.actor_repository import ActorRepository, normalize_email
from psylink.repositories.invitation_repository import InvitationRepository
from psylink.services.association_store import AssociationStore
from psylink.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 5

# Rôle émetteur → (rôle invité, type de relation)
INVITE_TARGETS = {
    ActorRole.PSYCHOLOGIST: (ActorRole.PATIENT, RelationKind.PSYCHOLOGIST_PATIENT),
    ActorRole.COMPANY: (ActorRole.PSYCHOLOGIST, RelationKind.PSYCHOLOGIST_COMPANY),
}


@dataclass(frozen=True)
class InviteResult:
    """Résultat d'une invitation : soit une association, soit une invitation."""

    association: Optional[Association] = None
    invitation: Optional[Invitation] = None

    @property
    def is_association(self) -> bool:
        return self.association is not None


class InvitationService:
    """Invitations par email et conversion en associations."""

    def __init__(
            self,
            db: Session,
            store: Optional[AssociationStore] = None,
            notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = store or AssociationStore(db)
        self.notifier = notifier or LoggingNotificationDispatcher()
        self.invitations = InvitationRepository(db)
        self.actors = ActorRepository(db)

    # =========================================================================
    # INVITER
    # =========================================================================

    def invite(self, ctx: RequestContext, target_email: str) -> InviteResult:
        """
        Invite une personne par email.

        Raises:
            ForbiddenError: le rôle appelant ne peut pas inviter
            AmbiguousTargetError: plusieurs comptes partagent cet email
            ConflictError: une association PENDING/ACTIVE existe déjà
        """
        if ctx.role not in INVITE_TARGETS:
            raise ForbiddenError(f"{ctx} ne peut pas émettre d'invitation")

        email = normalize_email(target_email)
        target_role, relation_kind = INVITE_TARGETS[ctx.role]

        matches = self.actors.find_by_email(target_role, email)
        if len(matches) > 1:
            logger.warning(f"⚠️ Email {email} ambigu : {len(matches)} comptes {target_role.value}")
            raise AmbiguousTargetError(
                f"{len(matches)} comptes {target_role.value} pour {email}",
                matches=len(matches),
            )

        if matches:
            target = matches[0]
            association = self._create_from_issuer(ctx, target.id, relation_kind)
            self.notifier.dispatch(NotificationEvent(
                kind=NotificationKind.ASSOCIATION_REQUESTED,
                recipient_id=target.id,
                recipient_role=target_role,
                association_id=association.id,
            ))
            return InviteResult(association=association)

        existing = self.invitations.find_pending(ctx.actor_id, ctx.role, email)
        if existing is not None and not existing.is_expired():
            logger.info(f"📨 Invitation {existing.id} déjà en attente pour {email}")
            return InviteResult(invitation=existing)

        invitation = Invitation(
            code=self._generate_code(),
            target_email=email,
            issuer_id=ctx.actor_id,
            issuer_role=ctx.role,
            relation_kind=relation_kind,
            status=InvitationStatus.PENDING,
            expires_at=self._expires_at(),
        )
        self.invitations.add(invitation)
        self.invitations.commit("création invitation")
        self.db.refresh(invitation)

        logger.info(f"📨 Invitation {invitation.id} créée par {ctx} pour {email}")
        self.notifier.dispatch(NotificationEvent(
            kind=NotificationKind.INVITATION_CREATED,
            recipient_email=email,
            invitation_id=invitation.id,
            data={"code": invitation.code},
        ))
        return InviteResult(invitation=invitation)

    def _create_from_issuer(
            self,
            ctx: RequestContext,
            target_id: int,
            relation_kind: RelationKind,
    ) -> Association:
        """Demande d'association émise par l'émetteur vers un compte existant."""
        if ctx.role == ActorRole.PSYCHOLOGIST:
            return self.store.create(
                ctx.actor_id, target_id, relation_kind, initiated_by=AssociationSide.SUBJECT
            )
        return self.store.create(
            target_id, ctx.actor_id, relation_kind, initiated_by=AssociationSide.OBJECT
        )

    def _generate_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = secrets.token_urlsafe(settings.INVITATION_CODE_BYTES)
            if not self.invitations.code_exists(code):
                return code
        raise ConflictError("Impossible de générer un code d'invitation unique")

    def _expires_at(self) -> Optional[datetime]:
        if settings.INVITATION_TTL_DAYS is None:
            return None
        return utcnow() + timedelta(days=settings.INVITATION_TTL_DAYS)

    # =========================================================================
    # RÉSOUDRE / UTILISER
    # =========================================================================

    def resolve_by_email(self, target_email: str) -> Optional[str]:
        """Code de l'invitation en attente la plus récente pour cet email."""
        now = utcnow()
        for invitation in self.invitations.list_pending_for_email(normalize_email(target_email)):
            if not invitation.is_expired(now):
                return invitation.code
        return None

    def get_by_code(self, code: str) -> Invitation:
        invitation = self.invitations.get_by_code(code)
        if invitation is None:
            raise NotFoundError("Code d'invitation inconnu")
        return invitation

    def redeem(self, code: str, ctx: RequestContext) -> Association:
        """
        Utilise un code d'invitation.

        Rejouer le même code par la même personne retourne la même
        association.

        Raises:
            NotFoundError: code inconnu
            ForbiddenError: le rôle de l'appelant ne correspond pas à l'invité
            InvalidTransitionError: invitation annulée, expirée ou déjà utilisée par un autre
        """
        invitation = self.get_by_code(code)

        if ctx.role != invitation.target_role:
            raise ForbiddenError(
                f"{ctx} ne peut pas utiliser une invitation destinée à {invitation.target_role.value}"
            )

        if invitation.status == InvitationStatus.ACCEPTED:
            if invitation.redeemed_by_id == ctx.actor_id and invitation.association_id is not None:
                logger.debug(f"Invitation {invitation.id} déjà utilisée par {ctx}, même association")
                return self.store.get(invitation.association_id)
            raise InvalidTransitionError(f"Invitation {invitation.id} déjà utilisée")

        if invitation.status != InvitationStatus.PENDING:
            raise InvalidTransitionError(
                f"Invitation {invitation.id} {invitation.status.value}",
                status=invitation.status.value,
            )

        if invitation.is_expired():
            invitation.expire()
            self.invitations.commit("expiration invitation")
            logger.info(f"⌛ Invitation {invitation.id} expirée à l'utilisation")
            raise InvalidTransitionError(f"Invitation {invitation.id} expirée", status="EXPIRED")

        association = self._create_from_redeemer(invitation, ctx)

        invitation = self.invitations.get(invitation.id)
        invitation.accept(redeemed_by_id=ctx.actor_id, association_id=association.id)
        self.invitations.commit("utilisation invitation")

        logger.info(f"🎉 Invitation {invitation.id} utilisée par {ctx} → association {association.id}")
        self.notifier.dispatch(NotificationEvent(
            kind=NotificationKind.ASSOCIATION_REQUESTED,
            recipient_id=invitation.issuer_id,
            recipient_role=invitation.issuer_role,
            association_id=association.id,
            invitation_id=invitation.id,
        ))
        return association

    def _create_from_redeemer(self, invitation: Invitation, ctx: RequestContext) -> Association:
        """Association PENDING demandée par l'invité, à accepter par l'émetteur."""
        if invitation.issuer_role == ActorRole.PSYCHOLOGIST:
            subject_id, object_id, side = invitation.issuer_id, ctx.actor_id, AssociationSide.OBJECT
        else:
            subject_id, object_id, side = ctx.actor_id, invitation.issuer_id, AssociationSide.SUBJECT

        relation_kind = RelationKind(invitation.relation_kind)
        try:
            return self.store.create(subject_id, object_id, relation_kind, initiated_by=side)
        except ConflictError:
            # Relation déjà ouverte entre les deux parties : l'invitation s'y rattache
            existing = self.store.find_active_or_pending(subject_id, object_id, relation_kind)
            if existing is None:
                raise
            logger.info(f"🔗 Invitation {invitation.id} rattachée à l'association existante {existing.id}")
            return existing

    # =========================================================================
    # ANNULER / LISTER
    # =========================================================================

    def cancel(self, invitation_id: int, ctx: RequestContext) -> Invitation:
        """
        PENDING → CANCELED, par l'émetteur uniquement.

        Raises:
            NotFoundError, ForbiddenError, InvalidTransitionError
        """
        invitation = self.invitations.get(invitation_id)
        if invitation is None:
            raise NotFoundError(f"Invitation {invitation_id} non trouvée")

        if invitation.issuer_id != ctx.actor_id or invitation.issuer_role != ctx.role:
            raise ForbiddenError(f"{ctx} n'est pas l'émetteur de l'invitation {invitation_id}")

        try:
            invitation.cancel()
        except ValueError as e:
            raise InvalidTransitionError(str(e), status=invitation.status.value)

        self.invitations.commit("annulation invitation")
        self.db.refresh(invitation)
        logger.info(f"🚫 Invitation {invitation_id} annulée par {ctx}")
        return invitation

    def list_pending_by_issuer(self, ctx: RequestContext) -> List[Invitation]:
        return self.invitations.list_pending_by_issuer(ctx.actor_id, ctx.role)

    def expire_stale(self, now: Optional[datetime] = None) -> int:
        """
        Passe en EXPIRED les invitations dont la validité est dépassée.

        Point d'entrée du balayage externe (planificateur hors moteur).

        Returns:
            Nombre d'invitations expirées
        """
        stale = self.invitations.list_expirable(now or utcnow())
        for invitation in stale:
            invitation.expire()
        if stale:
            self.invitations.commit("balayage des invitations")
            logger.info(f"⌛ {len(stale)} invitation(s) expirée(s)")
        return len(stale)
