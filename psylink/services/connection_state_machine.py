"""
ConnectionStateMachine - Transitions valides des associations.

    PENDING ──accept──▶ ACTIVE ──disconnect──▶ INACTIVE
       │
       ├──reject──▶ REJECTED
       └──withdraw──▶ INACTIVE

REJECTED et INACTIVE sont terminaux mais réutilisables par une nouvelle
demande (AssociationStore.create).

Les transitions sont idempotentes pour l'appelant : rejouer une
transition déjà appliquée est un succès sans effet (ni écriture, ni
listener, ni notification).
"""
import logging
from enum import Enum
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from psylink.core.context import RequestContext
from psylink.core.exceptions import ConflictError, ForbiddenError, InvalidTransitionError
from psylink.models.association import Association
from psylink.models.enums import AssociationSide, AssociationStatus
from psylink.services.association_store import AssociationStore
from psylink.services.notifications import (
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    NotificationKind,
)

logger = logging.getLogger(__name__)

# listener(association, previous_status, new_status)
TransitionListener = Callable[[Association, AssociationStatus, AssociationStatus], None]


class _Party(str, Enum):
    """Qui peut déclencher une transition."""
    RECIPIENT = "RECIPIENT"
    INITIATOR = "INITIATOR"
    EITHER = "EITHER"


class ConnectionStateMachine:
    """Machine à états partagée par tous les types de relation."""

    def __init__(
            self,
            db: Session,
            store: Optional[AssociationStore] = None,
            notifier: Optional[NotificationDispatcher] = None,
    ):
        self.db = db
        self.store = store or AssociationStore(db)
        self.notifier = notifier or LoggingNotificationDispatcher()
        self._listeners: List[TransitionListener] = []

    def add_listener(self, listener: TransitionListener) -> None:
        """Enregistre un listener appelé après chaque transition effective."""
        self._listeners.append(listener)

    # =========================================================================
    # OPÉRATIONS
    # =========================================================================

    def accept(self, association_id: int, ctx: RequestContext) -> Association:
        """
        PENDING → ACTIVE, par le destinataire uniquement.

        Raises:
            ForbiddenError: l'appelant n'est pas le destinataire
            InvalidTransitionError: l'association n'est pas PENDING
        """
        return self._transition(
            association_id, ctx,
            target=AssociationStatus.ACTIVE,
            source=AssociationStatus.PENDING,
            party=_Party.RECIPIENT,
            notification=NotificationKind.ASSOCIATION_ACCEPTED,
        )

    def reject(self, association_id: int, ctx: RequestContext) -> Association:
        """PENDING → REJECTED, par le destinataire uniquement."""
        return self._transition(
            association_id, ctx,
            target=AssociationStatus.REJECTED,
            source=AssociationStatus.PENDING,
            party=_Party.RECIPIENT,
            notification=NotificationKind.ASSOCIATION_REJECTED,
        )

    def disconnect(self, association_id: int, ctx: RequestContext) -> Association:
        """ACTIVE → INACTIVE, par l'une ou l'autre partie."""
        return self._transition(
            association_id, ctx,
            target=AssociationStatus.INACTIVE,
            source=AssociationStatus.ACTIVE,
            party=_Party.EITHER,
            notification=NotificationKind.ASSOCIATION_DISCONNECTED,
        )

    def withdraw(self, association_id: int, ctx: RequestContext) -> Association:
        """PENDING → INACTIVE : le demandeur annule sa demande."""
        return self._transition(
            association_id, ctx,
            target=AssociationStatus.INACTIVE,
            source=AssociationStatus.PENDING,
            party=_Party.INITIATOR,
            notification=NotificationKind.ASSOCIATION_WITHDRAWN,
        )

    # =========================================================================
    # INTERNE
    # =========================================================================

    def _check_party(self, association: Association, ctx: RequestContext, party: _Party) -> Optional[AssociationSide]:
        """Vérifie que l'appelant peut agir ; retourne son côté (None pour SYSTEM)."""
        if ctx.is_system:
            return None

        side = association.side_of(ctx.actor_id, ctx.role)
        if side is None:
            raise ForbiddenError(
                f"{ctx} n'est pas partie de l'association {association.id}",
                association_id=association.id,
            )
        if party == _Party.RECIPIENT and side != association.recipient_side:
            raise ForbiddenError(
                f"{ctx} n'est pas le destinataire de l'association {association.id}",
                association_id=association.id,
            )
        if party == _Party.INITIATOR and side != association.initiated_by:
            raise ForbiddenError(
                f"{ctx} n'est pas le demandeur de l'association {association.id}",
                association_id=association.id,
            )
        return side

    def _transition(
            self,
            association_id: int,
            ctx: RequestContext,
            target: AssociationStatus,
            source: AssociationStatus,
            party: _Party,
            notification: NotificationKind,
    ) -> Association:
        association = self.store.get(association_id)
        side = self._check_party(association, ctx, party)

        if association.status == target:
            logger.debug(f"Association {association_id} déjà {target.value}, rien à faire")
            return association

        if association.status != source:
            raise InvalidTransitionError(
                f"Association {association_id} : {association.status.value} → {target.value} interdit",
                status=association.status.value,
            )

        try:
            updated = self.store.set_status(association_id, target)
        except ConflictError:
            # Un appel concurrent a déjà écrit : succès si c'est la même cible
            current = self.store.get(association_id)
            if current.status == target:
                return current
            raise InvalidTransitionError(
                f"Association {association_id} : {current.status.value} → {target.value} interdit",
                status=current.status.value,
            )

        logger.info(f"✅ Association {association_id} {source.value} → {target.value} par {ctx}")

        self._notify_other_party(updated, side, notification)
        for listener in self._listeners:
            listener(updated, source, target)
        return updated

    def _notify_other_party(
            self,
            association: Association,
            side: Optional[AssociationSide],
            kind: NotificationKind,
    ) -> None:
        if side is None:
            return
        recipient_id, recipient_role = association.actor_on(side.opposite)
        self.notifier.dispatch(NotificationEvent(
            kind=kind,
            recipient_id=recipient_id,
            recipient_role=recipient_role,
            association_id=association.id,
        ))
