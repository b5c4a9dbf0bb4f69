"""
Déclenchement des notifications.

Le moteur décide QUI doit être notifié et DE QUOI ; la livraison
(email, push, cloche de l'interface) est assurée par un transport externe
branché via NotificationDispatcher. L'implémentation par défaut se
contente de journaliser l'événement.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol

from psylink.models.enums import ActorRole

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Événements notifiables."""
    INVITATION_CREATED = "INVITATION_CREATED"
    ASSOCIATION_REQUESTED = "ASSOCIATION_REQUESTED"
    ASSOCIATION_ACCEPTED = "ASSOCIATION_ACCEPTED"
    ASSOCIATION_REJECTED = "ASSOCIATION_REJECTED"
    ASSOCIATION_DISCONNECTED = "ASSOCIATION_DISCONNECTED"
    ASSOCIATION_WITHDRAWN = "ASSOCIATION_WITHDRAWN"
    ASSOCIATION_ACTIVATED_BY_COMPANY = "ASSOCIATION_ACTIVATED_BY_COMPANY"


@dataclass(frozen=True)
class NotificationEvent:
    """
    Notification à livrer.

    Le destinataire est soit un acteur (recipient_id + recipient_role),
    soit un email sans compte (invitation).
    """

    kind: NotificationKind
    recipient_id: Optional[int] = None
    recipient_role: Optional[ActorRole] = None
    recipient_email: Optional[str] = None
    association_id: Optional[int] = None
    invitation_id: Optional[int] = None
    data: dict = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, event: NotificationEvent) -> None:
        ...


class LoggingNotificationDispatcher:
    """Dispatcher par défaut : journalise l'événement."""

    def dispatch(self, event: NotificationEvent) -> None:
        recipient = (
            event.recipient_email
            if event.recipient_id is None
            else f"{event.recipient_role.value}#{event.recipient_id}"
        )
        logger.info(f"🔔 Notification {event.kind.value} → {recipient}")

