"""
Contexte de requête explicite.

Chaque opération du moteur reçoit un RequestContext (acteur + rôle).
Aucune lecture d'état global : le contexte est construit par la couche
API à partir du token, ou par le coordinateur de cascade (rôle SYSTEM).
"""
from dataclasses import dataclass

from psylink.models.enums import ActorRole


@dataclass(frozen=True)
class RequestContext:
    """
    Identité de l'appelant pour la durée d'un appel.

    Attributes:
        actor_id: ID de l'acteur dans sa table (psychologists, companies, patients)
        role: Rôle de l'acteur (PSYCHOLOGIST, COMPANY, PATIENT, SYSTEM)
    """

    actor_id: int
    role: ActorRole

    @classmethod
    def system(cls) -> "RequestContext":
        """Contexte utilisé pour le travail dérivé (cascades, balayages)."""
        return cls(actor_id=0, role=ActorRole.SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.role == ActorRole.SYSTEM

    def __str__(self) -> str:
        return f"{self.role.value}#{self.actor_id}"
