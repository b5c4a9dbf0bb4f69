"""
Annuaire des acteurs.

Résout un email ou un identifiant vers un acteur selon son rôle :
une seule clé de recherche par rôle, pas de recherche en cascade.
"""
from typing import List, Optional, Type, Union

from sqlalchemy import func, select

from psylink.core.exceptions import NotFoundError
from psylink.models.actors import Company, Patient, Psychologist
from psylink.models.enums import ActorRole
from psylink.repositories.base import BaseRepository

Actor = Union[Psychologist, Company, Patient]

MODEL_BY_ROLE: dict[ActorRole, Type[Actor]] = {
    ActorRole.PSYCHOLOGIST: Psychologist,
    ActorRole.COMPANY: Company,
    ActorRole.PATIENT: Patient,
}


def normalize_email(email: str) -> str:
    """Normalise un email (espaces retirés, minuscules)."""
    return email.strip().lower()


class ActorRepository(BaseRepository):
    """Accès en lecture à l'annuaire psychologues / entreprises / patients."""

    def _model(self, role: ActorRole) -> Type[Actor]:
        try:
            return MODEL_BY_ROLE[role]
        except KeyError:
            raise NotFoundError(f"Aucun annuaire pour le rôle {role.value}")

    def get(self, role: ActorRole, actor_id: int) -> Optional[Actor]:
        with self.translate_errors("lecture acteur"):
            return self.db.get(self._model(role), actor_id)

    def get_or_raise(self, role: ActorRole, actor_id: int) -> Actor:
        actor = self.get(role, actor_id)
        if actor is None:
            raise NotFoundError(f"{role.value} {actor_id} non trouvé", role=role.value, actor_id=actor_id)
        return actor

    def find_by_email(self, role: ActorRole, email: str) -> List[Actor]:
        """Retourne tous les comptes actifs du rôle partageant cet email."""
        model = self._model(role)
        query = (
            select(model)
            .where(func.lower(model.email) == normalize_email(email))
            .where(model.is_active.is_(True))
            .order_by(model.id)
        )
        with self.translate_errors("résolution email"):
            return list(self.db.execute(query).scalars().all())

    def list_employees(self, company_id: int) -> List[Patient]:
        """Employés actifs d'une entreprise, par ID croissant."""
        query = (
            select(Patient)
            .where(Patient.company_id == company_id, Patient.is_active.is_(True))
            .order_by(Patient.id)
        )
        with self.translate_errors("liste des employés"):
            return list(self.db.execute(query).scalars().all())
